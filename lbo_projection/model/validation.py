"""
validation.py
-------------
Input and output checks around a projection run.

validate_input     every rule is evaluated and all failures are collected
                   (never fail-fast), plus soft warnings
validate_results   NaN / Infinity scan over a finished result
check_integrity    accounting identity and cash continuity on final statements
"""

from dataclasses import dataclass, field, fields, is_dataclass

import numpy as np

from lbo_projection.model.assumptions import ProjectionInput, RepaymentPolicy
from lbo_projection.model import deal_calculator as deal

MAX_HORIZON = 10
MAX_MULTIPLE = 50.0
MAX_FEE_PCT = 0.10
MAX_INTEREST_RATE = 0.50
MAX_MATURITY = 30
OWNERSHIP_TOLERANCE = 0.01

# Result fields where NaN means "undefined", not a broken calculation
UNDEFINED_OK = {"irr", "moic", "payback_period"}


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _in_range(value, lo, hi) -> bool:
    return lo <= value <= hi


# ---------------------------------------------------------------------------
# Input rules
# ---------------------------------------------------------------------------

def _business_metrics_errors(inp: ProjectionInput) -> list[str]:
    m = inp.business_metrics
    errors = []
    if m.revenue <= 0:
        errors.append("Revenue must be greater than 0")
    if m.ebitda <= 0:
        errors.append("EBITDA must be greater than 0")
    for name in ("cash", "accounts_receivable", "inventory", "ppe", "accounts_payable",
                 "other_current_liabilities", "short_term_debt", "long_term_debt",
                 "other_long_term_liabilities"):
        if getattr(m, name) < 0:
            errors.append(f"Balance-sheet item {name} cannot be negative")
    return errors


def _assumption_errors(inp: ProjectionInput) -> list[str]:
    a = inp.assumptions
    errors = []
    if not _in_range(a.revenue_growth_rate, -0.5, 1.0):
        errors.append("Revenue growth rate must be between -50% and 100%")
    for name in ("cogs_pct", "opex_pct", "capex_pct", "tax_rate"):
        if not _in_range(getattr(a, name), 0.0, 1.0):
            errors.append(f"{name} must be between 0% and 100%")
    if not _in_range(a.ebitda_margin, 0.0, 1.0):
        errors.append("COGS and operating expenses leave an EBITDA margin outside 0%-100%")
    for name in ("ar_days", "inventory_days", "ap_days"):
        if getattr(a, name) < 0:
            errors.append(f"{name} cannot be negative")
    if not _in_range(a.discount_rate, 0.0, 1.0):
        errors.append("Discount rate must be between 0% and 100%")
    if not _in_range(a.fixed_assets_to_capex_multiple, 1.0, MAX_MULTIPLE):
        errors.append("Fixed assets / CapEx multiple must be between 1 and 50")
    if not _in_range(a.revolver_repayment_rate, 0.0, 1.0):
        errors.append("Revolver repayment rate must be between 0% and 100%")
    return errors


def _deal_design_errors(inp: ProjectionInput) -> list[str]:
    d = inp.deal_design
    errors = []
    if not _in_range(d.transaction_fee_pct, 0.0, MAX_FEE_PCT):
        errors.append("Transaction fee must be between 0% and 10%")

    if d.payment_schedule:
        if any(item.percentage < 0 for item in d.payment_schedule):
            errors.append("Payment schedule percentages cannot be negative")
        closed, total = deal.validate_payment_schedule(d.payment_schedule)
    else:
        s = d.payment_structure
        if min(s.upfront_pct, s.year1_pct, s.year2_pct) < 0:
            errors.append("Payment structure percentages cannot be negative")
        closed, total = deal.validate_payment_structure(s)
    if not closed:
        errors.append(f"Cash and share-buyback payments add up to {total:.2f}%, not 100%")

    fees = d.fee_schedule
    if fees is not None and not fees.upfront and fees.installments:
        fee_total = sum(p for _, p in fees.installments)
        if abs(fee_total - 100.0) > deal.CLOSURE_TOLERANCE:
            errors.append(f"Transaction fee installments add up to {fee_total:.2f}%, not 100%")

    if d.target_preferred.dividend_rate < 0:
        errors.append("Preferred dividend rate cannot be negative")

    policy = d.dividend_policy
    if not _in_range(policy.default_payout_ratio, 0.0, 1.0):
        errors.append("Default payout ratio must be between 0% and 100%")
    for tier in policy.tiers:
        if not _in_range(tier.payout_ratio, 0.0, 1.0):
            errors.append(f"Dividend tier {tier.name!r} payout must be between 0% and 100%")
    return errors


def _financing_errors(inp: ProjectionInput) -> list[str]:
    errors = []
    for i, plan in enumerate(inp.financing_plans, start=1):
        label = plan.name or f"#{i}"
        if not plan.name:
            errors.append(f"Financing plan {i} has no name")
        if plan.amount <= 0:
            errors.append(f"Financing plan {label!r}: amount must be greater than 0")
        if not _in_range(plan.interest_rate, 0.0, MAX_INTEREST_RATE):
            errors.append(f"Financing plan {label!r}: interest rate must be between 0% and 50%")
        if plan.repayment_policy is None:
            errors.append(f"Financing plan {label!r} has no repayment policy")
        min_maturity = 0 if plan.repayment_policy is RepaymentPolicy.REVOLVING else 1
        if not _in_range(plan.maturity, min_maturity, MAX_MATURITY):
            errors.append(f"Financing plan {label!r}: maturity must be between 1 and 30 years")
        if not _in_range(plan.entry_year, 0, inp.planning_horizon):
            errors.append(f"Financing plan {label!r}: entry year outside the planning horizon")
    return errors


def _equity_errors(inp: ProjectionInput) -> list[str]:
    injections = inp.equity_injections
    if not injections:
        return ["At least one equity injection is required"]

    errors = []
    for i, eq in enumerate(injections, start=1):
        label = eq.name or f"#{i}"
        if not eq.name:
            errors.append(f"Equity injection {i} has no name")
        if eq.amount <= 0:
            errors.append(f"Equity injection {label!r}: amount must be greater than 0")
        if not _in_range(eq.ownership_pct, 0.0, 100.0):
            errors.append(f"Equity injection {label!r}: ownership must be between 0% and 100%")
        if not _in_range(eq.entry_year, 0, inp.planning_horizon):
            errors.append(f"Equity injection {label!r}: entry year outside the planning horizon")
        if eq.is_preferred and (eq.dividend_rate < 0 or eq.redemption_multiple < 0):
            errors.append(f"Equity injection {label!r}: preferred terms cannot be negative")

    total = sum(eq.ownership_pct for eq in injections)
    if total > 100.0 + OWNERSHIP_TOLERANCE:
        errors.append(f"Total ownership {total:.2f}% exceeds 100%")
    return errors


def _scenario_errors(inp: ProjectionInput) -> list[str]:
    s = inp.scenario
    errors = []
    if not (0 < s.entry_multiple <= MAX_MULTIPLE):
        errors.append("Entry EV/EBITDA multiple must be between 0 and 50")
    if not (0 < s.exit_multiple <= MAX_MULTIPLE):
        errors.append("Exit EV/EBITDA multiple must be between 0 and 50")
    if not _in_range(inp.planning_horizon, 1, MAX_HORIZON):
        errors.append("Planning horizon must be between 1 and 10 years")
    return errors


def _warnings(inp: ProjectionInput) -> list[str]:
    warnings = []
    if inp.assumptions.ebitda_margin < 0.05:
        warnings.append("Projected EBITDA margin below 5% looks implausible")
    if inp.deal_design.transaction_fee_pct > 0.05:
        warnings.append("Transaction fee above 5% is unusual")
    debt = sum(p.amount for p in inp.financing_plans)
    equity = sum(e.amount for e in inp.equity_injections)
    if debt > 0 and equity > 0 and debt / equity > 10:
        warnings.append(f"Debt-to-equity of {debt / equity:.1f}:1 is very high")
    return warnings


def _funding_warnings(inp: ProjectionInput) -> list[str]:
    su = deal.sources_and_uses(inp)
    if su.is_funded:
        return []
    return [f"Funding gap of {su.funding_gap:,.0f}K at closing: uses exceed sources"]


def validate_input(inp: ProjectionInput) -> ValidationResult:
    errors = []
    for rule in (_business_metrics_errors, _assumption_errors, _deal_design_errors,
                 _financing_errors, _equity_errors, _scenario_errors):
        errors.extend(rule(inp))
    warnings = _warnings(inp)
    if not errors:
        warnings.extend(_funding_warnings(inp))
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ---------------------------------------------------------------------------
# Output checks
# ---------------------------------------------------------------------------

def _scan(value, path: str, result: ValidationResult) -> None:
    if isinstance(value, bool) or value is None:
        return
    if isinstance(value, (int, float, np.integer, np.floating)):
        if np.isfinite(value):
            return
        kind = "NaN" if np.isnan(value) else "an infinite value"
        leaf = path.rsplit(".", 1)[-1].split("[", 1)[0]
        if leaf in UNDEFINED_OK and np.isnan(value):
            result.warnings.append(f"{path} is undefined")
        else:
            result.errors.append(f"{path} contains {kind}")
        return
    if is_dataclass(value):
        for f in fields(value):
            _scan(getattr(value, f.name), f"{path}.{f.name}" if path else f.name, result)
    elif isinstance(value, dict):
        for key, item in value.items():
            _scan(item, f"{path}.{key}" if path else str(key), result)
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _scan(item, f"{path}[{i}]", result)


def validate_results(result) -> ValidationResult:
    """Report every NaN / Infinity in a result object (dataclasses, lists, dicts)."""
    checked = ValidationResult()
    _scan(result, "", checked)
    checked.is_valid = not checked.errors
    return checked


def check_integrity(balance_sheet, cash_flows, tolerance: float = 0.01) -> list[str]:
    """Identity and cash-continuity breaches, one message each."""
    problems = []
    for row in balance_sheet:
        if abs(row.balance_check) > tolerance:
            problems.append(f"Year {row.year}: assets differ from liabilities + equity "
                            f"by {row.balance_check:,.2f}")
    for prev, cur in zip(cash_flows, cash_flows[1:]):
        if abs(cur.beginning_cash - prev.ending_cash) > tolerance:
            problems.append(f"Year {cur.year}: beginning cash does not match prior ending cash")
    for row, cf in zip(balance_sheet, cash_flows):
        if abs(row.cash - cf.ending_cash) > tolerance:
            problems.append(f"Year {row.year}: balance-sheet cash differs from ending cash")
    return problems
