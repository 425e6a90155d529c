"""
cash_flow.py
------------
Derives the Cash Flow Statement for Year 0 .. Year N and decides the
common dividend.

Structure:
  Operating Cash Flow
    Net Income (already after interest)
    + D&A (non-cash)
    − Increase in Net Working Capital
  Investing Cash Flow
    − Capital Expenditures
    − Purchase-price cash installment (full deals; year 0 for every deal)
    − Transaction fee paid this year
  Financing Cash Flow
    + New debt drawn, + New equity injected
    − Principal repaid, − Seller preferred redeemed
    − Preferred dividends (seller preferred + acquirer preferred tranches)
    − Common dividend
  Ending Cash = Beginning Cash + OCF + ICF + FCF
  FCFF        = OCF − CapEx

Interest is paid through net income, so it appears on the statement as a
memo line only.  Year 0 opens with zero cash: the target's own cash is
bought inside the purchase price.  Year 0 has no operations: OCF is zero,
investing holds the closing payments and financing the initial draws and
equity.  Issuing the seller preferred shares moves no cash and is shown
as a memo line only.

Common dividend (years >= 1):
  distributable = max(0, ending cash before dividend − minimum cash reserve)
  reserve       = monthly operating costs × min-cash months (if enabled)
  payout ratio  = first tier (highest payout first) whose EBITDA, FCFF and
                  leverage tests all pass; 50% default with no tiers; 0% if
                  tiers exist and none pass
  Opt-in: covenant breach blocks the dividend; a waterfall carves up the
  distributable cash instead of the payout ratio.  The leverage covenant
  is total debt / EBITDA, cash is not netted.

All values in $K.
"""

import logging
import math
from dataclasses import dataclass

import pandas as pd

from lbo_projection.model.assumptions import (
    DebtProtectionCovenants, DividendPolicySettings, ProjectionInput,
    WaterfallCalculation, WaterfallKind,
)
from lbo_projection.model.balance_sheet import BalanceSheetRow
from lbo_projection.model.debt_schedule import (
    DebtScheduleRow, draws_in_year, total_principal,
)
from lbo_projection.model.deal_calculator import PreferredStockRow
from lbo_projection.model.income_statement import IncomeStatementRow
from lbo_projection.model import deal_calculator as deal
from lbo_projection.utils.frames import statement_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DividendDiagnostics:
    covenants_passed: bool
    failed_covenants: tuple[str, ...]
    available_for_dividend: float
    minimum_cash_reserve: float
    ending_cash_before_dividend: float
    payout_ratio: float
    selected_tier: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class CashFlowRow:
    year: int
    beginning_cash: float
    net_income: float
    depreciation_amortization: float
    nwc_change: float               # increase in NWC (cash outflow)
    operating_cash_flow: float
    capex: float
    acquisition_payment: float
    transaction_fee_paid: float
    investing_cash_flow: float
    new_debt: float
    new_equity: float
    principal_repayment: float
    preferred_stock_redemption: float
    target_preferred_dividends: float
    acquirer_preferred_dividends: float
    common_dividends: float
    financing_cash_flow: float
    ending_cash: float
    interest_paid: float = 0.0              # memo, already inside net income
    preferred_stock_issuance: float = 0.0   # memo, non-cash
    deferred_payment_expense: float = 0.0   # memo, already inside net income
    dividend_diagnostics: DividendDiagnostics | None = None

    @property
    def net_cash_flow(self) -> float:
        return self.operating_cash_flow + self.investing_cash_flow + self.financing_cash_flow

    @property
    def preferred_dividends(self) -> float:
        return self.target_preferred_dividends + self.acquirer_preferred_dividends

    @property
    def fcff(self) -> float:
        return self.operating_cash_flow - self.capex


# ---------------------------------------------------------------------------
# Dividend policy
# ---------------------------------------------------------------------------

def minimum_cash_reserve(income: IncomeStatementRow, covenants: DebtProtectionCovenants) -> float:
    if not covenants.min_cash_months.enabled:
        return 0.0
    monthly_costs = max(0.0, income.revenue - income.ebitda) / 12
    return monthly_costs * covenants.min_cash_months.value


def select_payout_ratio(
    policy: DividendPolicySettings,
    ebitda: float,
    fcff: float,
    leverage: float,
) -> tuple[float, str | None]:
    """Returns (payout ratio, matching tier name)."""
    if not policy.tiers:
        return policy.default_payout_ratio, None
    for tier in sorted(policy.tiers, key=lambda t: t.payout_ratio, reverse=True):
        if (ebitda >= tier.ebitda_threshold
                and fcff >= tier.fcff_threshold
                and leverage <= tier.leverage_threshold):
            return min(1.0, max(0.0, tier.payout_ratio)), tier.name
    return 0.0, None


def failed_covenants(
    covenants: DebtProtectionCovenants,
    income: IncomeStatementRow,
    debt_service: float,
    debt: float,
    cash: float,
) -> list[str]:
    ebitda = income.ebitda
    failed = []
    if covenants.dscr.enabled:
        dscr = ebitda / debt_service if debt_service > 0 else math.inf
        if dscr < covenants.dscr.value:
            failed.append("DSCR")
    if covenants.net_leverage.enabled:
        # total debt, not netted against cash
        if ebitda > 0:
            leverage = debt / ebitda
        else:
            leverage = math.inf if debt > 0 else 0.0
        if leverage > covenants.net_leverage.value:
            failed.append("NetLeverage")
    if covenants.interest_coverage.enabled:
        interest = income.interest_expense
        coverage = ebitda / interest if interest > 0 else math.inf
        if coverage < covenants.interest_coverage.value:
            failed.append("InterestCoverage")
    if covenants.min_cash_months.enabled:
        monthly_costs = max(0.0, income.revenue - income.ebitda) / 12
        months = cash / monthly_costs if monthly_costs > 0 else math.inf
        if months < covenants.min_cash_months.value:
            failed.append("MinCashMonths")
    return failed


def apply_waterfall(
    available: float,
    rules,
    preferred_outstanding: float,
    preferred_rate: float,
) -> dict[WaterfallKind, float]:
    """Hand out `available` rule by rule in priority order."""
    allocated = {kind: 0.0 for kind in WaterfallKind}
    if not rules:
        allocated[WaterfallKind.COMMON_DIVIDEND] = available
        return allocated

    remaining = available
    for rule in sorted(rules, key=lambda r: r.priority):
        if remaining <= 0:
            break
        if rule.calculation is WaterfallCalculation.FIXED:
            amount = min(rule.value, remaining)
        elif rule.calculation is WaterfallCalculation.PERCENTAGE:
            amount = remaining * min(1.0, max(0.0, rule.value))
        elif rule.kind is WaterfallKind.PREFERRED_DIVIDEND:
            amount = min(preferred_outstanding * preferred_rate, remaining)
        else:
            amount = 0.0
        allocated[rule.kind] += amount
        remaining -= amount
    return allocated


def decide_common_dividend(
    inp: ProjectionInput,
    income: IncomeStatementRow,
    balance: BalanceSheetRow,
    debt_service: float,
    ending_cash_before: float,
    fcff: float,
    preferred_outstanding: float,
) -> tuple[float, DividendDiagnostics]:
    policy = inp.deal_design.dividend_policy
    reserve = minimum_cash_reserve(income, policy.covenants)
    available = max(0.0, ending_cash_before - reserve)
    leverage = balance.debt / income.ebitda if income.ebitda > 0 else math.inf
    payout, tier = select_payout_ratio(policy, income.ebitda, fcff, leverage)
    failed = failed_covenants(policy.covenants, income, debt_service,
                              balance.debt, ending_cash_before)

    reason = None
    if policy.block_on_covenant_breach and failed:
        dividend = 0.0
        reason = "covenant breach: " + ", ".join(failed)
    elif available <= 0:
        dividend = 0.0
        reason = "no cash above the minimum reserve"
    elif policy.waterfall_rules:
        split = apply_waterfall(available, policy.waterfall_rules, preferred_outstanding,
                                inp.deal_design.target_preferred.dividend_rate)
        dividend = split[WaterfallKind.COMMON_DIVIDEND]
    else:
        dividend = available * payout
        if payout == 0:
            reason = "no dividend tier met"

    diagnostics = DividendDiagnostics(
        covenants_passed=not failed,
        failed_covenants=tuple(failed),
        available_for_dividend=available,
        minimum_cash_reserve=reserve,
        ending_cash_before_dividend=ending_cash_before,
        payout_ratio=payout,
        selected_tier=tier,
        reason=reason,
    )
    return dividend, diagnostics


# ---------------------------------------------------------------------------
# Statement
# ---------------------------------------------------------------------------

def _year_zero(inp, preferred, price) -> CashFlowRow:
    design = inp.deal_design
    beginning = 0.0
    fee = deal.transaction_fee_for_year(price, design, 0)
    acquisition = deal.acquisition_payment(price, design, 0)
    investing = -(fee + acquisition)

    new_debt = draws_in_year(inp.financing_plans, 0)
    new_equity = inp.equity_injected(0)
    redemption = preferred[0].redemption
    financing = new_debt + new_equity - redemption

    return CashFlowRow(
        year=0,
        beginning_cash=beginning,
        net_income=0.0,
        depreciation_amortization=0.0,
        nwc_change=0.0,
        operating_cash_flow=0.0,
        capex=0.0,
        acquisition_payment=acquisition,
        transaction_fee_paid=fee,
        investing_cash_flow=investing,
        new_debt=new_debt,
        new_equity=new_equity,
        principal_repayment=0.0,
        preferred_stock_redemption=redemption,
        target_preferred_dividends=0.0,
        acquirer_preferred_dividends=0.0,
        common_dividends=0.0,
        financing_cash_flow=financing,
        ending_cash=beginning + investing + financing,
        preferred_stock_issuance=preferred[0].beginning_balance,
    )


def build_cash_flow_statement(
    inp: ProjectionInput,
    income_statement: list[IncomeStatementRow],
    provisional_bs: list[BalanceSheetRow],
    debt_schedule: list[DebtScheduleRow],
    preferred: list[PreferredStockRow],
) -> list[CashFlowRow]:
    """
    Parameters
    ----------
    inp              : ProjectionInput
    income_statement : rows for years 0..N
    provisional_bs   : phase-1 balance sheet (working capital, debt)
    debt_schedule    : from debt_schedule.build_debt_schedule
    preferred        : seller preferred schedule

    Returns
    -------
    list[CashFlowRow], years 0..N.
    """
    design = inp.deal_design
    price = deal.purchase_price(inp.business_metrics, inp.scenario.entry_multiple)

    rows = [_year_zero(inp, preferred, price)]
    for yr in range(1, inp.planning_horizon + 1):
        income = income_statement[yr]
        balance = provisional_bs[yr]
        pref = preferred[yr]

        # ---- Operating ----
        nwc_change = balance.nwc - provisional_bs[yr - 1].nwc
        operating = income.net_income + income.depreciation_amortization - nwc_change

        # ---- Investing ----
        acquisition = deal.acquisition_payment(price, design, yr)
        fee = deal.transaction_fee_for_year(price, design, yr)
        investing = -(income.capex + acquisition + fee)

        # ---- Financing before the common dividend ----
        new_debt = draws_in_year(inp.financing_plans, yr)
        new_equity = inp.equity_injected(yr)
        principal = total_principal(debt_schedule, yr)
        acquirer_dividends = inp.acquirer_preferred_dividends(yr)
        financing_pre = (new_debt + new_equity - principal - pref.redemption
                         - pref.dividend - acquirer_dividends)

        beginning = rows[-1].ending_cash
        ending_before = beginning + operating + investing + financing_pre
        fcff = operating - income.capex

        debt_service = income.interest_expense + principal
        common, diagnostics = decide_common_dividend(
            inp, income, balance, debt_service, ending_before, fcff, pref.ending_balance,
        )
        logger.debug("Year %d common dividend %.1f (payout %.0f%%)",
                     yr, common, diagnostics.payout_ratio * 100)

        rows.append(CashFlowRow(
            year=yr,
            beginning_cash=beginning,
            net_income=income.net_income,
            depreciation_amortization=income.depreciation_amortization,
            nwc_change=nwc_change,
            operating_cash_flow=operating,
            capex=income.capex,
            acquisition_payment=acquisition,
            transaction_fee_paid=fee,
            investing_cash_flow=investing,
            new_debt=new_debt,
            new_equity=new_equity,
            principal_repayment=principal,
            preferred_stock_redemption=pref.redemption,
            target_preferred_dividends=pref.dividend,
            acquirer_preferred_dividends=acquirer_dividends,
            common_dividends=common,
            financing_cash_flow=financing_pre - common,
            ending_cash=ending_before - common,
            interest_paid=income.interest_expense,
            deferred_payment_expense=income.deferred_payment_expense,
            dividend_diagnostics=diagnostics,
        ))
    return rows


CFS_LABELS = {
    "beginning_cash":               "Beginning Cash",
    "net_income":                   "Net Income",
    "depreciation_amortization":    "(+) D&A",
    "nwc_change":                   "(-) Increase in NWC",
    "operating_cash_flow":          "Operating CF",
    "capex":                        "(-) CapEx",
    "acquisition_payment":          "(-) Acquisition Payment",
    "transaction_fee_paid":         "(-) Transaction Fees",
    "investing_cash_flow":          "Investing CF",
    "new_debt":                     "(+) New Debt",
    "new_equity":                   "(+) New Equity",
    "principal_repayment":          "(-) Principal Repaid",
    "preferred_stock_redemption":   "(-) Preferred Redemption",
    "preferred_dividends":          "(-) Preferred Dividends",
    "common_dividends":             "(-) Common Dividends",
    "financing_cash_flow":          "Financing CF",
    "net_cash_flow":                "Net Change in Cash",
    "ending_cash":                  "Ending Cash",
    "fcff":                         "FCFF",
    "interest_paid":                "Memo: Interest Paid (in Net Income)",
    "preferred_stock_issuance":     "Memo: Preferred Issued (non-cash)",
}


def cash_flow_df(rows: list[CashFlowRow]) -> pd.DataFrame:
    return statement_frame(rows, CFS_LABELS)
