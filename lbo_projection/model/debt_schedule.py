"""
debt_schedule.py
----------------
Builds the amortization schedule for every financing facility.

Key mechanics:
  - One row per (year, facility) while the facility is outstanding
  - Interest on the beginning balance of the row
  - Repayment policy picked from a dispatch table, one handler per policy:
      equalPayment   level annual payment (annuity); balance solved in closed form
      equalPrincipal principal / maturity every year
      bullet         interest only, full principal at maturity
      interestOnly   same as bullet
      revolving      configured share of the carried balance repaid each year
  - Entry timing:
      year 0, or end-of-year entry   draw year only (no interest / principal),
                                     policy starts the following year
      beginning-of-year entry (>0)   policy starts in the entry year
  - Non-revolving facilities stop once paid off; a revolver keeps its rows
    through the whole horizon even at a zero balance
  - Malformed plans are skipped silently (validation lives elsewhere)

Rows come back sorted by (year, facility priority: senior < mezzanine < revolver).
"""

import logging
from dataclasses import dataclass
from typing import Callable

import pandas as pd

from lbo_projection.model.assumptions import (
    EntryTiming, FacilityType, FinancingPlan, FutureAssumptions, RepaymentPolicy,
)
from lbo_projection.utils.frames import wide_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebtScheduleRow:
    year: int
    facility: str
    facility_type: FacilityType
    beginning_balance: float
    new_draws: float
    interest_expense: float
    principal_repayment: float
    ending_balance: float

    @property
    def debt_service(self) -> float:
        return self.interest_expense + self.principal_repayment


# ---------------------------------------------------------------------------
# Repayment policies
# Each handler gets the loan year k (1 = first repayment year) and the
# balance carried from the prior row, and returns
# (beginning_balance, interest, principal).
# ---------------------------------------------------------------------------

PolicyHandler = Callable[[FinancingPlan, int, float, FutureAssumptions],
                         tuple[float, float, float]]


def annuity_payment(principal: float, rate: float, periods: int) -> float:
    """Level annual payment that retires `principal` over `periods` years."""
    if rate == 0:
        return principal / periods
    return principal * rate / (1 - (1 + rate) ** -periods)


def annuity_balance(principal: float, rate: float, periods: int, loan_year: int) -> float:
    """Balance outstanding at the start of `loan_year` on a level-payment loan."""
    remaining = periods - loan_year + 1
    if remaining <= 0:
        return 0.0
    if rate == 0:
        return principal * remaining / periods
    pmt = annuity_payment(principal, rate, periods)
    return pmt * (1 - (1 + rate) ** -remaining) / rate


def _equal_payment(plan, loan_year, carried, assumptions):
    beginning = annuity_balance(plan.amount, plan.interest_rate, plan.maturity, loan_year)
    interest = beginning * plan.interest_rate
    if loan_year >= plan.maturity:
        return beginning, interest, beginning
    pmt = annuity_payment(plan.amount, plan.interest_rate, plan.maturity)
    return beginning, interest, min(beginning, pmt - interest)


def _equal_principal(plan, loan_year, carried, assumptions):
    installment = plan.amount / plan.maturity
    beginning = max(0.0, plan.amount - (loan_year - 1) * installment)
    interest = beginning * plan.interest_rate
    if loan_year >= plan.maturity:
        return beginning, interest, beginning
    return beginning, interest, min(beginning, installment)


def _bullet(plan, loan_year, carried, assumptions):
    beginning = plan.amount
    interest = beginning * plan.interest_rate
    principal = beginning if loan_year >= plan.maturity else 0.0
    return beginning, interest, principal


def _revolving(plan, loan_year, carried, assumptions):
    interest = carried * plan.interest_rate
    principal = min(carried, carried * assumptions.revolver_repayment_rate)
    return carried, interest, principal


POLICY_HANDLERS: dict[RepaymentPolicy, PolicyHandler] = {
    RepaymentPolicy.EQUAL_PAYMENT:   _equal_payment,
    RepaymentPolicy.EQUAL_PRINCIPAL: _equal_principal,
    RepaymentPolicy.BULLET:          _bullet,
    RepaymentPolicy.INTEREST_ONLY:   _bullet,
    RepaymentPolicy.REVOLVING:       _revolving,
}


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------

def is_eligible(plan: FinancingPlan) -> bool:
    if plan.amount <= 0 or plan.interest_rate < 0:
        return False
    if plan.repayment_policy is None:
        return False
    if plan.maturity < 1 and not plan.is_revolving:
        return False
    return True


def eligible_plans(plans) -> list[FinancingPlan]:
    kept = []
    for plan in plans:
        if is_eligible(plan):
            kept.append(plan)
        else:
            logger.debug("Skipping financing plan %r: not schedulable", plan.name)
    return kept


def _plan_rows(plan: FinancingPlan, horizon: int,
               assumptions: FutureAssumptions) -> list[DebtScheduleRow]:
    handler = POLICY_HANDLERS[plan.repayment_policy]
    facility_type = plan.effective_facility_type
    entry = plan.entry_year
    draws_up_front = entry == 0 or plan.entry_timing is EntryTiming.END

    rows = []
    balance = 0.0
    for year in range(entry, horizon + 1):
        if draws_up_front and year == entry:
            # Draw year: money arrives, nothing accrues yet
            balance = plan.amount
            rows.append(DebtScheduleRow(year, plan.name, facility_type,
                                        0.0, plan.amount, 0.0, 0.0, plan.amount))
            continue

        if year == entry:
            balance = plan.amount
        loan_year = year - entry if draws_up_front else year - entry + 1

        beginning, interest, principal = handler(plan, loan_year, balance, assumptions)
        ending = max(0.0, beginning - principal)
        if not plan.is_revolving and loan_year >= plan.maturity:
            ending = 0.0
        rows.append(DebtScheduleRow(year, plan.name, facility_type,
                                    beginning, 0.0, interest, principal, ending))
        balance = ending

        if ending == 0.0 and not plan.is_revolving:
            break
    return rows


def build_debt_schedule(
    plans,
    horizon: int,
    assumptions: FutureAssumptions,
) -> list[DebtScheduleRow]:
    """
    Parameters
    ----------
    plans       : iterable of FinancingPlan
    horizon     : last projected year (rows cover years 0..horizon)
    assumptions : FutureAssumptions (revolver repayment rate)

    Returns
    -------
    list[DebtScheduleRow] sorted by year, then facility priority.
    """
    rows = []
    for plan in eligible_plans(plans):
        rows.extend(_plan_rows(plan, horizon, assumptions))
    rows.sort(key=lambda r: (r.year, r.facility_type.priority))
    logger.debug("Debt schedule built: %d rows over %d years", len(rows), horizon)
    return rows


# ---------------------------------------------------------------------------
# Per-year aggregates used downstream
# ---------------------------------------------------------------------------

def total_debt(schedule: list[DebtScheduleRow], year: int) -> float:
    """Ending debt across all facilities in `year`."""
    return sum(r.ending_balance for r in schedule if r.year == year)


def total_interest(schedule: list[DebtScheduleRow], year: int) -> float:
    return sum(r.interest_expense for r in schedule if r.year == year)


def total_principal(schedule: list[DebtScheduleRow], year: int) -> float:
    return sum(r.principal_repayment for r in schedule if r.year == year)


def draws_in_year(plans, year: int) -> float:
    """Cash raised from new facilities in `year` (either entry timing)."""
    return sum(p.amount for p in eligible_plans(plans) if p.entry_year == year)


def debt_summary_df(schedule: list[DebtScheduleRow], horizon: int) -> pd.DataFrame:
    """Year-by-year totals plus per-facility ending balances, wide format."""
    facilities = list(dict.fromkeys(r.facility for r in schedule))
    rows = []
    for yr in range(0, horizon + 1):
        year_rows = [r for r in schedule if r.year == yr]
        row = {
            "Beginning Debt":  sum(r.beginning_balance for r in year_rows),
            "New Draws":       sum(r.new_draws for r in year_rows),
            "Interest":        sum(r.interest_expense for r in year_rows),
            "Principal Repaid": sum(r.principal_repayment for r in year_rows),
            "Ending Debt":     sum(r.ending_balance for r in year_rows),
        }
        for name in facilities:
            row[name] = sum(r.ending_balance for r in year_rows if r.facility == name)
        rows.append(row)
    return wide_frame(rows)
