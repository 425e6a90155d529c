"""
covenants.py
------------
Covenant compliance on the projected capital structure.

Computed metrics (by year, Year 0 .. Year N):
  - DSCR                 EBITDA / (interest + principal)
  - Interest Coverage    EBITDA / interest
  - Net Leverage         (debt − cash) / EBITDA
  - Gross Leverage       debt / EBITDA
  - Headroom against each threshold, and overall compliance

No debt service (or no interest) gives the 999.0 sentinel rather than a
division by zero; non-positive EBITDA gives zero leverage.
"""

from dataclasses import dataclass

import pandas as pd

from lbo_projection.model.debt_schedule import (
    DebtScheduleRow, total_debt, total_interest, total_principal,
)
from lbo_projection.utils.frames import statement_frame

NO_DEBT_SERVICE = 999.0


@dataclass(frozen=True)
class CovenantThresholds:
    min_dscr: float = 1.2
    min_interest_coverage: float = 2.5
    max_net_leverage: float = 5.0


@dataclass(frozen=True)
class CovenantRow:
    year: int
    ebitda: float
    total_debt: float
    cash: float
    interest_expense: float
    principal_repayment: float
    dscr: float
    interest_coverage: float
    net_leverage: float
    gross_leverage: float
    dscr_headroom: float
    interest_coverage_headroom: float
    net_leverage_headroom: float
    is_compliant: bool

    @property
    def debt_service(self) -> float:
        return self.interest_expense + self.principal_repayment


def covenant_row(year, ebitda, debt, cash, interest, principal,
                 thresholds: CovenantThresholds) -> CovenantRow:
    service = interest + principal
    dscr = ebitda / service if service > 0 else NO_DEBT_SERVICE
    coverage = ebitda / interest if interest > 0 else NO_DEBT_SERVICE
    net_lev = (debt - cash) / ebitda if ebitda > 0 else 0.0
    gross_lev = debt / ebitda if ebitda > 0 else 0.0
    return CovenantRow(
        year=year,
        ebitda=ebitda,
        total_debt=debt,
        cash=cash,
        interest_expense=interest,
        principal_repayment=principal,
        dscr=dscr,
        interest_coverage=coverage,
        net_leverage=net_lev,
        gross_leverage=gross_lev,
        dscr_headroom=dscr - thresholds.min_dscr,
        interest_coverage_headroom=coverage - thresholds.min_interest_coverage,
        net_leverage_headroom=thresholds.max_net_leverage - net_lev,
        is_compliant=(dscr >= thresholds.min_dscr
                      and coverage >= thresholds.min_interest_coverage
                      and net_lev <= thresholds.max_net_leverage),
    )


def build_covenants(
    income_statement,
    cash_flows,
    debt_schedule: list[DebtScheduleRow],
    thresholds: CovenantThresholds | None = None,
) -> list[CovenantRow]:
    """One row per income-statement year; cash is the year's ending cash."""
    thresholds = thresholds or CovenantThresholds()
    ending_cash = {cf.year: cf.ending_cash for cf in cash_flows}
    return [
        covenant_row(
            inc.year,
            inc.ebitda,
            total_debt(debt_schedule, inc.year),
            ending_cash.get(inc.year, 0.0),
            total_interest(debt_schedule, inc.year),
            total_principal(debt_schedule, inc.year),
            thresholds,
        )
        for inc in income_statement
    ]


def breaches(rows: list[CovenantRow]) -> list[int]:
    """Years out of compliance."""
    return [r.year for r in rows if not r.is_compliant]


COVENANT_LABELS = {
    "ebitda":                     "EBITDA",
    "total_debt":                 "Total Debt",
    "cash":                       "Cash",
    "debt_service":               "Debt Service",
    "dscr":                       "DSCR (x)",
    "dscr_headroom":              "DSCR Headroom (x)",
    "interest_coverage":          "Interest Coverage (x)",
    "interest_coverage_headroom": "Coverage Headroom (x)",
    "net_leverage":               "Net Leverage (x)",
    "net_leverage_headroom":      "Leverage Headroom (x)",
    "gross_leverage":             "Gross Leverage (x)",
    "is_compliant":               "In Compliance",
}


def covenant_df(rows: list[CovenantRow]) -> pd.DataFrame:
    return statement_frame(rows, COVENANT_LABELS)
