"""
balance_sheet.py
----------------
Builds the post-close Balance Sheet for Year 0 .. Year N in two phases.

Phase 1, provisional (build_provisional_balance_sheet):
  Opening (Year 0):
    Assets      = acquired target items + goodwill; cash opens at zero
                  (target cash is paid for inside the purchase price)
    Liabilities = acquired operating liabilities + new debt
                  + seller preferred shares + deferred purchase/fee payables
    Equity      = plug (Assets − Liabilities): no rollforward basis exists yet
  Projected (Year 1..N):
    AR          revenue / 365 × AR days
    Inventory   COGS / 365 × inventory days
    AP          COGS / 365 × AP days
    Other CL    scales with revenue at the opening ratio
    Fixed assets  prior + CapEx − D&A
    Goodwill    frozen at the opening value (no impairment)
    Debt        ending balances from the debt schedule
    Preferred   seller preferred schedule (issued less redemptions)
    Equity      ROLLFORWARD: prior + net income − preferred dividends
                + new equity.  Cash is held at the prior value and common
                dividends are not known yet.

Phase 2, reconcile_with_cash_flow:
  Returns new rows with the true ending cash; Year 0 equity re-plugged,
  later years rolled forward from the reconciled prior year less the common
  dividend.  The provisional rows are left untouched.

Assets = Liabilities + Equity holds in every year after phase 2 because
every balance movement has a matching cash-flow line.  All values in $K.
"""

from dataclasses import dataclass, replace

import pandas as pd

from lbo_projection.model.assumptions import ProjectionInput
from lbo_projection.model.debt_schedule import DebtScheduleRow, total_debt
from lbo_projection.model.deal_calculator import PreferredStockRow
from lbo_projection.model.income_statement import IncomeStatementRow
from lbo_projection.model import deal_calculator as deal
from lbo_projection.utils.frames import statement_frame

IDENTITY_TOLERANCE = 0.01


@dataclass(frozen=True)
class BalanceSheetRow:
    year: int
    cash: float
    accounts_receivable: float
    inventory: float
    fixed_assets: float
    goodwill: float
    accounts_payable: float
    other_current_liabilities: float
    other_long_term_liabilities: float
    debt: float
    preferred_stock: float
    deferred_payables: float
    equity: float

    @property
    def total_assets(self) -> float:
        return (self.cash + self.accounts_receivable + self.inventory
                + self.fixed_assets + self.goodwill)

    @property
    def total_liabilities(self) -> float:
        return (self.accounts_payable + self.other_current_liabilities
                + self.other_long_term_liabilities + self.debt
                + self.preferred_stock + self.deferred_payables)

    @property
    def total_liabilities_equity(self) -> float:
        return self.total_liabilities + self.equity

    @property
    def nwc(self) -> float:
        return (self.accounts_receivable + self.inventory
                - self.accounts_payable - self.other_current_liabilities)

    @property
    def balance_check(self) -> float:
        return self.total_assets - self.total_liabilities_equity

    @property
    def balances(self) -> bool:
        return abs(self.balance_check) <= IDENTITY_TOLERANCE


def _with_plugged_equity(row: BalanceSheetRow) -> BalanceSheetRow:
    return replace(row, equity=row.total_assets - row.total_liabilities)


# ---------------------------------------------------------------------------
# Phase 1
# ---------------------------------------------------------------------------

def build_opening_balance_sheet(
    inp: ProjectionInput,
    debt_schedule: list[DebtScheduleRow],
    preferred: list[PreferredStockRow],
) -> BalanceSheetRow:
    """Day-1 balance sheet; equity is the identity plug."""
    metrics, design = inp.business_metrics, inp.deal_design
    price = deal.purchase_price(metrics, inp.scenario.entry_multiple)
    acq = deal.acquired_balances(metrics, design)

    row = BalanceSheetRow(
        year=0,
        cash=0.0,
        accounts_receivable=acq.accounts_receivable,
        inventory=acq.inventory,
        fixed_assets=acq.ppe,
        goodwill=deal.goodwill(price, metrics, design),
        accounts_payable=acq.accounts_payable,
        other_current_liabilities=acq.other_current_liabilities,
        other_long_term_liabilities=acq.other_long_term_liabilities,
        debt=total_debt(debt_schedule, 0),
        preferred_stock=preferred[0].ending_balance,
        deferred_payables=deal.deferred_payables_opening(price, design),
        equity=0.0,
    )
    return _with_plugged_equity(row)


def _project_year(
    inp: ProjectionInput,
    prev: BalanceSheetRow,
    income: IncomeStatementRow,
    debt_schedule: list[DebtScheduleRow],
    preferred: PreferredStockRow,
    ocl_to_revenue: float,
) -> BalanceSheetRow:
    a = inp.assumptions
    yr = income.year
    price = deal.purchase_price(inp.business_metrics, inp.scenario.entry_multiple)

    preferred_dividends = preferred.dividend + inp.acquirer_preferred_dividends(yr)
    equity = (prev.equity + income.net_income - preferred_dividends
              + inp.equity_injected(yr))

    return BalanceSheetRow(
        year=yr,
        cash=prev.cash,
        accounts_receivable=income.revenue / 365 * a.ar_days,
        inventory=income.cogs / 365 * a.inventory_days,
        fixed_assets=prev.fixed_assets + income.capex - income.depreciation_amortization,
        goodwill=prev.goodwill,
        accounts_payable=income.cogs / 365 * a.ap_days,
        other_current_liabilities=income.revenue * ocl_to_revenue,
        other_long_term_liabilities=prev.other_long_term_liabilities,
        debt=total_debt(debt_schedule, yr),
        preferred_stock=preferred.ending_balance,
        deferred_payables=prev.deferred_payables - deal.deferred_payable_due(price, inp.deal_design, yr),
        equity=equity,
    )


def build_provisional_balance_sheet(
    inp: ProjectionInput,
    income_statement: list[IncomeStatementRow],
    debt_schedule: list[DebtScheduleRow],
    preferred: list[PreferredStockRow],
) -> list[BalanceSheetRow]:
    """
    Parameters
    ----------
    inp              : ProjectionInput
    income_statement : rows for years 0..N
    debt_schedule    : from debt_schedule.build_debt_schedule
    preferred        : from deal_calculator.preferred_stock_schedule

    Returns
    -------
    list[BalanceSheetRow], years 0..N, cash and common dividends unresolved.
    """
    if len(income_statement) < inp.planning_horizon + 1:
        raise ValueError("income statement shorter than the planning horizon")

    opening = build_opening_balance_sheet(inp, debt_schedule, preferred)
    revenue0 = inp.business_metrics.revenue
    ocl_to_revenue = opening.other_current_liabilities / revenue0 if revenue0 else 0.0

    rows = [opening]
    for yr in range(1, inp.planning_horizon + 1):
        rows.append(_project_year(inp, rows[-1], income_statement[yr], debt_schedule,
                                  preferred[yr], ocl_to_revenue))
    return rows


# ---------------------------------------------------------------------------
# Phase 2
# ---------------------------------------------------------------------------

def reconcile_with_cash_flow(provisional: list[BalanceSheetRow], cash_flows) -> list[BalanceSheetRow]:
    """Final balance sheet from the provisional rows and the cash flow statement."""
    final = []
    for prov, cf in zip(provisional, cash_flows):
        if prov.year == 0:
            final.append(_with_plugged_equity(replace(prov, cash=cf.ending_cash)))
            continue
        prev_prov = provisional[prov.year - 1]
        equity = final[-1].equity + (prov.equity - prev_prov.equity) - cf.common_dividends
        final.append(replace(prov, cash=cf.ending_cash, equity=equity))
    return final


BS_LABELS = {
    "cash":                        "Cash",
    "accounts_receivable":         "Accounts Receivable",
    "inventory":                   "Inventory",
    "fixed_assets":                "Fixed Assets",
    "goodwill":                    "Goodwill",
    "total_assets":                "Total Assets",
    "accounts_payable":            "Accounts Payable",
    "other_current_liabilities":   "Other Current Liabilities",
    "other_long_term_liabilities": "Other LT Liabilities",
    "debt":                        "Debt",
    "preferred_stock":             "Preferred Stock",
    "deferred_payables":           "Deferred Payables",
    "total_liabilities":           "Total Liabilities",
    "equity":                      "Equity",
    "total_liabilities_equity":    "Total L+E",
    "nwc":                         "Net Working Capital",
    "balance_check":               "BS Check (Assets - L+E)",
}


def balance_sheet_df(rows: list[BalanceSheetRow]) -> pd.DataFrame:
    return statement_frame(rows, BS_LABELS)
