"""
income_statement.py
-------------------
Projects the Income Statement for Year 0 .. Year N.

Revenue → Gross Profit → EBITDA → EBIT → EBT → Net Income

Notes:
  - Year 0 is the target's last reported year, passed through as-is.
  - Depreciation is derived, not input: an estimated fixed-asset base
    (the PP&E that comes across in the deal, rolled forward with capex less
    depreciation) divided by fixed_assets_to_capex_multiple, which stands
    in for the useful life.  An asset deal that leaves PP&E behind starts
    from zero, matching the opening balance sheet.
  - Interest expense comes from the debt schedule (no circularity: debt
    service does not depend on cash generation).
  - Asset deals expense post-closing purchase installments below EBITDA.
  - Tax only on positive EBT; losses give zero tax, not a credit.
  - All values in $K.
"""

from dataclasses import dataclass

import pandas as pd

from lbo_projection.model.assumptions import ProjectionInput
from lbo_projection.model.debt_schedule import DebtScheduleRow, total_interest
from lbo_projection.model import deal_calculator as deal
from lbo_projection.utils.frames import statement_frame


@dataclass(frozen=True)
class IncomeStatementRow:
    year: int
    revenue: float
    cogs: float
    operating_expenses: float
    ebitda: float
    depreciation_amortization: float
    deferred_payment_expense: float
    interest_expense: float
    taxes: float
    net_income: float
    capex: float = 0.0

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cogs

    @property
    def gross_margin(self) -> float:
        return self.gross_profit / self.revenue if self.revenue else 0.0

    @property
    def ebitda_margin(self) -> float:
        return self.ebitda / self.revenue if self.revenue else 0.0

    @property
    def ebit(self) -> float:
        return self.ebitda - self.depreciation_amortization - self.deferred_payment_expense

    @property
    def ebt(self) -> float:
        return self.ebit - self.interest_expense


def _year_zero(inp: ProjectionInput) -> IncomeStatementRow:
    m, a = inp.business_metrics, inp.assumptions
    cogs = m.cogs if m.cogs is not None else m.revenue * a.cogs_pct
    opex = m.operating_expenses if m.operating_expenses is not None else m.revenue * a.opex_pct
    return IncomeStatementRow(
        year=0,
        revenue=m.revenue,
        cogs=cogs,
        operating_expenses=opex,
        ebitda=m.ebitda,
        depreciation_amortization=m.depreciation_amortization,
        deferred_payment_expense=0.0,
        interest_expense=m.interest_expense,
        taxes=m.tax_expense,
        net_income=m.reported_net_income,
    )


def build_income_statement(
    inp: ProjectionInput,
    debt_schedule: list[DebtScheduleRow],
) -> list[IncomeStatementRow]:
    """One row per year 0..N."""
    a = inp.assumptions
    price = deal.purchase_price(inp.business_metrics, inp.scenario.entry_multiple)
    useful_life = max(1.0, a.fixed_assets_to_capex_multiple)

    rows = [_year_zero(inp)]
    base_revenue = inp.business_metrics.revenue
    # D&A base starts at the PPE carried onto the opening balance sheet
    fixed_assets = deal.acquired_balances(inp.business_metrics, inp.deal_design).ppe

    for yr in range(1, inp.planning_horizon + 1):
        revenue = base_revenue * (1 + a.revenue_growth_rate) ** yr
        cogs = revenue * a.cogs_pct
        opex = revenue * a.opex_pct
        ebitda = revenue - cogs - opex
        capex = revenue * a.capex_pct

        # ---- D&A off the estimated fixed-asset base ----
        da = fixed_assets / useful_life
        fixed_assets = max(0.0, fixed_assets + capex - da)

        deferred = deal.deferred_payment_expense(price, inp.deal_design, yr)
        interest = total_interest(debt_schedule, yr)

        ebt = ebitda - da - deferred - interest
        taxes = max(0.0, ebt) * a.tax_rate

        rows.append(IncomeStatementRow(
            year=yr,
            revenue=revenue,
            cogs=cogs,
            operating_expenses=opex,
            ebitda=ebitda,
            depreciation_amortization=da,
            deferred_payment_expense=deferred,
            interest_expense=interest,
            taxes=taxes,
            net_income=ebt - taxes,
            capex=capex,
        ))
    return rows


IS_LABELS = {
    "revenue":                   "Revenue",
    "cogs":                      "COGS",
    "gross_profit":              "Gross Profit",
    "gross_margin":              "Gross Margin",
    "operating_expenses":        "Operating Expenses",
    "ebitda":                    "EBITDA",
    "ebitda_margin":             "EBITDA Margin",
    "depreciation_amortization": "D&A",
    "deferred_payment_expense":  "Deferred Payment Expense",
    "ebit":                      "EBIT",
    "interest_expense":          "Interest Expense",
    "ebt":                       "EBT",
    "taxes":                     "Tax",
    "net_income":                "Net Income",
    "capex":                     "CapEx",
}


def income_statement_df(rows: list[IncomeStatementRow]) -> pd.DataFrame:
    return statement_frame(rows, IS_LABELS)
