"""
ratios.py
---------
Year-by-year financial ratios on a finished projection.

  Revenue Growth, EBITDA Margin, Net Margin
  ROA (net income / total assets), ROE (net income / equity)
  Debt Ratio (total liabilities / total assets)
  Free Cash Flow (OCF − CapEx)
  Unlevered FCF  EBITDA − taxes on EBIT − CapEx − ΔNWC
  Levered FCF    unlevered FCF − interest − principal

Zero denominators give 0.0 rather than NaN.
"""

import pandas as pd

from lbo_projection.model.debt_schedule import total_principal
from lbo_projection.utils.frames import wide_frame


def safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def build_ratio_table(result, tax_rate: float) -> pd.DataFrame:
    """result: a valid ProjectionResult.  tax_rate: the run's tax assumption."""
    rows = []
    prev_revenue = None
    for inc, bs, cf in zip(result.income_statement, result.balance_sheet, result.cash_flow):
        unlevered = (inc.ebitda - max(0.0, inc.ebit) * tax_rate
                     - cf.capex - cf.nwc_change)
        debt_service = inc.interest_expense + total_principal(result.debt_schedule, inc.year)
        rows.append({
            "Revenue Growth": safe_ratio(inc.revenue - prev_revenue, prev_revenue)
                              if prev_revenue else 0.0,
            "EBITDA Margin":  safe_ratio(inc.ebitda, inc.revenue),
            "Net Margin":     safe_ratio(inc.net_income, inc.revenue),
            "ROA":            safe_ratio(inc.net_income, bs.total_assets),
            "ROE":            safe_ratio(inc.net_income, bs.equity),
            "Debt Ratio":     safe_ratio(bs.total_liabilities, bs.total_assets),
            "Free Cash Flow": cf.operating_cash_flow - cf.capex,
            "Unlevered FCF":  unlevered,
            "Levered FCF":    unlevered - debt_service,
        })
        prev_revenue = inc.revenue
    return wide_frame(rows)
