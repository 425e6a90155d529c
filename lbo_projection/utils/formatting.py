"""
formatting.py
-------------
Number formatting helpers for comparison tables and statement printouts.
Engine values are in $K; fmt_millions converts for display.
"""

import numpy as np
import pandas as pd


def _missing(val) -> bool:
    return val is None or pd.isna(val)


def fmt_thousands(val, decimals: int = 0) -> str:
    if _missing(val):
        return "—"
    return f"${val:,.{decimals}f}K"


def fmt_millions(val, decimals: int = 1) -> str:
    """val in $K."""
    if _missing(val):
        return "—"
    return f"${val / 1_000:,.{decimals}f}M"


def fmt_pct(val, decimals: int = 1) -> str:
    if _missing(val):
        return "—"
    return f"{val:.{decimals}%}"


def fmt_multiple(val, decimals: int = 2) -> str:
    if _missing(val):
        return "—"
    return f"{val:.{decimals}f}x"


def fmt_irr(val) -> str:
    if val is None or (isinstance(val, float) and np.isnan(val)):
        return "N/A"
    return f"{val:.1%}"


def fmt_moic(val) -> str:
    if val is None or (isinstance(val, float) and np.isnan(val)):
        return "N/A"
    return f"{val:.2f}x"


# Statement rows that are ratios rather than money
PCT_ROWS = {"Gross Margin", "EBITDA Margin"}
MULTIPLE_ROWS = {"DSCR (x)", "Interest Coverage (x)", "Net Leverage (x)",
                 "Gross Leverage (x)", "DSCR Headroom (x)", "Coverage Headroom (x)",
                 "Leverage Headroom (x)"}


def format_statement_df(df: pd.DataFrame) -> pd.DataFrame:
    """$M for money rows, % for margins, x for multiples; other rows untouched."""
    out = df.copy().astype(object)
    for row_label in df.index:
        for col in df.columns:
            v = df.loc[row_label, col]
            if isinstance(v, (bool, np.bool_)):
                continue
            if row_label in PCT_ROWS:
                out.loc[row_label, col] = fmt_pct(v)
            elif row_label in MULTIPLE_ROWS:
                out.loc[row_label, col] = fmt_multiple(v)
            else:
                out.loc[row_label, col] = fmt_millions(v)
    return out
