"""
frames.py
---------
Turns per-year records into the wide statement layout used everywhere:
one column per year ("Year 0" .. "Year N"), one row per line item.
"""

import pandas as pd


def year_columns(first: int, last: int) -> list[str]:
    return [f"Year {i}" for i in range(first, last + 1)]


def wide_frame(rows: list[dict], first_year: int = 0) -> pd.DataFrame:
    """rows[i] holds the line items of year first_year + i."""
    cols = year_columns(first_year, first_year + len(rows) - 1)
    return pd.DataFrame({col: row for col, row in zip(cols, rows)})


def statement_frame(records, labels: dict[str, str]) -> pd.DataFrame:
    """
    Wide DataFrame from statement rows (anything with a `year` attribute).

    labels maps attribute name -> display label, in display order.
    Properties work as well as fields.
    """
    data = {
        f"Year {rec.year}": {label: getattr(rec, attr) for attr, label in labels.items()}
        for rec in records
    }
    return pd.DataFrame(data)
