"""
sensitivity.py
--------------
Two-way sensitivity tables for sponsor returns.

Table 1: Entry EV/EBITDA (rows) vs Exit EV/EBITDA (cols) → IRR and MOIC
Table 2: Revenue growth (rows) vs Exit EV/EBITDA (cols) → IRR

Points where the projection is rejected or returns are undefined are NaN.
"""

from dataclasses import replace

import numpy as np
import pandas as pd

from lbo_projection.model.assumptions import ProjectionInput, sample_input
from lbo_projection.model.lbo_engine import run_projection


def _run_point(base: ProjectionInput, **overrides) -> tuple[float, float]:
    """Run with scenario / assumption overrides, return (irr, moic)."""
    scenario = replace(
        base.scenario,
        entry_multiple=overrides.get("entry_multiple", base.scenario.entry_multiple),
        exit_multiple=overrides.get("exit_multiple", base.scenario.exit_multiple),
    )
    assumptions = replace(
        base.assumptions,
        revenue_growth_rate=overrides.get("revenue_growth_rate",
                                          base.assumptions.revenue_growth_rate),
    )
    result = run_projection(replace(base, scenario=scenario, assumptions=assumptions))
    if not result.is_valid:
        return np.nan, np.nan
    return result.kpi_metrics.irr, result.kpi_metrics.moic


def entry_vs_exit_multiple(
    base: ProjectionInput | None = None,
    entry_multiples: list[float] = [6.0, 7.0, 8.0, 9.0, 10.0],
    exit_multiples:  list[float] = [6.0, 8.0, 10.0, 12.0, 14.0],
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Returns (irr_table, moic_table).
    Rows = entry EV/EBITDA, Columns = exit EV/EBITDA.
    """
    base = base or sample_input()
    irr_data = {}
    moic_data = {}

    for exit_m in exit_multiples:
        irr_col = {}
        moic_col = {}
        for entry_m in entry_multiples:
            irr, moic = _run_point(base, entry_multiple=entry_m, exit_multiple=exit_m)
            irr_col[f"{entry_m:.1f}x"] = irr
            moic_col[f"{entry_m:.1f}x"] = moic
        irr_data[f"Exit {exit_m:.1f}x"] = irr_col
        moic_data[f"Exit {exit_m:.1f}x"] = moic_col

    irr_df = pd.DataFrame(irr_data)
    moic_df = pd.DataFrame(moic_data)
    irr_df.index.name = "Entry Multiple"
    moic_df.index.name = "Entry Multiple"
    return irr_df, moic_df


def growth_vs_exit_multiple(
    base: ProjectionInput | None = None,
    growth_rates:   list[float] = [-0.02, 0.00, 0.02, 0.05, 0.08],
    exit_multiples: list[float] = [6.0, 8.0, 10.0, 12.0, 14.0],
) -> pd.DataFrame:
    """IRR sensitivity: rows = revenue growth, cols = exit multiple."""
    base = base or sample_input()
    irr_data = {}

    for exit_m in exit_multiples:
        col = {}
        for g in growth_rates:
            irr, _ = _run_point(base, revenue_growth_rate=g, exit_multiple=exit_m)
            col[f"{g:+.0%}"] = irr
        irr_data[f"Exit {exit_m:.1f}x"] = col

    df = pd.DataFrame(irr_data)
    df.index.name = "Revenue Growth"
    return df
