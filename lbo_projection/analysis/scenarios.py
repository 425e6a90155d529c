"""
scenarios.py
------------
Runs the projection for the base / upper / lower valuation scenarios and
lines the headline numbers up in one comparison table.

Scenarios only differ in their ScenarioAssumptions; every run gets its own
input copy and allocates its own outputs, so they can run on a thread pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pandas as pd

from lbo_projection.model.assumptions import ProjectionInput, ScenarioAssumptions, default_scenarios
from lbo_projection.model.debt_schedule import total_debt
from lbo_projection.model.lbo_engine import ProjectionResult, run_projection
from lbo_projection.utils.formatting import fmt_irr, fmt_millions, fmt_moic, fmt_multiple

logger = logging.getLogger(__name__)

SCENARIO_NAMES = ["lower", "base", "upper"]


def run_scenarios(
    base_input: ProjectionInput,
    scenarios: dict[str, ScenarioAssumptions] | None = None,
    max_workers: int | None = None,
) -> dict:
    """
    Run every scenario.

    Parameters
    ----------
    base_input  : ProjectionInput whose scenario seeds the defaults
    scenarios   : name → ScenarioAssumptions (default: base / upper / lower)
    max_workers : run on a thread pool when > 1

    Returns
    -------
    {
      "results"      : {name: ProjectionResult},
      "inputs"       : {name: ProjectionInput},
      "comparison_df": pd.DataFrame (one row per scenario),
    }
    """
    scenarios = scenarios or default_scenarios(base_input.scenario)
    inputs = {name: replace(base_input, scenario=s) for name, s in scenarios.items()}
    logger.info("Running %d scenarios", len(inputs))

    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {name: pool.submit(run_projection, inp) for name, inp in inputs.items()}
            results = {name: fut.result() for name, fut in futures.items()}
    else:
        results = {name: run_projection(inp) for name, inp in inputs.items()}

    order = [n for n in SCENARIO_NAMES if n in results] + \
            [n for n in results if n not in SCENARIO_NAMES]
    rows = [_comparison_row(name, inputs[name], results[name]) for name in order]
    comparison_df = pd.DataFrame(rows).set_index("Scenario")

    return {
        "results":       results,
        "inputs":        inputs,
        "comparison_df": comparison_df,
    }


def _comparison_row(name: str, inp: ProjectionInput, result: ProjectionResult) -> dict:
    if not result.is_valid:
        return {"Scenario": name, "Status": "; ".join(result.errors)}
    k = result.kpi_metrics
    n = inp.planning_horizon
    last_cov = result.covenants[-1]
    return {
        "Scenario":          name,
        "Status":            "OK",
        "Entry EV/EBITDA":   fmt_multiple(k.entry_multiple, 1),
        "Exit EV/EBITDA":    fmt_multiple(k.exit_multiple, 1),
        "Entry EV":          fmt_millions(k.entry_enterprise_value),
        "Exit EV":           fmt_millions(k.exit_enterprise_value),
        "Exit Debt":         fmt_millions(total_debt(result.debt_schedule, n)),
        "Exit Equity":       fmt_millions(k.exit_equity_value),
        "Equity Invested":   fmt_millions(k.total_invested),
        "IRR":               fmt_irr(k.irr),
        "MOIC":              fmt_moic(k.moic),
        f"Yr{n} Net Leverage": fmt_multiple(last_cov.net_leverage),
    }
