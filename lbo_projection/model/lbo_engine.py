"""
lbo_engine.py
-------------
Master orchestrator: runs the full projection for one ProjectionInput and
returns everything in a single ProjectionResult.

Pipeline (strictly sequential, each stage reads the full output of the
previous one):
  1. Input validation            → short-circuit on failure
     (includes the closing sources & uses funding check)
  2. Debt schedule
  3. Seller preferred schedule
  4. Income statement
  5. Provisional balance sheet
  6. Cash flow statement (dividend policy)
  7. Final balance sheet (reconciled with cash flow)
  8. Covenants
  9. Equity returns and KPIs
 10. Results sanity scan

Any exception raised by validation or the pipeline is logged and turned into an
invalid result; callers never see it.  Each call builds fresh objects, so
runs are independent and can be executed in parallel.

All monetary values in $K.
"""

import logging
from dataclasses import dataclass, field

import pandas as pd

from lbo_projection.analysis.covenants import (
    CovenantRow, CovenantThresholds, build_covenants, covenant_df,
)
from lbo_projection.model.assumptions import ProjectionInput
from lbo_projection.model.balance_sheet import (
    BalanceSheetRow, balance_sheet_df, build_provisional_balance_sheet,
    reconcile_with_cash_flow,
)
from lbo_projection.model.cash_flow import CashFlowRow, build_cash_flow_statement, cash_flow_df
from lbo_projection.model.debt_schedule import DebtScheduleRow, build_debt_schedule, debt_summary_df
from lbo_projection.model.equity_returns import (
    KPIMetrics, TrancheReturn, build_equity_returns, build_kpi_metrics,
)
from lbo_projection.model.income_statement import (
    IncomeStatementRow, build_income_statement, income_statement_df,
)
from lbo_projection.model.validation import check_integrity, validate_input, validate_results
from lbo_projection.model import deal_calculator as deal

logger = logging.getLogger(__name__)


@dataclass
class ProjectionResult:
    income_statement: list[IncomeStatementRow] = field(default_factory=list)
    balance_sheet: list[BalanceSheetRow] = field(default_factory=list)
    cash_flow: list[CashFlowRow] = field(default_factory=list)
    debt_schedule: list[DebtScheduleRow] = field(default_factory=list)
    covenants: list[CovenantRow] = field(default_factory=list)
    kpi_metrics: KPIMetrics | None = None
    equity_returns: list[TrancheReturn] = field(default_factory=list)
    sources_and_uses: deal.SourcesAndUses | None = None
    is_valid: bool = False
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def horizon(self) -> int:
        return len(self.income_statement) - 1

    def to_frames(self) -> dict[str, pd.DataFrame]:
        """Wide statement DataFrames ("Year 0".."Year N" columns)."""
        if not self.is_valid:
            return {}
        returns = pd.DataFrame([
            {
                "Tranche":     tr.name,
                "Type":        tr.equity_type.value,
                "Invested":    tr.investment,
                "Dividends":   tr.dividends,
                "Exit Proceeds": tr.exit_proceeds,
                "MOIC":        tr.moic,
                "IRR":         tr.irr,
                "NPV":         tr.npv,
            }
            for tr in self.equity_returns
        ])
        sources, uses = deal.sources_uses_df(self.sources_and_uses)
        return {
            "income_statement": income_statement_df(self.income_statement),
            "balance_sheet":    balance_sheet_df(self.balance_sheet),
            "cash_flow":        cash_flow_df(self.cash_flow),
            "debt_schedule":    debt_summary_df(self.debt_schedule, self.horizon),
            "covenants":        covenant_df(self.covenants),
            "equity_returns":   returns,
            "sources":          sources,
            "uses":             uses,
        }


def _run_pipeline(inp: ProjectionInput, thresholds: CovenantThresholds | None) -> ProjectionResult:
    n = inp.planning_horizon
    price = deal.purchase_price(inp.business_metrics, inp.scenario.entry_multiple)

    debt_sched = build_debt_schedule(inp.financing_plans, n, inp.assumptions)
    preferred = deal.preferred_stock_schedule(price, inp.deal_design, n)
    is_rows = build_income_statement(inp, debt_sched)
    provisional = build_provisional_balance_sheet(inp, is_rows, debt_sched, preferred)
    cf_rows = build_cash_flow_statement(inp, is_rows, provisional, debt_sched, preferred)
    bs_rows = reconcile_with_cash_flow(provisional, cf_rows)
    covenants = build_covenants(is_rows, cf_rows, debt_sched, thresholds)
    tranche_returns = build_equity_returns(inp, is_rows, cf_rows, debt_sched)
    kpis = build_kpi_metrics(inp, tranche_returns, is_rows, debt_sched)

    return ProjectionResult(
        income_statement=is_rows,
        balance_sheet=bs_rows,
        cash_flow=cf_rows,
        debt_schedule=debt_sched,
        covenants=covenants,
        kpi_metrics=kpis,
        equity_returns=tranche_returns,
        sources_and_uses=deal.sources_and_uses(inp),
        is_valid=True,
    )


def run_projection(
    inp: ProjectionInput,
    thresholds: CovenantThresholds | None = None,
) -> ProjectionResult:
    """
    Run the full projection.

    Returns
    -------
    ProjectionResult; is_valid=False with the error list when the input
    fails validation or the pipeline raises.
    """
    input_warnings = []
    try:
        checked = validate_input(inp)
        input_warnings = checked.warnings
        if not checked.is_valid:
            logger.warning("Projection input rejected: %s", "; ".join(checked.errors))
            return ProjectionResult(is_valid=False, errors=checked.errors,
                                    warnings=input_warnings)
        for warning in input_warnings:
            logger.warning("Input warning: %s", warning)

        logger.info("Running %r scenario over %d years", inp.scenario.name, inp.planning_horizon)
        result = _run_pipeline(inp, thresholds)
    except Exception as exc:
        logger.exception("Projection failed")
        return ProjectionResult(is_valid=False, errors=[str(exc) or type(exc).__name__],
                                warnings=input_warnings)

    sanity = validate_results(result)
    integrity = check_integrity(result.balance_sheet, result.cash_flow)
    result.warnings = input_warnings + sanity.warnings + sanity.errors + integrity
    if sanity.errors or integrity:
        logger.warning("Projection finished with %d sanity findings",
                       len(sanity.errors) + len(integrity))
    logger.info("Projection complete: IRR %.2f%%, MOIC %.2fx",
                result.kpi_metrics.irr * 100, result.kpi_metrics.moic)
    return result
