"""
test_analysis.py
----------------
Covenant table, scenario comparison, sensitivity grids, ratio table and
display formatting.
"""

import math

import numpy as np
import pytest

from lbo_projection.analysis.covenants import (
    NO_DEBT_SERVICE, CovenantThresholds, breaches, covenant_row,
)
from lbo_projection.analysis.ratios import build_ratio_table, safe_ratio
from lbo_projection.analysis.scenarios import run_scenarios
from lbo_projection.analysis.sensitivity import entry_vs_exit_multiple, growth_vs_exit_multiple
from lbo_projection.model.assumptions import (
    ScenarioAssumptions, default_scenarios, lower_scenario, upper_scenario,
)
from lbo_projection.model.lbo_engine import run_projection
from lbo_projection.utils.formatting import (
    fmt_irr, fmt_millions, fmt_moic, fmt_multiple, fmt_pct, fmt_thousands, format_statement_df,
)


class TestCovenants:

    def test_year_zero_sentinel(self, sample_result):
        y0 = sample_result.covenants[0]
        assert y0.dscr == NO_DEBT_SERVICE
        assert y0.interest_coverage == NO_DEBT_SERVICE
        # year-0 cash is the -3,200 fee shortfall
        assert y0.net_leverage == pytest.approx((60_000.0 + 3_200.0) / 20_000.0)

    def test_year_one_metrics(self, sample_result):
        y1 = sample_result.covenants[1]
        assert y1.debt_service == pytest.approx(15_600.0)
        assert y1.dscr == pytest.approx(21_000.0 / 15_600.0)
        assert y1.interest_coverage == pytest.approx(21_000.0 / 3_600.0)
        assert y1.gross_leverage == pytest.approx(48_000.0 / 21_000.0)
        assert y1.is_compliant

    def test_custom_thresholds(self, sample):
        result = run_projection(sample, CovenantThresholds(min_dscr=1.5))
        years = breaches(result.covenants)
        assert 1 in years
        assert 0 not in years
        assert result.covenants[1].dscr_headroom < 0

    def test_non_positive_ebitda(self):
        row = covenant_row(3, -10.0, 5_000.0, 100.0, 0.0, 0.0, CovenantThresholds())
        assert row.net_leverage == 0.0
        assert row.dscr == NO_DEBT_SERVICE


class TestScenarios:

    def test_default_scenarios(self):
        base = ScenarioAssumptions("base", 8.0, 10.0)
        scenarios = default_scenarios(base)
        assert scenarios["upper"].exit_multiple == 12.0
        assert scenarios["lower"].exit_multiple == 8.0
        assert scenarios["upper"].entry_multiple == 8.0
        assert lower_scenario(ScenarioAssumptions("x", 5.0, 2.5)).exit_multiple == 1.0
        assert upper_scenario(base).name == "upper"

    def test_exit_multiple_drives_irr(self, sample):
        out = run_scenarios(sample)
        irr = {name: r.kpi_metrics.irr for name, r in out["results"].items()}
        assert irr["upper"] > irr["base"] > irr["lower"]
        assert list(out["comparison_df"].index) == ["lower", "base", "upper"]
        assert (out["comparison_df"]["Status"] == "OK").all()

    def test_thread_pool_matches_serial(self, sample):
        serial = run_scenarios(sample)["results"]
        pooled = run_scenarios(sample, max_workers=3)["results"]
        for name in serial:
            assert pooled[name].kpi_metrics.irr == serial[name].kpi_metrics.irr
            assert pooled[name].balance_sheet == serial[name].balance_sheet

    def test_invalid_scenario_reported(self, sample):
        out = run_scenarios(sample, {"broken": ScenarioAssumptions("broken", 8.0, -1.0)})
        assert not out["results"]["broken"].is_valid
        assert "Exit" in out["comparison_df"].loc["broken", "Status"]


class TestSensitivity:

    def test_entry_vs_exit_grid(self, sample):
        irr_df, moic_df = entry_vs_exit_multiple(sample, [7.0, 8.0], [8.0, 10.0])
        assert irr_df.shape == (2, 2) and moic_df.shape == (2, 2)
        assert list(irr_df.index) == ["7.0x", "8.0x"]
        assert list(irr_df.columns) == ["Exit 8.0x", "Exit 10.0x"]
        for label in irr_df.index:
            assert irr_df.loc[label, "Exit 10.0x"] > irr_df.loc[label, "Exit 8.0x"]
        assert irr_df.loc["8.0x", "Exit 10.0x"] == pytest.approx(
            run_projection(sample).kpi_metrics.irr)

    def test_growth_grid(self, sample):
        df = growth_vs_exit_multiple(sample, [0.0, 0.05], [10.0])
        assert list(df.index) == ["+0%", "+5%"]
        assert df.loc["+5%", "Exit 10.0x"] > df.loc["+0%", "Exit 10.0x"]

    def test_rejected_points_are_nan(self, sample):
        irr_df, _ = entry_vs_exit_multiple(sample, [8.0], [60.0])
        assert np.isnan(irr_df.loc["8.0x", "Exit 60.0x"])


class TestRatios:

    def test_ratio_table(self, sample, sample_result):
        df = build_ratio_table(sample_result, sample.assumptions.tax_rate)
        assert list(df.columns) == [f"Year {i}" for i in range(6)]
        assert df.loc["Revenue Growth", "Year 0"] == 0.0
        assert df.loc["Revenue Growth", "Year 1"] == pytest.approx(0.05)
        assert df.loc["EBITDA Margin", "Year 3"] == pytest.approx(0.20)
        cf1 = sample_result.cash_flow[1]
        assert df.loc["Free Cash Flow", "Year 1"] == pytest.approx(
            cf1.operating_cash_flow - cf1.capex)

    def test_safe_ratio(self):
        assert safe_ratio(5.0, 0.0) == 0.0
        assert safe_ratio(5.0, 2.0) == 2.5


class TestFormatting:

    def test_helpers(self):
        assert fmt_millions(160_000.0) == "$160.0M"
        assert fmt_thousands(12_345.4) == "$12,345K"
        assert fmt_thousands(None) == "—"
        assert fmt_pct(0.1234) == "12.3%"
        assert fmt_multiple(2.5) == "2.50x"
        assert fmt_irr(0.215) == "21.5%"
        assert fmt_irr(math.nan) == "N/A"
        assert fmt_moic(2.0) == "2.00x"

    def test_statement_formatting(self, sample_result):
        df = format_statement_df(sample_result.to_frames()["income_statement"])
        assert df.loc["Revenue", "Year 1"] == "$105.0M"
        assert df.loc["EBITDA Margin", "Year 1"] == "20.0%"
