"""
test_lbo_engine.py
------------------
End-to-end runs of the projection pipeline: the sample deal, rejected
inputs, internal faults and repeatability.
"""

from dataclasses import replace

import pytest

from lbo_projection.model.assumptions import EquityInjection, sample_input
from lbo_projection.model.debt_schedule import total_debt
from lbo_projection.model.lbo_engine import ProjectionResult, run_projection
from lbo_projection.model.validation import validate_results
from lbo_projection.model import lbo_engine

from conftest import with_deal


class TestSampleDeal:

    def test_entry_enterprise_value(self, sample_result):
        assert sample_result.kpi_metrics.entry_enterprise_value == pytest.approx(160_000.0)

    def test_term_loan_repaid_by_exit(self, sample_result):
        assert total_debt(sample_result.debt_schedule, 5) == 0.0
        assert sample_result.balance_sheet[5].debt == 0.0

    def test_final_year_equity(self, sample_result):
        bs, inc, cf = (sample_result.balance_sheet, sample_result.income_statement,
                       sample_result.cash_flow)
        assert bs[5].equity == pytest.approx(
            bs[4].equity + inc[5].net_income - cf[5].common_dividends, abs=0.01)

    def test_statements_cover_every_year(self, sample_result):
        assert sample_result.horizon == 5
        for rows in (sample_result.income_statement, sample_result.balance_sheet,
                     sample_result.cash_flow, sample_result.covenants):
            assert [r.year for r in rows] == list(range(6))

    def test_positive_returns(self, sample_result):
        k = sample_result.kpi_metrics
        assert k.irr > 0
        assert k.moic > 1
        assert k.total_invested == 100_000.0

    def test_fee_shortfall_is_the_only_warning(self, sample_result):
        assert sample_result.errors == []
        assert sample_result.warnings == [
            "Funding gap of 3,200K at closing: uses exceed sources"]
        assert sample_result.sources_and_uses.funding_gap == pytest.approx(3_200.0)


class TestFunding:

    def test_funded_deal_is_clean(self, funded_deal):
        result = run_projection(funded_deal)
        assert result.is_valid
        assert result.warnings == []
        assert result.cash_flow[0].ending_cash == pytest.approx(16_800.0)

    def test_underfunded_deal_flagged(self, underfunded_deal):
        result = run_projection(underfunded_deal)
        assert result.is_valid
        assert result.warnings == ["Funding gap of 53,200K at closing: uses exceed sources"]
        assert result.cash_flow[0].ending_cash == pytest.approx(-53_200.0)
        assert result.cash_flow[0].ending_cash == pytest.approx(
            -result.sources_and_uses.funding_gap)


class TestRejectedInput:

    def test_all_errors_reported(self, sample):
        bad = replace(sample, business_metrics=replace(sample.business_metrics, revenue=0.0))
        bad = with_deal(bad, equity_injections=(
            EquityInjection("A", 50_000.0, ownership_pct=80.0),
            EquityInjection("B", 50_000.0, ownership_pct=70.0),
        ))
        result = run_projection(bad)
        assert not result.is_valid
        assert len(result.errors) >= 2
        assert any("Revenue" in e for e in result.errors)
        assert any("ownership" in e for e in result.errors)
        assert result.income_statement == []
        assert result.kpi_metrics is None
        assert result.to_frames() == {}

    def test_pipeline_fault_becomes_invalid_result(self, sample, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("income statement exploded")

        monkeypatch.setattr(lbo_engine, "build_income_statement", explode)
        result = run_projection(sample)
        assert not result.is_valid
        assert result.errors == ["income statement exploded"]

    def test_validation_fault_becomes_invalid_result(self, sample):
        broken_plan = replace(sample.financing_plans[0], amount=None)
        result = run_projection(with_deal(sample, financing_plans=(broken_plan,)))
        assert not result.is_valid
        assert len(result.errors) == 1
        assert "not supported" in result.errors[0]
        assert result.kpi_metrics is None


class TestRepeatability:

    def test_same_input_same_output(self, sample):
        first, second = run_projection(sample), run_projection(sample)
        assert first.income_statement == second.income_statement
        assert first.balance_sheet == second.balance_sheet
        assert first.cash_flow == second.cash_flow
        assert first.debt_schedule == second.debt_schedule
        assert first.kpi_metrics.irr == second.kpi_metrics.irr

    def test_input_not_mutated(self):
        inp = sample_input()
        run_projection(inp)
        assert inp == sample_input()


class TestFrames:

    def test_wide_layout(self, sample_result):
        frames = sample_result.to_frames()
        assert set(frames) == {"income_statement", "balance_sheet", "cash_flow",
                               "debt_schedule", "covenants", "equity_returns",
                               "sources", "uses"}
        for name in ("income_statement", "balance_sheet", "cash_flow", "debt_schedule",
                     "covenants"):
            assert list(frames[name].columns) == [f"Year {i}" for i in range(6)], name
        assert frames["income_statement"].loc["Revenue", "Year 1"] == pytest.approx(105_000.0)
        assert frames["balance_sheet"].loc["BS Check (Assets - L+E)"].abs().max() < 0.01
        assert frames["equity_returns"].loc[0, "Tranche"] == "Sponsor Common"
        assert list(frames["sources"]["Item"]) == [
            "Senior Term Loan", "Sponsor Common", "Total Sources"]


class TestResultSanity:

    def test_nan_in_money_is_an_error(self, sample_result):
        broken = replace(sample_result,
                         kpi_metrics=replace(sample_result.kpi_metrics, npv=float("nan")))
        checked = validate_results(broken)
        assert not checked.is_valid
        assert checked.errors == ["kpi_metrics.npv contains NaN"]

    def test_undefined_irr_is_a_warning(self, sample_result):
        broken = replace(sample_result,
                         kpi_metrics=replace(sample_result.kpi_metrics, irr=float("nan")))
        checked = validate_results(broken)
        assert checked.is_valid
        assert checked.warnings == ["kpi_metrics.irr is undefined"]

    def test_infinity_is_an_error(self, sample_result):
        broken = ProjectionResult(warnings=[], kpi_metrics=replace(
            sample_result.kpi_metrics, exit_equity_value=float("inf")))
        assert validate_results(broken).errors == [
            "kpi_metrics.exit_equity_value contains an infinite value"]
