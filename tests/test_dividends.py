"""
test_dividends.py
-----------------
Common dividend policy: cash reserve, payout tiers, covenant gate and the
distribution waterfall.
"""

from dataclasses import replace

import pytest

from lbo_projection.model.assumptions import (
    DEFAULT_TIERS, CovenantThreshold, DebtProtectionCovenants, DividendPolicySettings,
    DividendTier, WaterfallCalculation, WaterfallKind, WaterfallRule,
)
from lbo_projection.model.cash_flow import (
    apply_waterfall, decide_common_dividend, failed_covenants, minimum_cash_reserve,
    select_payout_ratio,
)
from lbo_projection.model.lbo_engine import run_projection

from conftest import NO_RESERVE_POLICY, with_deal


@pytest.fixture
def year_one(sample_result):
    """Year-1 income and balance rows of the sample deal, plus its debt service."""
    income = sample_result.income_statement[1]
    balance = sample_result.balance_sheet[1]
    return income, balance, 3_600.0 + 12_000.0


def decide(inp, year_one, ending_cash, fcff=10_000.0, preferred_outstanding=0.0):
    income, balance, service = year_one
    return decide_common_dividend(inp, income, balance, service, ending_cash,
                                  fcff, preferred_outstanding)


class TestCashReserve:

    def test_three_months_of_operating_costs(self, year_one):
        income = year_one[0]
        # (105,000 revenue − 21,000 EBITDA) / 12 × 3
        assert minimum_cash_reserve(income, DebtProtectionCovenants()) == pytest.approx(21_000.0)

    def test_disabled_reserve(self, year_one):
        covenants = DebtProtectionCovenants(min_cash_months=CovenantThreshold(3.0, enabled=False))
        assert minimum_cash_reserve(year_one[0], covenants) == 0.0

    def test_nothing_paid_below_reserve(self, sample, year_one):
        dividend, diag = decide(sample, year_one, ending_cash=15_000.0)
        assert dividend == 0.0
        assert diag.available_for_dividend == 0.0
        assert diag.reason == "no cash above the minimum reserve"

    def test_payout_of_cash_above_reserve(self, sample, year_one):
        dividend, diag = decide(sample, year_one, ending_cash=50_000.0)
        assert diag.available_for_dividend == pytest.approx(29_000.0)
        assert diag.payout_ratio == 0.5
        assert dividend == pytest.approx(14_500.0)


class TestPayoutTiers:

    @pytest.mark.parametrize("ebitda,fcff,leverage,ratio,name", [
        (120_000.0, 70_000.0, 2.0, 0.70, "Aggressive payout"),
        (120_000.0, 70_000.0, 3.0, 0.50, "Standard payout"),
        (90_000.0, 45_000.0, 3.0, 0.50, "Standard payout"),
        (60_000.0, 25_000.0, 4.0, 0.30, "Base payout"),
        (60_000.0, 25_000.0, 6.0, 0.0, None),
        (40_000.0, 90_000.0, 1.0, 0.0, None),
    ])
    def test_best_passing_tier(self, ebitda, fcff, leverage, ratio, name):
        policy = DividendPolicySettings(tiers=DEFAULT_TIERS)
        assert select_payout_ratio(policy, ebitda, fcff, leverage) == (ratio, name)

    def test_default_ratio_without_tiers(self):
        policy = DividendPolicySettings(tiers=(), default_payout_ratio=0.5)
        assert select_payout_ratio(policy, 1.0, -5.0, 99.0) == (0.5, None)

    def test_tier_order_does_not_matter(self):
        policy = DividendPolicySettings(tiers=tuple(reversed(DEFAULT_TIERS)))
        assert select_payout_ratio(policy, 120_000.0, 70_000.0, 2.0)[0] == 0.70

    def test_payout_clamped(self):
        policy = DividendPolicySettings(tiers=(DividendTier("Too much", 0.0, 0.0,
                                                            payout_ratio=1.4),))
        assert select_payout_ratio(policy, 1.0, 1.0, 1.0)[0] == 1.0

    def test_no_tier_met_in_projection(self, sample):
        policy = replace(NO_RESERVE_POLICY, tiers=DEFAULT_TIERS)
        result = run_projection(with_deal(sample, dividend_policy=policy))
        assert result.is_valid
        for row in result.cash_flow[1:]:
            assert row.common_dividends == 0.0
            assert row.dividend_diagnostics.selected_tier is None


class TestCovenantGate:

    def test_failed_covenant_names(self, year_one):
        income, balance, service = year_one
        strict = DebtProtectionCovenants(dscr=CovenantThreshold(2.0),
                                         interest_coverage=CovenantThreshold(10.0))
        failed = failed_covenants(strict, income, service, balance.debt, cash=50_000.0)
        assert failed == ["DSCR", "InterestCoverage"]
        assert failed_covenants(strict, income, service, balance.debt, cash=1_000.0)[-1] == \
            "MinCashMonths"

    def test_leverage_is_total_debt_over_ebitda(self, year_one):
        income, balance, service = year_one
        off = CovenantThreshold(0.0, enabled=False)
        tight = DebtProtectionCovenants(dscr=off, net_leverage=CovenantThreshold(2.0),
                                        interest_coverage=off, min_cash_months=off)
        # 48,000 / 21,000 = 2.29x, cash on hand does not reduce it
        assert failed_covenants(tight, income, service, balance.debt, cash=100_000.0) == [
            "NetLeverage"]
        loose = replace(tight, net_leverage=CovenantThreshold(2.5))
        assert failed_covenants(loose, income, service, balance.debt, cash=0.0) == []

    def test_disabled_covenants_never_fail(self, year_one):
        income, balance, service = year_one
        off = CovenantThreshold(99.0, enabled=False)
        covenants = DebtProtectionCovenants(off, off, off, off)
        assert failed_covenants(covenants, income, service, balance.debt, 0.0) == []

    def test_breach_reported_but_not_blocking_by_default(self, sample, year_one):
        policy = replace(sample.deal_design.dividend_policy,
                         covenants=DebtProtectionCovenants(dscr=CovenantThreshold(2.0)))
        inp = with_deal(sample, dividend_policy=policy)
        dividend, diag = decide(inp, year_one, ending_cash=50_000.0)
        assert not diag.covenants_passed
        assert diag.failed_covenants == ("DSCR",)
        assert dividend == pytest.approx(14_500.0)

    def test_breach_blocks_when_enabled(self, sample, year_one):
        policy = replace(sample.deal_design.dividend_policy,
                         covenants=DebtProtectionCovenants(dscr=CovenantThreshold(2.0)),
                         block_on_covenant_breach=True)
        inp = with_deal(sample, dividend_policy=policy)
        dividend, diag = decide(inp, year_one, ending_cash=50_000.0)
        assert dividend == 0.0
        assert diag.reason.startswith("covenant breach")


class TestWaterfall:
    rules = (
        WaterfallRule(3, WaterfallKind.COMMON_DIVIDEND, WaterfallCalculation.PERCENTAGE, 0.5),
        WaterfallRule(1, WaterfallKind.PREFERRED_REDEMPTION, WaterfallCalculation.FIXED, 2_000.0),
        WaterfallRule(2, WaterfallKind.PREFERRED_DIVIDEND, WaterfallCalculation.FORMULA),
    )

    def test_priority_order(self):
        split = apply_waterfall(10_000.0, self.rules, 32_000.0, 0.08)
        assert split[WaterfallKind.PREFERRED_REDEMPTION] == pytest.approx(2_000.0)
        assert split[WaterfallKind.PREFERRED_DIVIDEND] == pytest.approx(2_560.0)
        assert split[WaterfallKind.COMMON_DIVIDEND] == pytest.approx(2_720.0)
        assert sum(split.values()) <= 10_000.0

    def test_fixed_amount_capped(self):
        split = apply_waterfall(1_500.0, self.rules, 32_000.0, 0.08)
        assert split[WaterfallKind.PREFERRED_REDEMPTION] == pytest.approx(1_500.0)
        assert split[WaterfallKind.COMMON_DIVIDEND] == 0.0

    def test_no_rules_all_common(self):
        split = apply_waterfall(4_000.0, (), 0.0, 0.0)
        assert split[WaterfallKind.COMMON_DIVIDEND] == 4_000.0

    def test_only_common_share_paid(self, sample, year_one):
        policy = replace(sample.deal_design.dividend_policy, waterfall_rules=self.rules)
        inp = with_deal(sample, dividend_policy=policy)
        dividend, _ = decide(inp, year_one, ending_cash=31_000.0)
        # 10,000 above the reserve, no preferred outstanding
        assert dividend == pytest.approx(4_000.0)


class TestDividendsInProjection:

    def test_dividend_reduces_ending_cash(self, funded_deal):
        result = run_projection(with_deal(funded_deal, dividend_policy=NO_RESERVE_POLICY))
        cf1 = result.cash_flow[1]
        before = cf1.dividend_diagnostics.ending_cash_before_dividend
        assert before > 0
        assert cf1.common_dividends == pytest.approx(0.5 * before)
        assert cf1.ending_cash == pytest.approx(before - cf1.common_dividends)

    def test_sample_keeps_reserve(self, sample_result):
        for row in sample_result.cash_flow[1:]:
            assert row.common_dividends == 0.0
            assert row.dividend_diagnostics is not None
        assert sample_result.cash_flow[0].dividend_diagnostics is None

    def test_fcff_tier_gate_after_interest(self, funded_deal):
        base = run_projection(with_deal(funded_deal, dividend_policy=NO_RESERVE_POLICY))
        cf1 = base.cash_flow[1]
        fcff = cf1.net_income + cf1.depreciation_amortization - cf1.nwc_change - cf1.capex
        assert cf1.fcff == pytest.approx(fcff)

        # would pass only if interest were added back into FCFF
        above = DividendTier("Above", 0.0, fcff + cf1.interest_paid / 2, payout_ratio=0.9)
        gated = run_projection(with_deal(
            funded_deal, dividend_policy=replace(NO_RESERVE_POLICY, tiers=(above,))))
        diag = gated.cash_flow[1].dividend_diagnostics
        assert diag.selected_tier is None
        assert diag.payout_ratio == 0.0
        assert gated.cash_flow[1].common_dividends == 0.0

        below = DividendTier("Below", 0.0, fcff - 1.0, payout_ratio=0.9)
        paid = run_projection(with_deal(
            funded_deal, dividend_policy=replace(NO_RESERVE_POLICY, tiers=(below,))))
        assert paid.cash_flow[1].dividend_diagnostics.selected_tier == "Below"
