"""
conftest.py
-----------
Shared fixtures: the sample deal ($100M revenue / $20M EBITDA target at
8.0x, one $60M 5-year senior loan, $100M common equity) and a few variants
that switch on the less common deal mechanics.
"""

from dataclasses import replace

import pytest

from lbo_projection.model.assumptions import (
    CovenantThreshold, DealType, DebtProtectionCovenants, DividendPolicySettings,
    EntryTiming, EquityInjection, EquityType, FinancingPlan, PaymentMethod,
    PaymentScheduleItem, PaymentStructure, PreferredShareTerms, RepaymentPolicy,
    Timing, TransactionFeeSchedule, sample_input,
)
from lbo_projection.model.lbo_engine import run_projection


def with_deal(inp, **changes):
    """Copy of `inp` with deal-design fields replaced."""
    return replace(inp, deal_design=replace(inp.deal_design, **changes))


NO_RESERVE_POLICY = DividendPolicySettings(
    covenants=DebtProtectionCovenants(min_cash_months=CovenantThreshold(3.0, enabled=False)),
    tiers=(),
)

MIXED_SCHEDULE = (
    PaymentScheduleItem(70.0, PaymentMethod.CASH, Timing.closing()),
    PaymentScheduleItem(10.0, PaymentMethod.CASH, Timing.in_year(1)),
    PaymentScheduleItem(20.0, PaymentMethod.SPECIAL_SHARES_BUYBACK, Timing.in_year(2),
                        EntryTiming.BEGINNING),
)


@pytest.fixture
def sample():
    return sample_input()


@pytest.fixture
def sample_result(sample):
    result = run_projection(sample)
    assert result.is_valid, result.errors
    return result


@pytest.fixture
def seller_preferred_deal(sample):
    """40% of the price paid in seller preferred, bought back in years 1 and 2."""
    return with_deal(
        sample,
        payment_structure=PaymentStructure(60.0, 20.0, 20.0),
        target_preferred=PreferredShareTerms(dividend_rate=0.08),
    )


@pytest.fixture
def asset_deal(sample):
    """Asset purchase with an expensed year-1 installment and a share buyback."""
    return with_deal(sample, deal_type=DealType.ASSET_ACQUISITION,
                     payment_schedule=MIXED_SCHEDULE)


@pytest.fixture
def complex_deal(sample):
    """Every mechanic at once: installments, fee split, layered debt, preferred equity."""
    return with_deal(
        sample,
        payment_schedule=MIXED_SCHEDULE,
        target_preferred=PreferredShareTerms(dividend_rate=0.06),
        fee_schedule=TransactionFeeSchedule(upfront=False, installments=((0, 50.0), (1, 50.0))),
        dividend_policy=NO_RESERVE_POLICY,
        financing_plans=(
            FinancingPlan("Term Loan A", 40_000.0, 0.06, 5, RepaymentPolicy.EQUAL_PAYMENT),
            FinancingPlan("Mezz Notes", 15_000.0, 0.11, 7, RepaymentPolicy.BULLET),
            FinancingPlan("Capex Line", 10_000.0, 0.07, 3, RepaymentPolicy.EQUAL_PRINCIPAL,
                          entry_year=2, entry_timing=EntryTiming.BEGINNING),
            FinancingPlan("Revolver", 8_000.0, 0.05, 0, RepaymentPolicy.REVOLVING),
        ),
        equity_injections=(
            EquityInjection("Sponsor Common", 70_000.0, ownership_pct=70.0),
            EquityInjection("Sponsor Preferred", 30_000.0, EquityType.PREFERRED,
                            ownership_pct=30.0, dividend_rate=0.08,
                            redemption_multiple=1.5),
            EquityInjection("Follow-on Common", 5_000.0, ownership_pct=0.0,
                            entry_year=3, entry_timing=EntryTiming.END),
        ),
    )


@pytest.fixture
def funded_deal(sample):
    """Sample deal with enough equity to cover the price, the fees and a cash cushion."""
    return with_deal(sample, equity_injections=(EquityInjection("Sponsor Common", 120_000.0),))


@pytest.fixture
def underfunded_deal(sample):
    """Only $50M of equity: closing needs 163.2M, the deal raises 110M."""
    return with_deal(sample, equity_injections=(EquityInjection("Sponsor Common", 50_000.0),))


@pytest.fixture
def closing_buyback_deal(sample):
    """Half of the seller preferred is bought back at closing, the rest in year 1."""
    return with_deal(
        sample,
        payment_schedule=(
            PaymentScheduleItem(60.0, PaymentMethod.CASH, Timing.closing()),
            PaymentScheduleItem(20.0, PaymentMethod.SPECIAL_SHARES_BUYBACK, Timing.closing()),
            PaymentScheduleItem(20.0, PaymentMethod.SPECIAL_SHARES_BUYBACK, Timing.in_year(1)),
        ),
        target_preferred=PreferredShareTerms(dividend_rate=0.08),
    )
