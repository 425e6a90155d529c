"""
assumptions.py
--------------
Input value objects for one LBO projection run.

Grouped the way a deal team thinks about them:
  1. Target snapshot      (BusinessMetrics, AssetSelection)
  2. Operating drivers    (FutureAssumptions)
  3. Valuation            (ScenarioAssumptions)
  4. Deal design          (payment schedule, preferred terms, fees,
                           dividend policy, financing plans, equity)

Everything is frozen: build variants with dataclasses.replace() so a
scenario run can never leak state into another.

All monetary values in thousands.  Rates, margins and payout ratios as
decimals (0.06 = 6%).  Allocations that have to close to 100 (payment
schedule rows, the legacy payment structure, fee installments, ownership)
are percentage points (40.0 = 40%).
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class RepaymentPolicy(str, Enum):
    EQUAL_PAYMENT = "equalPayment"
    EQUAL_PRINCIPAL = "equalPrincipal"
    BULLET = "bullet"
    INTEREST_ONLY = "interestOnly"
    REVOLVING = "revolving"


class FacilityType(str, Enum):
    SENIOR = "senior"
    MEZZANINE = "mezzanine"
    REVOLVER = "revolver"

    @property
    def priority(self) -> int:
        return _FACILITY_PRIORITY[self]


_FACILITY_PRIORITY = {
    FacilityType.SENIOR: 1,
    FacilityType.MEZZANINE: 2,
    FacilityType.REVOLVER: 3,
}


class EntryTiming(str, Enum):
    BEGINNING = "beginning"
    END = "end"


class DealType(str, Enum):
    FULL_ACQUISITION = "fullAcquisition"
    ASSET_ACQUISITION = "assetAcquisition"


class PaymentMethod(str, Enum):
    CASH = "cash"
    SPECIAL_SHARES_BUYBACK = "specialSharesBuyback"
    SELLER_NOTE = "sellerNote"
    EARNOUT = "earnout"


class EquityType(str, Enum):
    COMMON = "common"
    PREFERRED = "preferred"


class TimingKind(str, Enum):
    PRE_CLOSING = "preClosing"
    CLOSING = "closing"
    POST_CLOSING = "postClosing"
    YEAR = "year"


_YEAR_TAG = re.compile(r"^year(\d+)$")


@dataclass(frozen=True)
class Timing:
    """When a deal payment falls: around closing (year 0) or in year N."""
    kind: TimingKind
    year: int = 0

    @classmethod
    def pre_closing(cls) -> "Timing":
        return cls(TimingKind.PRE_CLOSING)

    @classmethod
    def closing(cls) -> "Timing":
        return cls(TimingKind.CLOSING)

    @classmethod
    def post_closing(cls) -> "Timing":
        return cls(TimingKind.POST_CLOSING)

    @classmethod
    def in_year(cls, year: int) -> "Timing":
        if year < 1:
            raise ValueError(f"payment year must be >= 1, got {year}")
        return cls(TimingKind.YEAR, year)

    @classmethod
    def parse(cls, tag: str) -> "Timing":
        """Accept the legacy string tags: preClosing, closing, postClosing, yearN."""
        match = _YEAR_TAG.match(tag)
        if match:
            return cls.in_year(int(match.group(1)))
        try:
            kind = TimingKind(tag)
        except ValueError:
            raise ValueError(f"unknown payment timing {tag!r}") from None
        if kind is TimingKind.YEAR:
            raise ValueError("a year timing needs its number, e.g. 'year2'")
        return cls(kind)

    @property
    def year_index(self) -> int:
        return self.year if self.kind is TimingKind.YEAR else 0

    @property
    def is_upfront(self) -> bool:
        return self.kind in (TimingKind.PRE_CLOSING, TimingKind.CLOSING)

    def __str__(self) -> str:
        if self.kind is TimingKind.YEAR:
            return f"year{self.year}"
        return self.kind.value


# ---------------------------------------------------------------------------
# 1. TARGET SNAPSHOT (last financial year before the deal)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssetSelection:
    """Which balance-sheet items transfer in an asset acquisition."""
    cash: bool = False
    accounts_receivable: bool = True
    inventory: bool = True
    ppe: bool = True
    accounts_payable: bool = True
    other_current_liabilities: bool = True
    short_term_debt: bool = False
    long_term_debt: bool = False
    other_long_term_liabilities: bool = False


@dataclass(frozen=True)
class BusinessMetrics:
    # Income statement
    revenue: float
    ebitda: float
    cogs: float | None = None                # falls back to revenue * cogs_pct
    operating_expenses: float | None = None  # falls back to revenue * opex_pct
    depreciation_amortization: float = 0.0
    interest_expense: float = 0.0
    tax_expense: float = 0.0
    net_income: float | None = None

    # Balance sheet
    cash: float = 0.0
    accounts_receivable: float = 0.0
    inventory: float = 0.0
    ppe: float = 0.0
    accounts_payable: float = 0.0
    other_current_liabilities: float = 0.0
    short_term_debt: float = 0.0
    long_term_debt: float = 0.0
    other_long_term_liabilities: float = 0.0
    shareholders_equity: float | None = None  # None = assets - liabilities

    asset_selection: AssetSelection = field(default_factory=AssetSelection)

    @property
    def total_assets(self) -> float:
        return self.cash + self.accounts_receivable + self.inventory + self.ppe

    @property
    def total_liabilities(self) -> float:
        return (self.accounts_payable + self.other_current_liabilities
                + self.short_term_debt + self.long_term_debt
                + self.other_long_term_liabilities)

    @property
    def equity(self) -> float:
        if self.shareholders_equity is not None:
            return self.shareholders_equity
        return self.total_assets - self.total_liabilities

    @property
    def reported_net_income(self) -> float:
        if self.net_income is not None:
            return self.net_income
        return (self.ebitda - self.depreciation_amortization
                - self.interest_expense - self.tax_expense)


# ---------------------------------------------------------------------------
# 2. OPERATING DRIVERS
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FutureAssumptions:
    revenue_growth_rate: float = 0.05
    cogs_pct: float = 0.60
    opex_pct: float = 0.15
    capex_pct: float = 0.04
    ar_days: float = 45.0
    inventory_days: float = 60.0
    ap_days: float = 35.0
    tax_rate: float = 0.20
    discount_rate: float = 0.10
    # Doubles as the depreciable life of the fixed-asset base
    fixed_assets_to_capex_multiple: float = 10.0
    revolver_repayment_rate: float = 0.20

    @property
    def ebitda_margin(self) -> float:
        return 1.0 - self.cogs_pct - self.opex_pct


# ---------------------------------------------------------------------------
# 3. VALUATION
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScenarioAssumptions:
    name: str = "base"
    entry_multiple: float = 10.0   # EV / EBITDA at entry
    exit_multiple: float = 12.0    # EV / EBITDA at exit


# ---------------------------------------------------------------------------
# 4. DEAL DESIGN
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentScheduleItem:
    percentage: float                         # % of purchase price
    payment_method: PaymentMethod = PaymentMethod.CASH
    timing: Timing = field(default_factory=Timing.closing)
    # BEGINNING = a share buyback lands before that year's dividend accrues
    timing_detail: EntryTiming = EntryTiming.END


@dataclass(frozen=True)
class PaymentStructure:
    """Legacy three-period split, used when no detailed schedule exists."""
    upfront_pct: float = 100.0
    year1_pct: float = 0.0
    year2_pct: float = 0.0


@dataclass(frozen=True)
class PreferredShareTerms:
    """Preferred shares issued to the seller for the deferred consideration."""
    dividend_rate: float = 0.0


@dataclass(frozen=True)
class TransactionFeeSchedule:
    upfront: bool = True
    # (year, % of total fee); only read when upfront is False
    installments: tuple[tuple[int, float], ...] = ()


@dataclass(frozen=True)
class CovenantThreshold:
    value: float
    enabled: bool = True


@dataclass(frozen=True)
class DebtProtectionCovenants:
    dscr: CovenantThreshold = CovenantThreshold(1.25)
    net_leverage: CovenantThreshold = CovenantThreshold(4.0)
    interest_coverage: CovenantThreshold = CovenantThreshold(3.0)
    min_cash_months: CovenantThreshold = CovenantThreshold(3.0)


@dataclass(frozen=True)
class DividendTier:
    name: str
    ebitda_threshold: float      # minimum EBITDA ($K)
    fcff_threshold: float        # minimum FCFF ($K)
    leverage_threshold: float = math.inf   # maximum debt / EBITDA
    payout_ratio: float = 0.0


DEFAULT_TIERS = (
    DividendTier("Base payout",       50_000.0, 20_000.0, 5.0, 0.30),
    DividendTier("Standard payout",   80_000.0, 40_000.0, 3.5, 0.50),
    DividendTier("Aggressive payout", 100_000.0, 60_000.0, 2.5, 0.70),
)


class WaterfallKind(str, Enum):
    PREFERRED_REDEMPTION = "preferredRedemption"
    PREFERRED_DIVIDEND = "preferredDividend"
    COMMON_DIVIDEND = "commonDividend"
    CARRIED = "carried"


class WaterfallCalculation(str, Enum):
    FIXED = "fixed"             # value in $K
    PERCENTAGE = "percentage"   # value as a decimal share of what is left
    FORMULA = "formula"         # preferred outstanding * preferred rate


@dataclass(frozen=True)
class WaterfallRule:
    priority: int
    kind: WaterfallKind
    calculation: WaterfallCalculation
    value: float = 0.0
    description: str = ""


@dataclass(frozen=True)
class DividendPolicySettings:
    covenants: DebtProtectionCovenants = field(default_factory=DebtProtectionCovenants)
    tiers: tuple[DividendTier, ...] = DEFAULT_TIERS
    waterfall_rules: tuple[WaterfallRule, ...] = ()
    default_payout_ratio: float = 0.5
    block_on_covenant_breach: bool = False


@dataclass(frozen=True)
class FinancingPlan:
    """One debt facility."""
    name: str
    amount: float
    interest_rate: float
    maturity: int
    repayment_policy: RepaymentPolicy | None = RepaymentPolicy.EQUAL_PRINCIPAL
    facility_type: FacilityType = FacilityType.SENIOR
    entry_year: int = 0
    entry_timing: EntryTiming = EntryTiming.BEGINNING

    @property
    def is_revolving(self) -> bool:
        return self.repayment_policy is RepaymentPolicy.REVOLVING

    @property
    def effective_facility_type(self) -> FacilityType:
        return FacilityType.REVOLVER if self.is_revolving else self.facility_type


@dataclass(frozen=True)
class EquityInjection:
    """One equity tranche written by the acquirer side."""
    name: str
    amount: float
    equity_type: EquityType = EquityType.COMMON
    ownership_pct: float = 100.0
    entry_year: int = 0
    entry_timing: EntryTiming = EntryTiming.BEGINNING
    # Preferred terms (ignored for common)
    dividend_rate: float = 0.0
    redemption_multiple: float = 1.0
    redemption_year: int | None = None
    participate_in_common: bool = False
    dividend_distribution_enabled: bool = True

    @property
    def is_preferred(self) -> bool:
        return self.equity_type is EquityType.PREFERRED

    @property
    def first_income_year(self) -> int:
        """First year the tranche earns dividends (never year 0)."""
        start = self.entry_year + (1 if self.entry_timing is EntryTiming.END else 0)
        return max(1, start)

    def is_outstanding(self, year: int) -> bool:
        return year >= self.first_income_year

    def preferred_dividend(self, year: int) -> float:
        """Cash dividend this tranche's preferred terms pay in `year`."""
        if not self.is_preferred or not self.dividend_distribution_enabled:
            return 0.0
        if not self.is_outstanding(year):
            return 0.0
        if self.redemption_year is not None and year >= self.redemption_year:
            return 0.0
        return self.amount * self.dividend_rate

    @property
    def shares_common(self) -> bool:
        """Takes part in common dividends and the residual exit value."""
        return not self.is_preferred or self.participate_in_common


@dataclass(frozen=True)
class MnaDealDesign:
    deal_type: DealType = DealType.FULL_ACQUISITION
    payment_schedule: tuple[PaymentScheduleItem, ...] = ()
    payment_structure: PaymentStructure = field(default_factory=PaymentStructure)
    target_preferred: PreferredShareTerms = field(default_factory=PreferredShareTerms)
    transaction_fee_pct: float = 0.02
    fee_schedule: TransactionFeeSchedule = field(default_factory=TransactionFeeSchedule)
    dividend_policy: DividendPolicySettings = field(default_factory=DividendPolicySettings)
    financing_plans: tuple[FinancingPlan, ...] = ()
    equity_injections: tuple[EquityInjection, ...] = ()

    @property
    def is_asset_deal(self) -> bool:
        return self.deal_type is DealType.ASSET_ACQUISITION


@dataclass(frozen=True)
class ProjectionInput:
    """Everything one projection run needs."""
    business_metrics: BusinessMetrics
    assumptions: FutureAssumptions = field(default_factory=FutureAssumptions)
    deal_design: MnaDealDesign = field(default_factory=MnaDealDesign)
    scenario: ScenarioAssumptions = field(default_factory=ScenarioAssumptions)
    planning_horizon: int = 5

    @property
    def financing_plans(self) -> tuple[FinancingPlan, ...]:
        return self.deal_design.financing_plans

    @property
    def equity_injections(self) -> tuple[EquityInjection, ...]:
        return self.deal_design.equity_injections

    def equity_injected(self, year: int) -> float:
        return sum(e.amount for e in self.equity_injections if e.entry_year == year)

    def acquirer_preferred_dividends(self, year: int) -> float:
        return sum(e.preferred_dividend(year) for e in self.equity_injections)


# ---------------------------------------------------------------------------
# Convenience: sample deal and scenario variants
# ---------------------------------------------------------------------------

def sample_input() -> ProjectionInput:
    """
    Small full-acquisition deal: $100M revenue / $20M EBITDA target bought
    at 8.0x with one 5-year senior term loan and a single common cheque.
    """
    metrics = BusinessMetrics(
        revenue=100_000.0,
        ebitda=20_000.0,
        cogs=60_000.0,
        operating_expenses=20_000.0,
        depreciation_amortization=3_000.0,
        interest_expense=1_000.0,
        tax_expense=3_200.0,
        net_income=12_800.0,
        cash=10_000.0,
        accounts_receivable=12_000.0,
        inventory=9_000.0,
        ppe=30_000.0,
        accounts_payable=6_000.0,
        other_current_liabilities=2_000.0,
        long_term_debt=15_000.0,
    )
    assumptions = FutureAssumptions(opex_pct=0.20)
    deal = MnaDealDesign(
        dividend_policy=DividendPolicySettings(tiers=()),
        financing_plans=(
            FinancingPlan("Senior Term Loan", 60_000.0, 0.06, 5,
                          RepaymentPolicy.EQUAL_PRINCIPAL),
        ),
        equity_injections=(
            EquityInjection("Sponsor Common", 100_000.0),
        ),
    )
    return ProjectionInput(
        business_metrics=metrics,
        assumptions=assumptions,
        deal_design=deal,
        scenario=ScenarioAssumptions("base", entry_multiple=8.0, exit_multiple=10.0),
        planning_horizon=5,
    )


def upper_scenario(base: ScenarioAssumptions) -> ScenarioAssumptions:
    return ScenarioAssumptions("upper", base.entry_multiple, base.exit_multiple + 2.0)


def lower_scenario(base: ScenarioAssumptions) -> ScenarioAssumptions:
    return ScenarioAssumptions("lower", base.entry_multiple,
                               max(1.0, base.exit_multiple - 2.0))


def default_scenarios(base: ScenarioAssumptions) -> dict[str, ScenarioAssumptions]:
    return {
        "base":  ScenarioAssumptions("base", base.entry_multiple, base.exit_multiple),
        "upper": upper_scenario(base),
        "lower": lower_scenario(base),
    }
