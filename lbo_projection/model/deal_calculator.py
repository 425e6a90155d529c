"""
deal_calculator.py
------------------
Purchase-price mechanics shared by every statement builder.  The one
place where money derived from EV is computed:

  - Enterprise value and purchase price (always EV, even for asset deals;
    paying EV for a subset of assets shows up as goodwill, not a discount)
  - Payment schedule resolution (detailed schedule, or the legacy
    upfront / year 1 / year 2 split mapped onto the same schedule)
  - Cash installments by year, split into investing outflows (full deals)
    and expensed deferred payments (asset deals, year >= 1)
  - Transaction fees, upfront or in installments
  - Seller preferred shares: issuance, redemptions, dividend base
  - Net assets acquired and goodwill
  - Sources & uses at closing and the funding gap

All values in $K.  Schedule percentages in percentage points.
"""

from dataclasses import dataclass, fields

import pandas as pd

from lbo_projection.model.assumptions import (
    BusinessMetrics, EntryTiming, MnaDealDesign, PaymentMethod,
    PaymentScheduleItem, PaymentStructure, ProjectionInput, Timing,
)
from lbo_projection.model.debt_schedule import eligible_plans

CLOSURE_TOLERANCE = 0.01   # percentage points
MONEY_METHODS = (PaymentMethod.CASH, PaymentMethod.SPECIAL_SHARES_BUYBACK)
FUNDING_TOLERANCE = 0.01   # $K


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------

def enterprise_value(ebitda: float, multiple: float) -> float:
    return ebitda * multiple


def purchase_price(metrics: BusinessMetrics, entry_multiple: float) -> float:
    """Price paid for the target; driven by reported EBITDA only."""
    return enterprise_value(metrics.ebitda, entry_multiple)


def to_millions(value_k: float) -> float:
    return value_k / 1_000


def to_thousands(value_m: float) -> float:
    return value_m * 1_000


# ---------------------------------------------------------------------------
# Payment schedule
# ---------------------------------------------------------------------------

def schedule_from_structure(structure: PaymentStructure) -> tuple[PaymentScheduleItem, ...]:
    """Legacy split -> cash at closing, then seller shares bought back in years 1 and 2."""
    return (
        PaymentScheduleItem(structure.upfront_pct, PaymentMethod.CASH, Timing.closing()),
        PaymentScheduleItem(structure.year1_pct, PaymentMethod.SPECIAL_SHARES_BUYBACK,
                            Timing.in_year(1)),
        PaymentScheduleItem(structure.year2_pct, PaymentMethod.SPECIAL_SHARES_BUYBACK,
                            Timing.in_year(2)),
    )


def resolve_payment_schedule(deal: MnaDealDesign) -> tuple[PaymentScheduleItem, ...]:
    if deal.payment_schedule:
        return deal.payment_schedule
    return schedule_from_structure(deal.payment_structure)


def payment_pct(deal: MnaDealDesign, year: int,
                method: PaymentMethod = PaymentMethod.CASH,
                timing_detail: EntryTiming | None = None) -> float:
    total = 0.0
    for item in resolve_payment_schedule(deal):
        if item.payment_method is not method or item.timing.year_index != year:
            continue
        if timing_detail is not None and item.timing_detail is not timing_detail:
            continue
        total += item.percentage
    return total


def payment_amount(price: float, deal: MnaDealDesign, year: int,
                   method: PaymentMethod = PaymentMethod.CASH,
                   timing_detail: EntryTiming | None = None) -> float:
    """Money due in `year` under one payment method."""
    return price * payment_pct(deal, year, method, timing_detail) / 100


def upfront_payment(price: float, deal: MnaDealDesign) -> float:
    """Cash paid pre-closing or at closing; the cost base for asset-deal goodwill."""
    pct = sum(item.percentage for item in resolve_payment_schedule(deal)
              if item.payment_method is PaymentMethod.CASH and item.timing.is_upfront)
    return price * pct / 100


def deferred_payment_expense(price: float, deal: MnaDealDesign, year: int) -> float:
    """Asset deals expense post-closing cash installments through the P&L."""
    if not deal.is_asset_deal or year < 1:
        return 0.0
    return payment_amount(price, deal, year)


def acquisition_payment(price: float, deal: MnaDealDesign, year: int) -> float:
    """Cash purchase consideration that runs through investing cash flow."""
    if year >= 1 and deal.is_asset_deal:
        return 0.0
    return payment_amount(price, deal, year)


def validate_payment_schedule(schedule) -> tuple[bool, float]:
    """Cash + share-buyback rows must add up to 100%."""
    total = sum(item.percentage for item in schedule
                if item.payment_method in MONEY_METHODS)
    return abs(total - 100.0) <= CLOSURE_TOLERANCE, total


def validate_payment_structure(structure: PaymentStructure) -> tuple[bool, float]:
    total = structure.upfront_pct + structure.year1_pct + structure.year2_pct
    return abs(total - 100.0) <= CLOSURE_TOLERANCE, total


# ---------------------------------------------------------------------------
# Transaction fees
# ---------------------------------------------------------------------------

def transaction_fees(price: float, deal: MnaDealDesign) -> float:
    return price * deal.transaction_fee_pct


def transaction_fee_for_year(price: float, deal: MnaDealDesign, year: int) -> float:
    total = transaction_fees(price, deal)
    schedule = deal.fee_schedule
    year = max(0, year)
    if schedule is None or schedule.upfront or not schedule.installments:
        return total if year == 0 else 0.0
    pct = sum(p for y, p in schedule.installments if max(0, y) == year)
    return total * pct / 100


# ---------------------------------------------------------------------------
# Post-closing obligations carried on the balance sheet
# ---------------------------------------------------------------------------

def deferred_payable_due(price: float, deal: MnaDealDesign, year: int) -> float:
    """Non-expensed obligations settled in `year` (>= 1): fee and full-deal installments."""
    if year < 1:
        return 0.0
    return transaction_fee_for_year(price, deal, year) + acquisition_payment(price, deal, year)


def deferred_payables_opening(price: float, deal: MnaDealDesign) -> float:
    installments = deal.fee_schedule.installments if deal.fee_schedule else ()
    years = {max(0, y) for y, _ in installments}
    years.update(item.timing.year_index for item in resolve_payment_schedule(deal))
    return sum(deferred_payable_due(price, deal, y) for y in years if y >= 1)


# ---------------------------------------------------------------------------
# Seller preferred shares
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PreferredStockRow:
    year: int
    beginning_balance: float
    redemption: float
    beginning_of_year_redemption: float
    ending_balance: float
    dividend: float


def issued_preferred_pct(deal: MnaDealDesign) -> float:
    return sum(item.percentage for item in resolve_payment_schedule(deal)
               if item.payment_method is PaymentMethod.SPECIAL_SHARES_BUYBACK)


def preferred_stock_schedule(price: float, deal: MnaDealDesign,
                             horizon: int) -> list[PreferredStockRow]:
    """
    Balance, redemptions and dividends of the seller's preferred shares.

    Issued at year 0 for the buyback share of the price.  Each year the
    scheduled buybacks redeem it (never below zero).  Dividends are paid
    in cash on the prior balance less any redemption made at the start
    of the year; nothing accrues onto the balance.
    """
    rate = deal.target_preferred.dividend_rate
    rows = []
    balance = price * issued_preferred_pct(deal) / 100
    for year in range(0, horizon + 1):
        beginning = balance
        scheduled = payment_amount(price, deal, year, PaymentMethod.SPECIAL_SHARES_BUYBACK)
        scheduled_boy = payment_amount(price, deal, year, PaymentMethod.SPECIAL_SHARES_BUYBACK,
                                       EntryTiming.BEGINNING)
        redemption = min(beginning, scheduled)
        boy = min(redemption, scheduled_boy)
        dividend = rate * max(0.0, beginning - boy) if year >= 1 else 0.0
        balance = beginning - redemption
        rows.append(PreferredStockRow(year, beginning, redemption, boy, balance, dividend))
    return rows


# ---------------------------------------------------------------------------
# Net assets and goodwill
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AcquiredBalances:
    cash: float = 0.0
    accounts_receivable: float = 0.0
    inventory: float = 0.0
    ppe: float = 0.0
    accounts_payable: float = 0.0
    other_current_liabilities: float = 0.0
    short_term_debt: float = 0.0
    long_term_debt: float = 0.0
    other_long_term_liabilities: float = 0.0

    @property
    def assets(self) -> float:
        return self.cash + self.accounts_receivable + self.inventory + self.ppe

    @property
    def liabilities(self) -> float:
        return (self.accounts_payable + self.other_current_liabilities
                + self.short_term_debt + self.long_term_debt
                + self.other_long_term_liabilities)

    @property
    def net_assets(self) -> float:
        return self.assets - self.liabilities


def acquired_balances(metrics: BusinessMetrics, deal: MnaDealDesign) -> AcquiredBalances:
    """Target items that come across: all of them, or the selected ones in an asset deal."""
    names = [f.name for f in fields(AcquiredBalances)]
    if not deal.is_asset_deal:
        return AcquiredBalances(**{n: getattr(metrics, n) for n in names})
    sel = metrics.asset_selection
    return AcquiredBalances(**{
        n: getattr(metrics, n) if getattr(sel, n) else 0.0 for n in names
    })


def net_assets_acquired(metrics: BusinessMetrics, deal: MnaDealDesign) -> float:
    if not deal.is_asset_deal:
        return metrics.equity
    return acquired_balances(metrics, deal).net_assets


def goodwill(price: float, metrics: BusinessMetrics, deal: MnaDealDesign) -> float:
    """Full deal: EV over target equity.  Asset deal: upfront cash over selected net assets."""
    cost = upfront_payment(price, deal) if deal.is_asset_deal else price
    return max(0.0, cost - net_assets_acquired(metrics, deal))


# ---------------------------------------------------------------------------
# Sources & uses at closing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourcesAndUses:
    """Year-0 money raised against year-0 money paid out, itemized."""
    sources: tuple[tuple[str, float], ...]
    uses: tuple[tuple[str, float], ...]

    @property
    def total_sources(self) -> float:
        return sum(amount for _, amount in self.sources)

    @property
    def total_uses(self) -> float:
        return sum(amount for _, amount in self.uses)

    @property
    def funding_gap(self) -> float:
        """Positive when closing payments exceed the money raised."""
        return self.total_uses - self.total_sources

    @property
    def is_funded(self) -> bool:
        return self.funding_gap <= FUNDING_TOLERANCE


def sources_and_uses(inp: ProjectionInput) -> SourcesAndUses:
    """
    Sources: facilities drawn and equity injected at year 0.
    Uses: cash purchase price paid at closing, seller preferred bought back
    at closing and transaction fees due at closing.  Non-cash consideration
    (preferred issued, earn-outs) and later installments are not uses.
    """
    design = inp.deal_design
    price = purchase_price(inp.business_metrics, inp.scenario.entry_multiple)
    sources = [(p.name, p.amount) for p in eligible_plans(inp.financing_plans)
               if p.entry_year == 0]
    sources += [(e.name, e.amount) for e in inp.equity_injections if e.entry_year == 0]
    uses = [
        ("Cash Purchase Price", acquisition_payment(price, design, 0)),
        ("Preferred Buyback at Closing", preferred_stock_schedule(price, design, 0)[0].redemption),
        ("Transaction Fees", transaction_fee_for_year(price, design, 0)),
    ]
    return SourcesAndUses(tuple(sources), tuple(uses))


def sources_uses_df(su: SourcesAndUses) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Sources & Uses tables for display, each with a totals row."""
    def table(items, total_label, total):
        rows = [{"Item": name, "Amount ($K)": amount,
                 "% of Total": amount / total if total else 0.0}
                for name, amount in items]
        rows.append({"Item": total_label, "Amount ($K)": total, "% of Total": 1.0})
        return pd.DataFrame(rows)

    return (table(su.sources, "Total Sources", su.total_sources),
            table(su.uses, "Total Uses", su.total_uses))
