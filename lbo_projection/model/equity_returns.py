"""
equity_returns.py
-----------------
Investor-level returns at exit.

For every equity tranche a cash-flow vector over Year 0 .. Year N:
  - investment (negative) in the entry year
  - dividends while outstanding:
      preferred  its own coupon (amount × dividend rate), plus a share of
                 common dividends when it participates
      common     pro-rata share of the common dividend
  - exit proceeds at the planning horizon:
      exit equity = exit EBITDA × exit multiple − exit debt
      preferred  amount × redemption multiple (paid in its redemption year
                 if that falls inside the horizon), scaled down if exit
                 equity cannot cover every preferred claim
      residual   split by ownership % among common and participating
                 preferred tranches

IRR by Newton-Raphson (start 10%, 100 iterations, |NPV| < 1e-4, rate kept
within [-99%, 1000%]); Brent's method on the same interval picks up the
rare vector Newton cannot settle.  NaN when the vector has no sign change.
"""

from dataclasses import dataclass

import numpy as np
from scipy.optimize import brentq

from lbo_projection.model.assumptions import EquityInjection, EquityType, ProjectionInput
from lbo_projection.model.debt_schedule import DebtScheduleRow, total_debt

IRR_GUESS = 0.10
IRR_MAX_ITER = 100
IRR_TOLERANCE = 1e-4
IRR_BOUNDS = (-0.99, 10.0)


# ---------------------------------------------------------------------------
# IRR / NPV helpers
# ---------------------------------------------------------------------------

def npv(rate: float, cash_flows) -> float:
    """NPV with index 0 = today."""
    t = np.arange(len(cash_flows))
    return float(np.sum(np.asarray(cash_flows, dtype=float) / (1 + rate) ** t))


def _npv_slope(rate: float, cash_flows) -> float:
    t = np.arange(len(cash_flows))
    return float(np.sum(-t * np.asarray(cash_flows, dtype=float) / (1 + rate) ** (t + 1)))


def irr(cash_flows) -> float:
    """Compute IRR given a list of cash flows (index 0 = t=0)."""
    flows = np.asarray(cash_flows, dtype=float)
    if not (flows < 0).any() or not (flows > 0).any():
        return np.nan

    lo, hi = IRR_BOUNDS
    rate = IRR_GUESS
    for _ in range(IRR_MAX_ITER):
        value = npv(rate, flows)
        if abs(value) < IRR_TOLERANCE:
            return rate
        slope = _npv_slope(rate, flows)
        if slope == 0:
            break
        rate = min(hi, max(lo, rate - value / slope))

    if npv(lo, flows) * npv(hi, flows) < 0:
        return brentq(npv, lo, hi, args=(flows,), xtol=1e-12, maxiter=500)
    return np.nan


def moic(invested: float, proceeds: float) -> float:
    if invested <= 0:
        return np.nan
    return proceeds / invested


def payback_year(cash_flows) -> float:
    """First year cumulative cash flow turns non-negative after the outlay."""
    cumulative = np.cumsum(np.asarray(cash_flows, dtype=float))
    invested = False
    for year, value in enumerate(cumulative):
        if value < 0:
            invested = True
        elif invested:
            return float(year)
    return np.nan


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrancheReturn:
    name: str
    equity_type: EquityType
    investment: float
    entry_year: int
    cash_flows: tuple[float, ...]
    dividends: float
    exit_proceeds: float
    moic: float
    irr: float
    npv: float

    @property
    def total_proceeds(self) -> float:
        return self.dividends + self.exit_proceeds


@dataclass(frozen=True)
class KPIMetrics:
    irr: float
    moic: float
    npv: float
    entry_multiple: float
    exit_multiple: float
    entry_enterprise_value: float
    exit_enterprise_value: float
    exit_equity_value: float
    total_invested: float
    total_proceeds: float
    total_return: float
    payback_period: float


@dataclass(frozen=True)
class ExitValuation:
    ebitda: float
    enterprise_value: float
    debt: float
    equity_value: float


def exit_valuation(inp: ProjectionInput, income_statement,
                   debt_schedule: list[DebtScheduleRow]) -> ExitValuation:
    n = inp.planning_horizon
    ebitda = income_statement[n].ebitda
    ev = ebitda * inp.scenario.exit_multiple
    debt = total_debt(debt_schedule, n)
    return ExitValuation(ebitda, ev, debt, ev - debt)


def _common_share(inj: EquityInjection, others, year: int) -> float:
    """Fraction of the common pool this tranche takes in `year`."""
    if not inj.shares_common or not inj.is_outstanding(year):
        return 0.0
    pool = sum(o.ownership_pct for o in others if o.shares_common and o.is_outstanding(year))
    return inj.ownership_pct / pool if pool > 0 else 0.0


def build_equity_returns(
    inp: ProjectionInput,
    income_statement,
    cash_flows,
    debt_schedule: list[DebtScheduleRow],
) -> list[TrancheReturn]:
    n = inp.planning_horizon
    rate = inp.assumptions.discount_rate
    tranches = [e for e in inp.equity_injections if e.amount > 0 and e.entry_year <= n]
    exit_val = exit_valuation(inp, income_statement, debt_schedule)

    # ---- Exit waterfall: preferred claims first, residual pro rata ----
    available = max(0.0, exit_val.equity_value)
    claims = {id(e): e.amount * e.redemption_multiple for e in tranches if e.is_preferred}
    total_claims = sum(claims.values())
    cover = min(1.0, available / total_claims) if total_claims > 0 else 0.0
    residual = available - total_claims * cover
    exit_year = n + 1   # every participant is outstanding by now

    common_by_year = {cf.year: cf.common_dividends for cf in cash_flows}

    results = []
    for inj in tranches:
        flows = np.zeros(n + 1)
        flows[inj.entry_year] -= inj.amount

        dividends = 0.0
        for yr in range(1, n + 1):
            paid = inj.preferred_dividend(yr)
            paid += common_by_year.get(yr, 0.0) * _common_share(inj, tranches, yr)
            flows[yr] += paid
            dividends += paid

        common_exit = residual * _common_share(inj, tranches, exit_year)
        flows[n] += common_exit
        redemption = 0.0
        if inj.is_preferred:
            redemption = claims[id(inj)] * cover
            ry = inj.redemption_year
            flows[ry if ry is not None and 1 <= ry <= n else n] += redemption
        proceeds = common_exit + redemption

        results.append(TrancheReturn(
            name=inj.name,
            equity_type=inj.equity_type,
            investment=inj.amount,
            entry_year=inj.entry_year,
            cash_flows=tuple(float(v) for v in flows),
            dividends=dividends,
            exit_proceeds=proceeds,
            moic=moic(inj.amount, dividends + proceeds),
            irr=irr(flows),
            npv=npv(rate, flows),
        ))
    return results


def build_kpi_metrics(
    inp: ProjectionInput,
    tranche_returns: list[TrancheReturn],
    income_statement,
    debt_schedule: list[DebtScheduleRow],
) -> KPIMetrics:
    n = inp.planning_horizon
    exit_val = exit_valuation(inp, income_statement, debt_schedule)
    flows = np.zeros(n + 1)
    for tr in tranche_returns:
        flows += np.asarray(tr.cash_flows)

    invested = sum(tr.investment for tr in tranche_returns)
    proceeds = sum(tr.total_proceeds for tr in tranche_returns)
    return KPIMetrics(
        irr=irr(flows),
        moic=moic(invested, proceeds),
        npv=npv(inp.assumptions.discount_rate, flows),
        entry_multiple=inp.scenario.entry_multiple,
        exit_multiple=inp.scenario.exit_multiple,
        entry_enterprise_value=inp.business_metrics.ebitda * inp.scenario.entry_multiple,
        exit_enterprise_value=exit_val.enterprise_value,
        exit_equity_value=exit_val.equity_value,
        total_invested=invested,
        total_proceeds=proceeds,
        total_return=proceeds - invested,
        payback_period=payback_year(flows),
    )
