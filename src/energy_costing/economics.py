"""
Discounting and annuity primitives.

All functions are pure and accept a zero discount rate. Rates are annual
decimals (0.05 for 5%), year counts are integers.
"""

from typing import List, Sequence

import numpy as np
import numpy_financial as npf


def total_years(period_lengths: Sequence[int]) -> int:
    return int(sum(period_lengths))


def years_remaining(period_idx: int, period_lengths: Sequence[int]) -> int:
    """Years from the start of period ``period_idx`` (1-based) to the end of the horizon."""
    if period_idx < 1:
        raise ValueError(f"period_idx must be >= 1, got {period_idx}")
    return int(sum(period_lengths[period_idx - 1:]))


def period_start_year(period_lengths: Sequence[int], period_idx: int) -> int:
    """Years elapsed before period ``period_idx`` (1-based) begins."""
    if len(period_lengths) == 0:
        return 0
    return int(sum(period_lengths[: max(period_idx - 1, 0)]))


def period_start_years(period_lengths: Sequence[int]) -> List[int]:
    """Start year offset of every period: ``[0, L1, L1+L2, ...]``."""
    result = []
    elapsed = 0
    for length in period_lengths:
        result.append(elapsed)
        elapsed += int(length)
    return result


def present_value_factor(discount_rate: float, years: int) -> float:
    r"""Factor that discounts a value ``years`` years back to the horizon start.

    Formula:
        PVF = (1 + r)^{-y}
    """
    if discount_rate == 0.0:
        return 1.0
    return 1.0 / ((1.0 + discount_rate) ** years)


def present_value_annuity_factor(discount_rate: float, n_years: int) -> float:
    r"""Present value of a unit payment received at the end of each of ``n_years`` years.

    Formula:
        PVAF = \sum_{i=1}^{N} (1 + r)^{-i} = (1 - (1 + r)^{-N}) / r = 1 / CRF
    """
    if n_years <= 0:
        return 0.0
    if discount_rate == 0.0:
        return n_years
    # pv of an ordinary annuity paying -1 per year
    return float(npf.pv(discount_rate, n_years, -1.0))


def capital_recovery_factor(discount_rate: float, n_years: int) -> float:
    r"""Annual payment that repays a unit investment over ``n_years`` years.

    Formula:
        CRF = r / (1 - (1 + r)^{-N})
    """
    if n_years <= 0:
        return 0.0
    if discount_rate == 0.0:
        return 1.0 / n_years
    return float(npf.pmt(discount_rate, n_years, -1.0))


def present_value_factors(discount_rate: float, period_lengths: Sequence[int]) -> np.ndarray:
    """Vector of period-start discount factors, one per period."""
    starts = period_start_years(period_lengths)
    return np.array([present_value_factor(discount_rate, y) for y in starts], dtype=float)


def opex_multipliers(discount_rate: float, period_lengths: Sequence[int]) -> np.ndarray:
    """Vector of per-period annuity factors applied to annual operating costs."""
    return np.array(
        [present_value_annuity_factor(discount_rate, int(length)) for length in period_lengths],
        dtype=float,
    )


def get_retirement_period(cur_period: int, lifetime: int, period_lengths: Sequence[int]) -> int:
    """Latest earlier period whose new capacity has reached ``lifetime`` by the start of ``cur_period``.

    All capacity decisions are taken at the beginning of a period. Returns 0
    when no earlier period qualifies. Example: lengths [5, 5, 5, 5] and a
    15 year lifetime give 1 for period 4 and 0 for period 3.
    """
    candidates = [
        r for r in range(1, cur_period)
        if sum(period_lengths[r - 1:cur_period - 1]) >= lifetime
    ]
    return max(candidates, default=0)
