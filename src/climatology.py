"""
Climatological coefficients for the Palmer drought index.

Includes the CAFEC coefficients of evapotranspiration (alpha), recharge
(beta), runoff (gamma) and loss (delta), and the climatic characteristic
K that scales the moisture departure into the Z-index.

References:
    - Palmer, W.C. (1965). Meteorological Drought. Research Paper No. 45,
      U.S. Weather Bureau. (eq. 27 for the climatic characteristic)
"""

from dataclasses import dataclass
from typing import Dict, Sequence, Union

import numpy as np

from config import (
    K_PRIME_INTERCEPT,
    K_PRIME_SLOPE,
    K_PRIME_T_OFFSET,
    K_SCALE,
    PeriodType,
    get_logger,
)
from utils import any_missing, coerce_values

# Module logger
_logger = get_logger(__name__)


# =============================================================================
# DATA TYPES
# =============================================================================

@dataclass
class ClimatologyCoefficients:
    """CAFEC coefficients and climatic characteristic for each period of year."""
    period_type: PeriodType
    alpha: np.ndarray
    beta: np.ndarray
    gamma: np.ndarray
    delta: np.ndarray
    k: np.ndarray

    def __post_init__(self):
        n_periods = self.period_type.periods_per_year
        for name in ('alpha', 'beta', 'gamma', 'delta', 'k'):
            values = np.asarray(getattr(self, name), dtype=np.float64)
            if values.shape != (n_periods,):
                raise ValueError(
                    f"Invalid {name} shape: {values.shape}. "
                    f"Expected ({n_periods},) for {self.period_type.name} periods."
                )
            setattr(self, name, values)

    def to_dict(self) -> Dict[str, np.ndarray]:
        """Convert to dictionary of arrays keyed by coefficient name."""
        return {
            'alpha': self.alpha,
            'beta': self.beta,
            'gamma': self.gamma,
            'delta': self.delta,
            'k': self.k,
        }


# =============================================================================
# CAFEC COEFFICIENTS
# =============================================================================

def get_cafec_coeff(
    actual: Union[float, np.ndarray],
    potential: Union[float, np.ndarray]
) -> Union[float, np.ndarray]:
    """
    Calculate a CAFEC coefficient from mean actual and potential values.

    The coefficient is the climatological mean of the actual water
    balance term divided by the mean of its potential counterpart
    (ET/PET for alpha, R/PR for beta, RO/PRO for gamma, L/PL for delta),
    set to 0 where the potential mean is 0 and clipped to [0, 1].

    :param actual: mean actual value(s) (scalar or array)
    :param potential: mean potential value(s) (scalar or array)
    :return: coefficient(s), NaN where an input is missing
    :raises ValueError: if any argument is None

    Example:
        >>> get_cafec_coeff(1.5, 2.0)
        0.75
        >>> get_cafec_coeff(np.array([1.0, 3.0, 0.5]), np.array([2.0, 2.0, 0.0]))
        array([0.5, 1. , 0. ])
    """
    if np.ndim(actual) == 0 and np.ndim(potential) == 0:
        actual, potential = coerce_values(
            "get_cafec_coeff",
            actual=actual,
            potential=potential,
        )
        if any_missing(actual, potential):
            return np.nan
        if potential == 0:
            return 0.0
        return float(min(max(actual / potential, 0.0), 1.0))

    actual = np.asarray(actual, dtype=np.float64)
    potential = np.asarray(potential, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        coeff = np.where(potential == 0, 0.0, actual / potential)
    coeff = np.where(np.isnan(actual) | np.isnan(potential), np.nan, coeff)
    return np.clip(coeff, 0.0, 1.0)


# =============================================================================
# CLIMATIC CHARACTERISTIC
# =============================================================================

def get_k_coeff(
    pe: Sequence[float],
    r: Sequence[float],
    ro: Sequence[float],
    l: Sequence[float],
    p: Sequence[float],
    d: Sequence[float]
) -> np.ndarray:
    """
    Calculate the climatic characteristic K for every period of the year.

    Each argument holds one climatological mean per period of year (e.g.
    12 values for a monthly index, 52 for a weekly one). K' is computed
    from the ratio of moisture demand to supply, then scaled so that the
    weighted sum of K' over the year equals 17.67:

        T  = (PE + R + RO) / (P + L)
        K' = 1.5 * log10((T + 2.8) / D) + 0.5
        K  = 17.67 * K' / sum(D * K')

    :param pe: mean potential evapotranspiration
    :param r: mean recharge
    :param ro: mean runoff
    :param l: mean loss
    :param p: mean precipitation
    :param d: mean absolute moisture departure
    :return: array of K values, one per period of year; NaN for a period
        whose means are missing, which is also left out of the weighted sum
    :raises ValueError: if the arrays are not 1-D or have mismatched sizes
    """
    arrays = [np.asarray(a, dtype=np.float64) for a in (pe, r, ro, l, p, d)]
    n_periods = arrays[0].size
    for array in arrays:
        if array.ndim != 1:
            raise ValueError(
                f"Invalid array shape: {array.shape}. Expected 1-D array."
            )
        if array.size != n_periods:
            raise ValueError(
                f"Arguments have mismatched array sizes: "
                f"{[a.size for a in arrays]}"
            )
    pe, r, ro, l, p, d = arrays

    supply = p + l
    with np.errstate(divide='ignore', invalid='ignore'):
        t = (pe + r + ro) / supply
        k_prime = K_PRIME_SLOPE * np.log10((t + K_PRIME_T_OFFSET) / d) + K_PRIME_INTERCEPT
    # Without supply or departure the period carries no weight
    k_prime = np.where((supply == 0) | (d <= 0), 0.0, k_prime)
    # Periods without a climatology stay NaN and are left out of the sum
    k_prime = np.where(np.isfinite(k_prime), k_prime, np.nan)

    n_missing = int(np.sum(np.isnan(k_prime)))
    if n_missing:
        _logger.debug(f"{n_missing} of {n_periods} periods have no K' (missing means)")

    denominator = np.nansum(d * k_prime)
    if denominator == 0:
        _logger.warning("Weighted sum of K' is 0; K is 0 for every period")
        return np.where(np.isnan(k_prime), np.nan, 0.0)
    return K_SCALE * k_prime / denominator
