"""
Palmer two-layer soil water balance and moisture anomaly (Z-index).

The soil column holds the available water capacity (AWC) in two layers:
a topsoil layer holding up to 1 inch and a subsoil layer holding the
remainder. Demand is met from, and surplus is added to, the topsoil
first. The potential and actual water balance terms combine with the
climatological CAFEC coefficients into the CAFEC precipitation, whose
departure from observed precipitation, scaled by the climatic
characteristic K, is the Z-index consumed by the spell accounting.

All values are inches of water equivalent.

References:
    - Palmer, W.C. (1965). Meteorological Drought. Research Paper No. 45,
      U.S. Weather Bureau.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from numba import jit

from config import MIN_LAYER_CAPACITY, TOPSOIL_CAPACITY, get_logger
from utils import any_missing, coerce_values

# Module logger
_logger = get_logger(__name__)


# =============================================================================
# DATA TYPES
# =============================================================================

@dataclass(frozen=True)
class WaterBalance:
    """Potential and actual water balance terms for one period."""
    et: float
    pr: float
    r: float
    pro: float
    ro: float
    pl: float
    l: float
    sm_lower: float
    sm_upper: float

    @classmethod
    def missing(cls) -> 'WaterBalance':
        return cls(*([math.nan] * 9))

    @property
    def is_missing(self) -> bool:
        return math.isnan(self.et)


# =============================================================================
# WATER BALANCE KERNELS
# =============================================================================

@jit(nopython=True, cache=True)
def _layer_capacities(awc: float) -> Tuple[float, float]:
    """
    Split the available water capacity between the two soil layers.

    :param awc: available water capacity (inches)
    :return: tuple of (lower capacity, upper capacity)
    """
    if awc > TOPSOIL_CAPACITY:
        return awc - TOPSOIL_CAPACITY, TOPSOIL_CAPACITY
    if awc > MIN_LAYER_CAPACITY:
        return MIN_LAYER_CAPACITY, awc
    return MIN_LAYER_CAPACITY, MIN_LAYER_CAPACITY


@jit(nopython=True, cache=True)
def _water_balance_kernel(
    awc: float,
    pet: float,
    precip: float,
    sm_lower: float,
    sm_upper: float
) -> Tuple[float, float, float, float, float, float, float, float, float]:
    """
    Numba-optimized water balance for one period.

    :return: tuple of (et, pr, r, pro, ro, pl, l, sm_lower, sm_upper)
    """
    if not (
        math.isfinite(awc) and
        math.isfinite(pet) and
        math.isfinite(precip) and
        math.isfinite(sm_lower) and
        math.isfinite(sm_upper)
    ):
        return (math.nan, math.nan, math.nan, math.nan, math.nan,
                math.nan, math.nan, math.nan, math.nan)

    pet = max(pet, 0.0)
    precip = max(precip, 0.0)

    lower_cap, upper_cap = _layer_capacities(awc)
    total_cap = lower_cap + upper_cap

    # Potential values; runoff assumes precipitation is not yet known
    pr = total_cap - (sm_lower + sm_upper)
    pro = total_cap - pr
    pl_upper = min(pet, sm_upper)
    pl_lower = min(sm_lower * (pet - pl_upper) / total_cap, sm_lower)
    pl = pl_lower + pl_upper

    surplus = precip - pet
    if surplus >= 0.0:
        et = pet
        l = 0.0
        r_upper = min(surplus, upper_cap - sm_upper)
        r_lower = min(surplus - r_upper, lower_cap - sm_lower)
        r = r_lower + r_upper
        ro = max(surplus - r, 0.0)
        new_lower = min(sm_lower + r_lower, lower_cap)
        new_upper = min(sm_upper + r_upper, upper_cap)
    else:
        deficit = -surplus
        r = 0.0
        ro = 0.0
        l_upper = min(deficit, sm_upper)
        l_lower = min(sm_lower * (deficit - l_upper) / total_cap, sm_lower)
        l = l_lower + l_upper
        et = precip + l
        new_lower = max(sm_lower - l_lower, 0.0)
        new_upper = max(sm_upper - l_upper, 0.0)

    return et, pr, r, pro, ro, pl, l, new_lower, new_upper


@jit(nopython=True, cache=True)
def _cafec_precipitation_kernel(
    pet: float,
    alpha: float,
    pr: float,
    beta: float,
    pro: float,
    gamma: float,
    pl: float,
    delta: float
) -> float:
    return alpha * pet + beta * pr + gamma * pro - delta * pl


# =============================================================================
# PUBLIC API
# =============================================================================

def get_water_balance(
    awc: float,
    pet: float,
    precip: float,
    sm_lower: float,
    sm_upper: float
) -> WaterBalance:
    """
    Calculate the potential and actual Palmer water balance for one period.

    When starting a record with unknown soil moisture, both layers can be
    set to field capacity; afterwards pass the returned sm_lower and
    sm_upper as the next period's inputs. Negative PET or precipitation
    is treated as zero.

    :param awc: available water capacity of the soil column (inches)
    :param pet: potential evapotranspiration for the period (inches)
    :param precip: precipitation for the period (inches)
    :param sm_lower: subsoil moisture at the start of the period (inches)
    :param sm_upper: topsoil moisture at the start of the period (inches)
    :return: WaterBalance; all fields NaN if any input value is missing
    :raises ValueError: if any argument is None

    Example:
        >>> wb = get_water_balance(awc=6.0, pet=2.0, precip=3.0, sm_lower=5.0, sm_upper=0.5)
        >>> wb.r, wb.ro, wb.sm_upper
        (0.5, 0.5, 1.0)
    """
    values = coerce_values(
        "get_water_balance",
        awc=awc,
        pet=pet,
        precip=precip,
        sm_lower=sm_lower,
        sm_upper=sm_upper,
    )
    if any_missing(*values):
        _logger.debug(f"Missing water balance input: {values}")
        return WaterBalance.missing()
    return WaterBalance(*_water_balance_kernel(*values))


def get_cafec_precipitation(
    pet: float,
    alpha: float,
    pr: float,
    beta: float,
    pro: float,
    gamma: float,
    pl: float,
    delta: float
) -> float:
    """
    Calculate the climatically appropriate for existing conditions (CAFEC)
    precipitation.

    This is the precipitation that would keep the index unchanged through
    the period: alpha*PET + beta*PR + gamma*PRO - delta*PL.

    :param pet: potential evapotranspiration (inches)
    :param alpha: climatological coefficient of evapotranspiration
    :param pr: potential recharge (inches)
    :param beta: climatological coefficient of recharge
    :param pro: potential runoff (inches)
    :param gamma: climatological coefficient of runoff
    :param pl: potential loss (inches)
    :param delta: climatological coefficient of loss
    :return: CAFEC precipitation (inches), NaN if any input is missing
    :raises ValueError: if any argument is None
    """
    values = coerce_values(
        "get_cafec_precipitation",
        pet=pet,
        alpha=alpha,
        pr=pr,
        beta=beta,
        pro=pro,
        gamma=gamma,
        pl=pl,
        delta=delta,
    )
    if any_missing(*values):
        return math.nan
    return _cafec_precipitation_kernel(*values)


def get_moisture_departure(precip: float, cafec_precip: float) -> float:
    """
    Calculate the moisture departure d = P - CAFEC precipitation.

    :param precip: observed precipitation (inches)
    :param cafec_precip: CAFEC precipitation (inches)
    :return: moisture departure (inches), NaN if any input is missing
    """
    precip, cafec_precip = coerce_values(
        "get_moisture_departure",
        precip=precip,
        cafec_precip=cafec_precip,
    )
    if any_missing(precip, cafec_precip):
        return math.nan
    return precip - cafec_precip


def get_z_index(moisture_departure: float, k: float) -> float:
    """
    Calculate the Palmer moisture anomaly index Z = K * d.

    :param moisture_departure: moisture departure d (inches)
    :param k: climatic characteristic for the period of year
    :return: Z-index, NaN if any input is missing
    """
    moisture_departure, k = coerce_values(
        "get_z_index",
        moisture_departure=moisture_departure,
        k=k,
    )
    if any_missing(moisture_departure, k):
        return math.nan
    return k * moisture_departure
