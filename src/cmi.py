"""
Crop Moisture Index (CMI).

A weekly indicator of short-term soil moisture surplus or deficit, more
responsive than the Palmer drought index and intended for growing-season
assessments. The CMI is the sum of an evapotranspiration anomaly index
(ETAI) and a gravitational water index (GWAI), each of which depends on
its own value in the previous week. Both are initialised to 0 at the
start of a growing season.

References:
    - Palmer, W.C. (1968). Keeping track of crop moisture conditions,
      nationwide: The new Crop Moisture Index. Weatherwise, 21, 156-161.
"""

import math
from dataclasses import dataclass

from config import CMI_ETA_SCALE, CMI_ETAI_PERSISTENCE, get_logger
from utils import any_missing, coerce_values

# Module logger
_logger = get_logger(__name__)


@dataclass(frozen=True)
class CropMoistureResult:
    """Crop Moisture Index and its two components for one week."""
    cmi: float
    etai: float
    gwai: float

    @classmethod
    def missing(cls) -> 'CropMoistureResult':
        return cls(math.nan, math.nan, math.nan)


def _gwai_decay(prev_gwai: float) -> float:
    # Water drained from the gravitational reservoir since last week
    if prev_gwai > 1.0:
        return 0.5 * prev_gwai
    if prev_gwai > 0.5:
        return 0.5
    if prev_gwai > 0.0:
        return prev_gwai
    return 0.0


def get_cmi(
    pct_field_cap: float,
    prev_etai: float,
    prev_gwai: float,
    et: float,
    pet: float,
    alpha: float,
    recharge: float,
    runoff: float
) -> CropMoistureResult:
    """
    Calculate the Crop Moisture Index for one week.

    :param pct_field_cap: fraction of AWC currently held in the soil,
        clipped to [0, 1]
    :param prev_etai: ETAI of the previous week (0 to start a season)
    :param prev_gwai: GWAI of the previous week (0 to start a season)
    :param et: evapotranspiration from the water balance (inches)
    :param pet: potential evapotranspiration (inches)
    :param alpha: climatological coefficient of evapotranspiration
    :param recharge: recharge from the water balance (inches), >= 0
    :param runoff: runoff from the water balance (inches), >= 0
    :return: CropMoistureResult; all fields NaN if any input is missing
    :raises ValueError: if any argument is None

    Example:
        >>> result = get_cmi(1.0, 0.0, 0.0, 1.0, 1.0, 1.0, 0.0, 0.4)
        >>> result.cmi, result.etai, result.gwai
        (0.4, 0.0, 0.4)
    """
    values = coerce_values(
        "get_cmi",
        pct_field_cap=pct_field_cap,
        prev_etai=prev_etai,
        prev_gwai=prev_gwai,
        et=et,
        pet=pet,
        alpha=alpha,
        recharge=recharge,
        runoff=runoff,
    )
    if any_missing(*values):
        _logger.debug(f"Missing CMI input: {values}")
        return CropMoistureResult.missing()
    pct_field_cap, prev_etai, prev_gwai, et, pet, alpha, recharge, runoff = values

    pct_field_cap = min(max(pct_field_cap, 0.0), 1.0)
    recharge = max(recharge, 0.0)
    runoff = max(runoff, 0.0)

    eta = 0.0
    if alpha > 0:
        eta = CMI_ETA_SCALE * (et - alpha * pet) / math.sqrt(alpha)
    etai = CMI_ETAI_PERSISTENCE * prev_etai + eta
    if etai > 0:
        etai = pct_field_cap * etai

    gwai = prev_gwai - _gwai_decay(prev_gwai) + runoff + pct_field_cap * recharge

    return CropMoistureResult(cmi=etai + gwai, etai=etai, gwai=gwai)
