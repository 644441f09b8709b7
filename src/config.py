"""
Configuration module for Palmer drought index calculation.

Contains enums, constants, and logging setup.

Palmer, W.C. (1965). Meteorological Drought. Research Paper No. 45,
U.S. Weather Bureau, Washington, D.C.

Heddinghaus, T.R. and Sabol, P. (1991). A review of the Palmer Drought
Severity Index and where do we go from here? 7th Conference on Applied
Climatology, AMS, 242-246.
"""

import logging
from enum import Enum
from typing import Union


# =============================================================================
# ENUMS
# =============================================================================

class PeriodType(Enum):
    """
    Enumeration type for the length of the accounting period.

    Each member carries the duration factor (climatological persistence
    weight applied to the prior period's index, 0 < df < 1), the slope of
    the effective wetness/dryness line (zewt, negative), and the number of
    periods in a year.

    'week': weekly Palmer accounting (CPC operational weekly PDSI)

    'month': monthly Palmer accounting (Palmer 1965)

    'pentad': 5-day accounting. The zewt value is a placeholder copied
        from the weekly constant and has not been climatologically
        validated.
    """

    week = (0.975, -2.925, 52)
    month = (0.897, -2.691, 12)
    pentad = (0.9828, -2.925, 73)

    def __init__(self, duration_factor: float, zewt: float, periods_per_year: int):
        self.duration_factor = duration_factor
        self.zewt = zewt
        self.periods_per_year = periods_per_year

    def __str__(self):
        return self.name

    @property
    def is_validated(self) -> bool:
        """
        Whether the zewt constant of this period type has been validated.

        :return: False for pentad, True otherwise
        """
        return self is not PeriodType.pentad

    @staticmethod
    def from_string(s: Union[str, 'PeriodType']) -> 'PeriodType':
        """
        Convert string to PeriodType enum.

        Matching is case-insensitive and by substring, so 'Weekly',
        'MONTHLY' and 'pentads' all resolve.

        :param s: string value (containing 'week', 'month' or 'pentad')
        :return: PeriodType enum value
        :raises ValueError: if string doesn't match any period type
        :raises TypeError: if the value is neither a string nor a PeriodType
        """
        if isinstance(s, PeriodType):
            return s
        if not isinstance(s, str):
            raise TypeError(
                f"Period type must be a string or PeriodType, got: {type(s).__name__}"
            )
        tag = s.lower()
        for period_type in PeriodType:
            if period_type.name in tag:
                return period_type
        raise ValueError(
            f"Invalid period type: '{s}'. Must be 'week', 'month' or 'pentad'."
        )


# =============================================================================
# CONSTANTS
# =============================================================================

# Spell accounting thresholds
# |X3| above this value means a wet or dry spell is established
SPELL_THRESHOLD = 0.5
# |X1| or |X2| at or above this value starts a new spell
NEW_SPELL_THRESHOLD = 1.0
# Each period's Z-index contributes Z/3 to the accounting series
Z_SCALE = 3.0

# Effective wetness/dryness
# Z needed to end a spell in one period: zewt * X3 +/- ZE_OFFSET
ZE_OFFSET = 1.5
# Z beyond which a period erodes an established spell
U_OFFSET = 0.15

# Spell-end probabilities within this distance of 0 or 1 snap to the bound
PROB_TOLERANCE = 0.001
# Added to a zero denominator before dividing
DIVISION_NUDGE = 1e-5

# Two-layer soil model (inches)
TOPSOIL_CAPACITY = 1.0
MIN_LAYER_CAPACITY = 0.1

# Climatic characteristic K (Palmer 1965, eq. 27)
K_PRIME_T_OFFSET = 2.8
K_PRIME_SLOPE = 1.5
K_PRIME_INTERCEPT = 0.5
K_SCALE = 17.67

# Crop Moisture Index (Palmer 1968)
CMI_ETA_SCALE = 1.8
CMI_ETAI_PERSISTENCE = 0.67

# Default calibration period (WMO standard)
DEFAULT_CALIBRATION_START_YEAR = 1991
DEFAULT_CALIBRATION_END_YEAR = 2020

# Output columns of the series driver, in order
WATER_BALANCE_NAMES = ("et", "pr", "r", "pro", "ro", "pl", "l", "sm_lower", "sm_upper")
PALMER_NAMES = (
    "cafec_precip", "moisture_departure", "z_index",
    "x1", "x2", "x3", "uaccum", "prob_spell_end", "pmdi",
)


# =============================================================================
# LOGGING
# =============================================================================

def get_logger(
    name: str,
    level: int = logging.INFO
) -> logging.Logger:
    """
    Set up and return a logger with consistent formatting.

    :param name: logger name (typically __name__ of calling module)
    :param level: logging level (default: logging.INFO)
    :return: configured logger instance
    """
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

_LONG_NAMES = {
    'et': 'Actual evapotranspiration',
    'pr': 'Potential recharge',
    'r': 'Actual recharge',
    'pro': 'Potential runoff',
    'ro': 'Actual runoff',
    'pl': 'Potential loss',
    'l': 'Actual loss',
    'sm_lower': 'Subsoil moisture at end of period',
    'sm_upper': 'Topsoil moisture at end of period',
    'cafec_precip': 'Climatically appropriate for existing conditions precipitation',
    'moisture_departure': 'Moisture departure',
    'z_index': 'Palmer moisture anomaly index (Z-index)',
    'x1': 'Potential wet spell severity',
    'x2': 'Potential dry spell severity',
    'x3': 'Established spell severity',
    'uaccum': 'Accumulated effective wetness/dryness against established spell',
    'prob_spell_end': 'Probability that the established spell has ended',
    'pmdi': 'Palmer Modified Drought Index',
    'etai': 'Evapotranspiration anomaly index',
    'gwai': 'Gravitational water index',
    'cmi': 'Crop Moisture Index',
}

_INDEX_NAMES = ('z_index', 'x1', 'x2', 'x3', 'uaccum', 'pmdi', 'etai', 'gwai', 'cmi')


def get_variable_attributes(
    name: str,
    period_type: PeriodType
) -> dict:
    """
    Generate standard NetCDF variable attributes for a series output.

    :param name: output column name (e.g., 'pmdi', 'et')
    :param period_type: PeriodType enum value
    :return: dictionary of attributes
    :raises ValueError: if the name is not a known output
    """
    if name not in _LONG_NAMES:
        raise ValueError(
            f"Invalid variable name: '{name}'. "
            f"Must be one of: {tuple(_LONG_NAMES)}"
        )

    if name in _INDEX_NAMES:
        units = '1'  # dimensionless
    elif name == 'prob_spell_end':
        units = '1'
    else:
        units = 'inches'

    attrs = {
        'long_name': _LONG_NAMES[name],
        'units': units,
        'periodicity': period_type.name,
    }
    if not period_type.is_validated:
        attrs['comment'] = (
            f"zewt constant for {period_type.name} periods is unverified"
        )
    return attrs
