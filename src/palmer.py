"""
Palmer drought spell accounting and Palmer Modified Drought Index (PMDI).

Each period, the Z-index updates three accounting series:
- X1: severity of a potential wet spell (>= 0)
- X2: severity of a potential dry spell (<= 0)
- X3: severity of the established spell (|X3| > 0.5 when one exists)

Palmer's (1965) original selection of the final PDSI value requires
backtracking once a new spell becomes established. The modified index
used at the Climate Prediction Center instead blends the established
spell with the opposite potential spell, weighted by the probability that
the established spell has ended, so a value never changes after it is
emitted.

All functions are pure: the caller threads the returned state into the
next period.

References:
    - Palmer, W.C. (1965). Meteorological Drought. Research Paper No. 45,
      U.S. Weather Bureau.
    - Heddinghaus, T.R. and Sabol, P. (1991). A review of the Palmer Drought
      Severity Index and where do we go from here? 7th Conference on
      Applied Climatology, AMS, 242-246.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Tuple, Union

from numba import jit

from config import (
    DIVISION_NUDGE,
    NEW_SPELL_THRESHOLD,
    PROB_TOLERANCE,
    SPELL_THRESHOLD,
    U_OFFSET,
    ZE_OFFSET,
    Z_SCALE,
    PeriodType,
    get_logger,
)
from utils import any_missing, coerce_values, lookup, require

# Module logger
_logger = get_logger(__name__)


# =============================================================================
# DATA TYPES
# =============================================================================

@dataclass(frozen=True)
class SpellState:
    """Drought accounting state carried from one period to the next."""
    x1: float
    x2: float
    x3: float
    uaccum: float

    @classmethod
    def initial(cls) -> 'SpellState':
        """State at the start of a record: no potential or established spell."""
        return cls(0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> 'SpellState':
        """
        Create from a mapping with X1, X2, X3 and UACCUM keys.

        :param mapping: mapping of field name to value (key case ignored)
        :return: SpellState with the values as given
        :raises ValueError: if a key is missing or its value is None
        """
        function = "SpellState.from_mapping"
        return cls(
            x1=lookup(function, mapping, 'X1'),
            x2=lookup(function, mapping, 'X2'),
            x3=lookup(function, mapping, 'X3'),
            uaccum=lookup(function, mapping, 'UACCUM'),
        )

    @property
    def has_spell(self) -> bool:
        """True when a wet or dry spell is established."""
        return abs(self.x3) > SPELL_THRESHOLD


@dataclass(frozen=True)
class AccountingResult:
    """Outcome of one period of spell accounting."""
    x1: float
    x2: float
    x3: float
    uaccum: float
    prob_spell_end: float

    @classmethod
    def missing(cls) -> 'AccountingResult':
        """All-NaN result returned when any input value is missing."""
        return cls(math.nan, math.nan, math.nan, math.nan, math.nan)

    @property
    def is_missing(self) -> bool:
        return math.isnan(self.x3)

    @property
    def state(self) -> SpellState:
        """State to pass to the next period."""
        return SpellState(self.x1, self.x2, self.x3, self.uaccum)

    def to_dict(self) -> dict:
        return {
            'X1': self.x1,
            'X2': self.x2,
            'X3': self.x3,
            'UACCUM': self.uaccum,
            'PROB_SPELL_END': self.prob_spell_end,
        }


# =============================================================================
# ACCOUNTING KERNELS
# =============================================================================

@jit(nopython=True, cache=True)
def _new_spell_x3(x1: float, x2: float) -> float:
    """
    Numba-optimized new spell test.

    :param x1: potential wet spell severity
    :param x2: potential dry spell severity
    :return: severity of the newly established spell, 0 if none starts
    """
    wet_starts = abs(x1) >= NEW_SPELL_THRESHOLD
    dry_starts = abs(x2) >= NEW_SPELL_THRESHOLD

    if wet_starts and dry_starts:
        if abs(x1) >= abs(x2):
            return x1
        return x2
    if wet_starts:
        return x1
    if dry_starts:
        return x2
    return 0.0


@jit(nopython=True, cache=True)
def _clamp_probability(prob: float) -> float:
    """Snap a spell-end probability to 0 or 1 near (or beyond) either bound."""
    if prob <= PROB_TOLERANCE:
        return 0.0
    if prob >= 1.0 - PROB_TOLERANCE:
        return 1.0
    return prob


@jit(nopython=True, cache=True)
def _advance_kernel(
    duration_factor: float,
    zewt: float,
    z_index: float,
    prior_x1: float,
    prior_x2: float,
    prior_x3: float,
    prior_uaccum: float
) -> Tuple[float, float, float, float, float]:
    """
    Numba-optimized spell accounting for one period.

    :param duration_factor: persistence weight of the prior period
    :param zewt: slope of the effective wetness/dryness line
    :param z_index: moisture anomaly of the current period
    :param prior_x1: prior potential wet spell severity
    :param prior_x2: prior potential dry spell severity
    :param prior_x3: prior established spell severity
    :param prior_uaccum: prior accumulated effective wetness/dryness
    :return: tuple of (x1, x2, x3, uaccum, prob_spell_end)
    """
    if not (
        math.isfinite(z_index) and
        math.isfinite(prior_x1) and
        math.isfinite(prior_x2) and
        math.isfinite(prior_x3) and
        math.isfinite(prior_uaccum)
    ):
        return math.nan, math.nan, math.nan, math.nan, math.nan

    prior_x1 = max(prior_x1, 0.0)
    prior_x2 = min(prior_x2, 0.0)
    if abs(prior_x3) < SPELL_THRESHOLD:
        prior_x3 = 0.0
        prior_uaccum = 0.0
    # Accumulation only ever erodes the established spell
    if prior_x3 * prior_uaccum > 0.0:
        prior_uaccum = 0.0

    increment = z_index / Z_SCALE
    x1 = max(duration_factor * prior_x1 + increment, 0.0)
    x2 = min(duration_factor * prior_x2 + increment, 0.0)

    # No established spell
    if abs(prior_x3) <= SPELL_THRESHOLD:
        return x1, x2, _new_spell_x3(x1, x2), 0.0, 0.0

    x3 = duration_factor * prior_x3 + increment
    spell_collapses = abs(x3) <= SPELL_THRESHOLD
    if spell_collapses:
        return x1, x2, _new_spell_x3(x1, x2), 0.0, 1.0

    # Polarity follows the new X3, which may have changed sign this period
    wet_spell = x3 > 0.0
    if wet_spell:
        z_effective = zewt * prior_x3 + ZE_OFFSET
        spell_ends_early = z_index <= z_effective
    else:
        z_effective = zewt * prior_x3 - ZE_OFFSET
        spell_ends_early = z_index >= z_effective
    if spell_ends_early:
        return x1, x2, _new_spell_x3(x1, x2), 0.0, 1.0

    tracking_end = prior_uaccum != 0.0
    if tracking_end:
        if wet_spell:
            uaccum = prior_uaccum + z_index - U_OFFSET
        else:
            uaccum = prior_uaccum + z_index + U_OFFSET
        denominator = z_effective + prior_uaccum
    else:
        uaccum = 0.0
        if wet_spell and z_index < U_OFFSET:
            uaccum = z_index - U_OFFSET
        elif not wet_spell and z_index > -U_OFFSET:
            uaccum = z_index + U_OFFSET
        denominator = z_effective
    if denominator == 0.0:
        denominator = DIVISION_NUDGE
    prob = _clamp_probability(uaccum / denominator)

    if prob == 1.0:
        return x1, x2, _new_spell_x3(x1, x2), 0.0, 1.0
    if prob == 0.0:
        return 0.0, 0.0, x3, 0.0, 0.0
    return x1, x2, x3, uaccum, prob


@jit(nopython=True, cache=True)
def _select_pmdi_kernel(
    x1: float,
    x2: float,
    x3: float,
    prob_spell_end: float
) -> float:
    """
    Numba-optimized PMDI selection.

    :return: PMDI value, NaN if any input is NaN
    """
    if not (
        math.isfinite(x1) and
        math.isfinite(x2) and
        math.isfinite(x3) and
        math.isfinite(prob_spell_end)
    ):
        return math.nan

    if abs(x3) <= SPELL_THRESHOLD:
        if abs(x1) >= abs(x2):
            return x1
        return x2
    if x3 > 0.0:
        return (1.0 - prob_spell_end) * x3 + prob_spell_end * x2
    return (1.0 - prob_spell_end) * x3 + prob_spell_end * x1


# =============================================================================
# PUBLIC API
# =============================================================================

def new_spell_x3(x1: float, x2: float) -> float:
    """
    Test whether a new wet or dry spell becomes established.

    When both potential spells reach a severity of 1 in the same period,
    the one with the larger magnitude is established; an exact tie goes
    to the wet spell.

    :param x1: potential wet spell severity
    :param x2: potential dry spell severity
    :return: X3 of the new spell (X1 or X2), 0 if no spell starts,
        NaN if either input is missing

    Example:
        >>> new_spell_x3(1.2, -0.4)
        1.2
        >>> new_spell_x3(1.2, -1.5)
        -1.5
        >>> new_spell_x3(0.6, -0.8)
        0.0
    """
    x1, x2 = coerce_values("new_spell_x3", x1=x1, x2=x2)
    if any_missing(x1, x2):
        return math.nan
    return _new_spell_x3(x1, x2)


def advance(
    period_type: Union[str, PeriodType],
    z_index: float,
    prior_state: Union[SpellState, Mapping[str, Any]]
) -> AccountingResult:
    """
    Advance the drought spell accounting by one period.

    Decides whether a wet or dry spell is beginning, continuing or ending
    and returns the updated accounting series together with the
    probability that the established spell has ended.

    :param period_type: 'week', 'month' or 'pentad' (case-insensitive,
        substring match) or PeriodType enum
    :param z_index: Palmer Z-index of the current period
    :param prior_state: SpellState (or mapping with X1, X2, X3, UACCUM)
        returned for the previous period
    :return: AccountingResult; all fields NaN if any data value is missing
    :raises ValueError: if the period type is unsupported or a required
        value is not supplied
    :raises TypeError: if prior_state is neither a SpellState nor a mapping

    Example:
        >>> result = advance('weekly', 3.5, SpellState.initial())
        >>> round(result.x3, 4), result.prob_spell_end
        (1.1667, 0.0)
        >>> result = advance('monthly', -3.0, result.state)
        >>> result.prob_spell_end
        1.0
    """
    function = "advance"
    period_type = PeriodType.from_string(require(function, "period_type", period_type))

    if isinstance(prior_state, Mapping):
        prior_state = SpellState.from_mapping(prior_state)
    elif not isinstance(prior_state, SpellState):
        raise TypeError(
            f"{function}: prior_state must be a SpellState or mapping, "
            f"got: {type(prior_state).__name__}"
        )

    values = coerce_values(
        function,
        z_index=z_index,
        x1=prior_state.x1,
        x2=prior_state.x2,
        x3=prior_state.x3,
        uaccum=prior_state.uaccum,
    )
    if any_missing(*values):
        _logger.debug(f"Missing spell accounting input: {values}")
        return AccountingResult.missing()

    return AccountingResult(*_advance_kernel(
        period_type.duration_factor,
        period_type.zewt,
        *values
    ))


def select_pmdi(
    x1: float,
    x2: float,
    x3: float,
    prob_spell_end: float
) -> float:
    """
    Select the Palmer Modified Drought Index value for a period.

    Without an established spell, the potential spell with the larger
    magnitude is used (a tie goes to X1). With an established spell, the
    result is the established severity blended toward the opposite
    potential spell by the probability that the spell has ended.

    :param x1: potential wet spell severity
    :param x2: potential dry spell severity
    :param x3: established spell severity
    :param prob_spell_end: probability that the established spell has ended
    :return: PMDI value, NaN if any input is missing

    Example:
        >>> select_pmdi(2.0, -2.0, 0.3, 0.0)
        2.0
        >>> select_pmdi(0.0, -1.2, 2.5, 0.5)
        0.65
    """
    values = coerce_values(
        "select_pmdi",
        x1=x1,
        x2=x2,
        x3=x3,
        prob_spell_end=prob_spell_end,
    )
    if any_missing(*values):
        return math.nan
    return _select_pmdi_kernel(*values)


def get_pmdi(
    period_type: Union[str, PeriodType],
    z_index: float,
    prior_state: Union[SpellState, Mapping[str, Any]]
) -> Tuple[AccountingResult, float]:
    """
    Advance the spell accounting and select the PMDI in one call.

    :param period_type: 'week', 'month' or 'pentad', or PeriodType enum
    :param z_index: Palmer Z-index of the current period
    :param prior_state: state returned for the previous period
    :return: tuple of (AccountingResult, PMDI value)
    """
    result = advance(period_type, z_index, prior_state)
    pmdi = select_pmdi(result.x1, result.x2, result.x3, result.prob_spell_end)
    return result, pmdi
