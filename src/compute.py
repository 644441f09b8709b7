"""
Series computation of the Palmer Modified Drought Index for one location.

Runs the water balance, derives the climatological coefficients, and
threads the spell accounting through a location's record, one period at
a time. The per-period kernels are the same Numba-compiled functions used
by the scalar API in palmer.py and water_balance.py.

A period with missing input yields NaN for every output of that period;
the last valid soil moisture and spell state carry into the next period.
"""

import math
import warnings
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import xarray as xr
from numba import jit

from climatology import ClimatologyCoefficients, get_cafec_coeff, get_k_coeff
from cmi import get_cmi
from config import (
    DEFAULT_CALIBRATION_END_YEAR,
    DEFAULT_CALIBRATION_START_YEAR,
    PALMER_NAMES,
    WATER_BALANCE_NAMES,
    PeriodType,
    get_logger,
    get_variable_attributes,
)
from palmer import SpellState, _advance_kernel, _select_pmdi_kernel
from utils import (
    any_missing,
    coerce_values,
    is_data_valid,
    period_of_year,
    require,
    reshape_to_2d,
    to_1d_array,
)
from water_balance import _layer_capacities, _water_balance_kernel

# Module logger
_logger = get_logger(__name__)

SeriesLike = Union[np.ndarray, pd.Series, xr.DataArray, Sequence[float]]


# =============================================================================
# RECURRENCE KERNELS
# =============================================================================

@jit(nopython=True, cache=True)
def _water_balance_1d(
    precip: np.ndarray,
    pet: np.ndarray,
    awc: float,
    sm_lower: float,
    sm_upper: float
) -> np.ndarray:
    """
    Numba-optimized water balance over a record.

    :return: array with shape (n, 9), columns ordered as WATER_BALANCE_NAMES
    """
    n = precip.size
    result = np.full((n, 9), np.nan)

    for i in range(n):
        et, pr, r, pro, ro, pl, l, lower, upper = _water_balance_kernel(
            awc, pet[i], precip[i], sm_lower, sm_upper
        )
        if math.isnan(et):
            continue
        result[i, 0] = et
        result[i, 1] = pr
        result[i, 2] = r
        result[i, 3] = pro
        result[i, 4] = ro
        result[i, 5] = pl
        result[i, 6] = l
        result[i, 7] = lower
        result[i, 8] = upper
        sm_lower = lower
        sm_upper = upper

    return result


@jit(nopython=True, cache=True)
def _palmer_recurrence_1d(
    z_index: np.ndarray,
    duration_factor: float,
    zewt: float,
    x1: float,
    x2: float,
    x3: float,
    uaccum: float
) -> np.ndarray:
    """
    Numba-optimized spell accounting over a record.

    :return: array with shape (n, 6): x1, x2, x3, uaccum, prob_spell_end, pmdi
    """
    n = z_index.size
    result = np.full((n, 6), np.nan)

    for i in range(n):
        new_x1, new_x2, new_x3, new_uaccum, prob = _advance_kernel(
            duration_factor, zewt, z_index[i], x1, x2, x3, uaccum
        )
        if math.isnan(new_x3):
            continue
        result[i, 0] = new_x1
        result[i, 1] = new_x2
        result[i, 2] = new_x3
        result[i, 3] = new_uaccum
        result[i, 4] = prob
        result[i, 5] = _select_pmdi_kernel(new_x1, new_x2, new_x3, prob)
        x1 = new_x1
        x2 = new_x2
        x3 = new_x3
        uaccum = new_uaccum

    return result


# =============================================================================
# INPUT HANDLING
# =============================================================================

def _prepare_inputs(
    precip: SeriesLike,
    pet: SeriesLike,
    awc: float
) -> Tuple[np.ndarray, np.ndarray, float, Optional[pd.Index]]:
    """
    Validate a location's precipitation and PET records.

    :return: tuple of (precip, pet, awc, time index or None)
    :raises ValueError: if the records differ in length or AWC is None
    """
    precip_array, index = to_1d_array(precip, name="precip")
    pet_array, pet_index = to_1d_array(pet, name="pet")
    if precip_array.size != pet_array.size:
        raise ValueError(
            f"precip and pet have mismatched lengths: "
            f"{precip_array.size} != {pet_array.size}"
        )
    if index is None:
        index = pet_index

    (awc,) = coerce_values("calculate_water_balance_series", awc=awc)
    if math.isnan(awc):
        _logger.warning("AWC is missing; every output will be NaN")

    # Clip negative values
    precip_array = np.clip(precip_array, 0, None)
    pet_array = np.clip(pet_array, 0, None)

    return precip_array, pet_array, awc, index


def _initial_soil_moisture(
    awc: float,
    sm_lower: Optional[float],
    sm_upper: Optional[float]
) -> Tuple[float, float]:
    # Unknown starting moisture defaults to field capacity
    if math.isnan(awc):
        lower_cap, upper_cap = math.nan, math.nan
    else:
        lower_cap, upper_cap = _layer_capacities(awc)
    lower = lower_cap if sm_lower is None else sm_lower
    upper = upper_cap if sm_upper is None else sm_upper
    return coerce_values("calculate_water_balance_series", sm_lower=lower, sm_upper=upper)


def _calibration_means(
    values: np.ndarray,
    periods_per_year: int,
    start_period: int,
    cal_slice: slice
) -> np.ndarray:
    """
    Mean of each period of year over the calibration years.

    :return: array with shape (periods_per_year,), NaN where no data
    """
    values_2d = reshape_to_2d(values, periods_per_year, start_period)[cal_slice]
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', RuntimeWarning)
        return np.nanmean(values_2d, axis=0)


def _calibration_slice(
    length: int,
    periods_per_year: int,
    start_period: int,
    data_start_year: Optional[int],
    calibration_start_year: int,
    calibration_end_year: int
) -> slice:
    if data_start_year is None:
        return slice(None)

    num_years = -(-(length + start_period) // periods_per_year)
    data_end_year = data_start_year + num_years - 1

    # Adjust calibration period if out of bounds
    cal_start = max(calibration_start_year, data_start_year)
    cal_end = min(calibration_end_year, data_end_year)
    if cal_start > cal_end:
        raise ValueError(
            f"Calibration period {calibration_start_year}-{calibration_end_year} "
            f"does not overlap data period {data_start_year}-{data_end_year}"
        )
    return slice(cal_start - data_start_year, cal_end - data_start_year + 1)


# =============================================================================
# SERIES API
# =============================================================================

def calculate_water_balance_series(
    precip: SeriesLike,
    pet: SeriesLike,
    awc: float,
    sm_lower: Optional[float] = None,
    sm_upper: Optional[float] = None
) -> Dict[str, np.ndarray]:
    """
    Run the two-layer water balance through a location's record.

    :param precip: 1-D precipitation record (inches)
    :param pet: 1-D potential evapotranspiration record (inches)
    :param awc: available water capacity of the soil column (inches)
    :param sm_lower: subsoil moisture before the first period
        (default: field capacity)
    :param sm_upper: topsoil moisture before the first period
        (default: field capacity)
    :return: dictionary of arrays keyed by WATER_BALANCE_NAMES, plus
        'precip' and 'pet' (negative values clipped to 0)
    """
    precip, pet, awc, _ = _prepare_inputs(precip, pet, awc)
    lower, upper = _initial_soil_moisture(awc, sm_lower, sm_upper)

    result = _water_balance_1d(precip, pet, awc, lower, upper)

    series = {name: result[:, i] for i, name in enumerate(WATER_BALANCE_NAMES)}
    series['precip'] = precip
    series['pet'] = pet
    return series


def calculate_climatology(
    precip: SeriesLike,
    pet: SeriesLike,
    awc: float,
    period_type: Union[str, PeriodType],
    data_start_year: Optional[int] = None,
    calibration_start_year: int = DEFAULT_CALIBRATION_START_YEAR,
    calibration_end_year: int = DEFAULT_CALIBRATION_END_YEAR,
    start_period: int = 0,
    sm_lower: Optional[float] = None,
    sm_upper: Optional[float] = None
) -> ClimatologyCoefficients:
    """
    Derive the CAFEC coefficients and climatic characteristic K from a record.

    The record is assumed to be contiguous, its first value falling on
    period-of-year `start_period` of `data_start_year`. When
    `data_start_year` is not given, the whole record is the calibration
    period.

    :param precip: 1-D precipitation record (inches)
    :param pet: 1-D potential evapotranspiration record (inches)
    :param awc: available water capacity of the soil column (inches)
    :param period_type: 'week', 'month' or 'pentad' (or PeriodType enum)
    :param data_start_year: first year of the data
    :param calibration_start_year: first year of calibration period (default: 1991)
    :param calibration_end_year: last year of calibration period (default: 2020)
    :param start_period: period-of-year index of the first value (0-based)
    :param sm_lower: subsoil moisture before the first period
    :param sm_upper: topsoil moisture before the first period
    :return: ClimatologyCoefficients for every period of the year

    Example:
        >>> coeffs = calculate_climatology(precip, pet, awc=6.0, period_type='monthly',
        ...                                data_start_year=1950)
        >>> coeffs.k.shape
        (12,)
    """
    period_type = PeriodType.from_string(require("calculate_climatology", "period_type", period_type))
    periods = period_type.periods_per_year

    wb = calculate_water_balance_series(precip, pet, awc, sm_lower, sm_upper)
    n = wb['precip'].size
    _logger.info(
        f"Computing climatology from {n} {period_type.name} periods "
        f"(data_start_year: {data_start_year})"
    )

    cal_slice = _calibration_slice(
        n, periods, start_period, data_start_year,
        calibration_start_year, calibration_end_year
    )

    def means(values: np.ndarray) -> np.ndarray:
        return _calibration_means(values, periods, start_period, cal_slice)

    mean_pet = means(wb['pet'])
    mean_r = means(wb['r'])
    mean_ro = means(wb['ro'])
    mean_l = means(wb['l'])
    mean_precip = means(wb['precip'])

    alpha = get_cafec_coeff(means(wb['et']), mean_pet)
    beta = get_cafec_coeff(mean_r, means(wb['pr']))
    gamma = get_cafec_coeff(mean_ro, means(wb['pro']))
    delta = get_cafec_coeff(mean_l, means(wb['pl']))

    poy = period_of_year(n, periods, start_period)
    cafec_precip = (
        alpha[poy] * wb['pet'] + beta[poy] * wb['pr'] +
        gamma[poy] * wb['pro'] - delta[poy] * wb['pl']
    )
    mean_abs_departure = means(np.abs(wb['precip'] - cafec_precip))

    k = get_k_coeff(mean_pet, mean_r, mean_ro, mean_l, mean_precip, mean_abs_departure)

    n_missing = int(np.sum(np.isnan(k)))
    if n_missing:
        _logger.warning(
            f"{n_missing} of {periods} periods have no climatology (NaN K)"
        )

    return ClimatologyCoefficients(
        period_type=period_type,
        alpha=alpha,
        beta=beta,
        gamma=gamma,
        delta=delta,
        k=k,
    )


def calculate_pmdi(
    precip: SeriesLike,
    pet: SeriesLike,
    awc: float,
    period_type: Union[str, PeriodType],
    coefficients: Optional[ClimatologyCoefficients] = None,
    initial_state: Optional[SpellState] = None,
    sm_lower: Optional[float] = None,
    sm_upper: Optional[float] = None,
    start_period: int = 0,
    data_start_year: Optional[int] = None,
    calibration_start_year: int = DEFAULT_CALIBRATION_START_YEAR,
    calibration_end_year: int = DEFAULT_CALIBRATION_END_YEAR
) -> pd.DataFrame:
    """
    Calculate the Palmer Modified Drought Index through a location's record.

    :param precip: 1-D precipitation record (inches); numpy array, list,
        pandas Series, or DataArray with a 'time' dimension
    :param pet: 1-D potential evapotranspiration record (inches)
    :param awc: available water capacity of the soil column (inches)
    :param period_type: 'week', 'month' or 'pentad' (or PeriodType enum)
    :param coefficients: pre-computed climatology from calculate_climatology()
        (default: derived from this record)
    :param initial_state: spell state before the first period (default: zeros)
    :param sm_lower: subsoil moisture before the first period
        (default: field capacity)
    :param sm_upper: topsoil moisture before the first period
        (default: field capacity)
    :param start_period: period-of-year index of the first value (0-based)
    :param data_start_year: first year of the data, used for calibration
    :param calibration_start_year: first year of calibration period (default: 1991)
    :param calibration_end_year: last year of calibration period (default: 2020)
    :return: DataFrame with columns WATER_BALANCE_NAMES + PALMER_NAMES,
        indexed by time when the input carries one
    :raises ValueError: if the coefficients were built for another period
        type or the initial state is missing a value

    Example:
        >>> frame = calculate_pmdi(precip_da, pet_da, awc=6.0, period_type='monthly')
        >>> frame['pmdi'].tail()
    """
    function = "calculate_pmdi"
    period_type = PeriodType.from_string(require(function, "period_type", period_type))
    if not period_type.is_validated:
        _logger.warning(
            f"zewt for {period_type.name} periods is an unverified placeholder "
            f"({period_type.zewt})"
        )

    if coefficients is None:
        coefficients = calculate_climatology(
            precip, pet, awc, period_type,
            data_start_year=data_start_year,
            calibration_start_year=calibration_start_year,
            calibration_end_year=calibration_end_year,
            start_period=start_period,
            sm_lower=sm_lower,
            sm_upper=sm_upper,
        )
    elif coefficients.period_type is not period_type:
        raise ValueError(
            f"{function}: coefficients are for {coefficients.period_type.name} "
            f"periods, not {period_type.name}"
        )

    if initial_state is None:
        initial_state = SpellState.initial()
    state = coerce_values(
        function,
        x1=initial_state.x1,
        x2=initial_state.x2,
        x3=initial_state.x3,
        uaccum=initial_state.uaccum,
    )
    if any_missing(*state):
        raise ValueError(f"{function}: initial state must be numeric, got: {initial_state}")

    _, index = to_1d_array(precip, name="precip")
    if index is None:
        _, index = to_1d_array(pet, name="pet")
    wb = calculate_water_balance_series(precip, pet, awc, sm_lower, sm_upper)
    n = wb['precip'].size
    _logger.info(f"Computing PMDI for {n} {period_type.name} periods")

    if not is_data_valid(wb['et']):
        _logger.warning("No valid water balance periods in record")

    poy = period_of_year(n, period_type.periods_per_year, start_period)
    cafec_precip = (
        coefficients.alpha[poy] * wb['pet'] + coefficients.beta[poy] * wb['pr'] +
        coefficients.gamma[poy] * wb['pro'] - coefficients.delta[poy] * wb['pl']
    )
    moisture_departure = wb['precip'] - cafec_precip
    z_index = coefficients.k[poy] * moisture_departure

    if np.any(coefficients.k == 0):
        _logger.warning("Climatic characteristic K is 0 for some periods; Z-index is 0 there")

    palmer = _palmer_recurrence_1d(
        z_index, period_type.duration_factor, period_type.zewt, *state
    )

    columns = {name: wb[name] for name in WATER_BALANCE_NAMES}
    columns['cafec_precip'] = cafec_precip
    columns['moisture_departure'] = moisture_departure
    columns['z_index'] = z_index
    for i, name in enumerate(PALMER_NAMES[3:]):
        columns[name] = palmer[:, i]

    frame = pd.DataFrame(columns, index=index)
    if isinstance(index, pd.DatetimeIndex):
        frame.index.name = 'time'

    n_missing = int(frame['pmdi'].isna().sum())
    if n_missing:
        _logger.warning(f"{n_missing} of {n} periods have missing PMDI")

    return frame


def calculate_cmi_series(
    frame: pd.DataFrame,
    pet: SeriesLike,
    awc: float,
    coefficients: ClimatologyCoefficients,
    start_period: int = 0,
    season_start_periods: Optional[Sequence[int]] = None
) -> pd.DataFrame:
    """
    Calculate the weekly Crop Moisture Index from a PMDI frame.

    ETAI and GWAI start at 0 and restart at 0 on every period of year
    listed in `season_start_periods` (e.g. the first week of the growing
    season). Missing weeks yield NaN and the previous week's values carry
    forward.

    :param frame: output of calculate_pmdi() for a weekly record
    :param pet: the potential evapotranspiration record given to calculate_pmdi()
    :param awc: available water capacity of the soil column (inches)
    :param coefficients: climatology used to produce the frame
    :param start_period: period-of-year index of the first row (0-based)
    :param season_start_periods: period-of-year indices that begin a season
    :return: DataFrame with columns etai, gwai, cmi and the frame's index
    :raises ValueError: if the coefficients are not weekly or the PET
        record does not match the frame
    """
    if coefficients.period_type is not PeriodType.week:
        raise ValueError(
            f"Crop Moisture Index requires weekly periods, got: "
            f"{coefficients.period_type.name}"
        )
    pet, _ = to_1d_array(pet, name="pet")
    if pet.size != len(frame):
        raise ValueError(
            f"pet and frame have mismatched lengths: {pet.size} != {len(frame)}"
        )
    pet = np.clip(pet, 0, None)

    (awc,) = coerce_values("calculate_cmi_series", awc=awc)
    n = len(frame)
    result = np.full((n, 3), np.nan)
    if math.isnan(awc):
        _logger.warning("AWC is missing; every CMI value will be NaN")
        return pd.DataFrame(result, columns=['etai', 'gwai', 'cmi'], index=frame.index)

    lower_cap, upper_cap = _layer_capacities(awc)
    capacity = lower_cap + upper_cap
    season_starts = set(season_start_periods or ())
    poy = period_of_year(n, PeriodType.week.periods_per_year, start_period)

    prev_etai = prev_gwai = 0.0
    for i, row in enumerate(frame.itertuples(index=False)):
        if i > 0 and poy[i] in season_starts:
            prev_etai = prev_gwai = 0.0
        week = get_cmi(
            pct_field_cap=(row.sm_lower + row.sm_upper) / capacity,
            prev_etai=prev_etai,
            prev_gwai=prev_gwai,
            et=row.et,
            pet=pet[i],
            alpha=coefficients.alpha[poy[i]],
            recharge=row.r,
            runoff=row.ro,
        )
        if math.isnan(week.cmi):
            continue
        result[i] = (week.etai, week.gwai, week.cmi)
        prev_etai, prev_gwai = week.etai, week.gwai

    return pd.DataFrame(result, columns=['etai', 'gwai', 'cmi'], index=frame.index)


def pmdi_to_dataset(
    frame: pd.DataFrame,
    period_type: Union[str, PeriodType],
    awc: Optional[float] = None
) -> xr.Dataset:
    """
    Convert a series frame to an xarray Dataset with CF-style attributes.

    :param frame: output of calculate_pmdi() (optionally joined with
        calculate_cmi_series())
    :param period_type: 'week', 'month' or 'pentad' (or PeriodType enum)
    :param awc: available water capacity recorded as a global attribute
    :return: Dataset with one variable per known column along 'time'
    """
    period_type = PeriodType.from_string(period_type)
    frame = frame.copy()
    frame.index.name = 'time'

    ds = xr.Dataset.from_dataframe(frame)
    for name in ds.data_vars:
        try:
            ds[name].attrs = get_variable_attributes(str(name), period_type)
        except ValueError:
            _logger.debug(f"No attributes defined for column '{name}'")

    ds.attrs['title'] = f"Palmer Modified Drought Index ({period_type.name} periods)"
    if awc is not None:
        ds.attrs['awc_inches'] = float(awc)
    return ds
