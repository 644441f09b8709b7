"""
Utility functions for Palmer drought index calculation.

Includes argument validation, missing-value handling, and array
reshaping helpers shared by the scalar and series modules.
"""

import math
from numbers import Real
from typing import Any, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
import xarray as xr

from config import get_logger


# Module logger
_logger = get_logger(__name__)


# =============================================================================
# ARGUMENT VALIDATION
# =============================================================================

def require(
    function: str,
    name: str,
    value: Any
) -> Any:
    """
    Check that a required argument was supplied.

    :param function: calling function name, used in the error message
    :param name: argument name
    :param value: argument value
    :return: the value unchanged
    :raises ValueError: if the value is None
    """
    if value is None:
        raise ValueError(f"{function}: no defined {name} value")
    return value


def to_float(value: Any) -> float:
    """
    Convert a data value to float, mapping non-numeric values to NaN.

    Numeric strings are parsed. Anything that is not a finite number
    (NaN, +/-inf, unparseable text, other objects) becomes NaN.

    :param value: value to convert
    :return: finite float or NaN
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (Real, np.number)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return math.nan
    else:
        return math.nan
    return result if math.isfinite(result) else math.nan


def coerce_values(
    function: str,
    **values: Any
) -> Tuple[float, ...]:
    """
    Validate and convert a set of named data values.

    :param function: calling function name, used in the error message
    :param values: named argument values, in order
    :return: tuple of floats (NaN where a value is non-numeric)
    :raises ValueError: if any value is None
    """
    return tuple(
        to_float(require(function, name, value))
        for name, value in values.items()
    )


def any_missing(*values: float) -> bool:
    """
    Check whether any of the given floats is NaN.

    :param values: floats to check
    :return: True if at least one value is NaN
    """
    return any(math.isnan(v) for v in values)


def lookup(
    function: str,
    mapping: Mapping[str, Any],
    key: str
) -> Any:
    """
    Fetch a required key from a mapping, ignoring key case.

    :param function: calling function name, used in the error message
    :param mapping: mapping to search
    :param key: key to find
    :return: the stored value
    :raises ValueError: if the key is absent or its value is None
    """
    for candidate, value in mapping.items():
        if isinstance(candidate, str) and candidate.lower() == key.lower():
            return require(function, key, value)
    raise ValueError(f"{function}: no defined {key} value")


# =============================================================================
# ARRAY VALIDATION AND RESHAPING
# =============================================================================

def to_1d_array(
    values: Union[np.ndarray, pd.Series, xr.DataArray, list],
    name: str = "values"
) -> Tuple[np.ndarray, Optional[pd.Index]]:
    """
    Convert a single-location time series to a 1-D float array.

    :param values: numpy array, list, pandas Series, or 1-D DataArray
    :param name: name used in error messages
    :return: tuple of (float64 array, time index or None)
    :raises ValueError: if the input is not one-dimensional
    """
    index = None
    if isinstance(values, xr.DataArray):
        if values.ndim != 1:
            raise ValueError(
                f"Invalid {name} dimensions: {values.dims}. "
                f"Expected a single 1-D series."
            )
        if 'time' in values.dims:
            index = pd.to_datetime(values['time'].values)
        values = values.values
    elif isinstance(values, pd.Series):
        index = values.index
        values = values.values

    array = np.asarray(values, dtype=np.float64)
    if array.ndim != 1:
        raise ValueError(
            f"Invalid {name} shape: {array.shape}. Expected 1-D array."
        )
    return array, index


def reshape_to_2d(
    values: np.ndarray,
    periods_per_year: int,
    start_period: int = 0
) -> np.ndarray:
    """
    Reshape a 1-D array of values to 2-D array with shape (years, periods).

    The record is padded with NaN at the front when it does not begin on
    the first period of a year, and at the end to complete the final year.

    :param values: 1-D numpy array of values
    :param periods_per_year: 12 for monthly, 52 for weekly, 73 for pentads
    :param start_period: period-of-year index of the first value (0-based)
    :return: 2-D numpy array with shape (years, periods_per_year)
    :raises ValueError: if input array has invalid shape
    """
    if values.ndim != 1:
        raise ValueError(
            f"Invalid array shape: {values.shape}. Expected 1-D array."
        )
    if not 0 <= start_period < periods_per_year:
        raise ValueError(
            f"Start period must be in [0, {periods_per_year}), got: {start_period}"
        )

    total_values = values.size
    if start_period:
        values = np.concatenate((np.full(start_period, np.nan), values))

    remainder = values.size % periods_per_year
    if remainder != 0:
        padding_size = periods_per_year - remainder
        values = np.pad(
            values,
            (0, padding_size),
            mode='constant',
            constant_values=np.nan
        )
        _logger.debug(
            f"Padded array with {start_period + padding_size} NaN values to "
            f"complete years ({total_values} -> {values.size})"
        )

    num_years = values.size // periods_per_year
    return values.reshape(num_years, periods_per_year)


def period_of_year(
    length: int,
    periods_per_year: int,
    start_period: int = 0
) -> np.ndarray:
    """
    Compute the period-of-year index of every value in a record.

    :param length: number of values in the record
    :param periods_per_year: number of periods in a year
    :param start_period: period-of-year index of the first value (0-based)
    :return: integer array of period-of-year indices
    """
    return (np.arange(length) + start_period) % periods_per_year


def is_data_valid(data: np.ndarray) -> bool:
    """
    Check if data array contains at least one non-NaN value.

    :param data: numpy array
    :return: True if array has at least one valid (non-NaN) value
    """
    return bool(data.size) and not np.all(np.isnan(data))
