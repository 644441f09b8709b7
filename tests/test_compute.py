"""Tests for the single-location series computation."""

import logging

import numpy as np
import pandas as pd
import pytest
import xarray as xr

from config import PALMER_NAMES, WATER_BALANCE_NAMES, PeriodType
from compute import (
    calculate_climatology,
    calculate_cmi_series,
    calculate_pmdi,
    calculate_water_balance_series,
    pmdi_to_dataset,
)
from palmer import SpellState, advance, select_pmdi


class TestWaterBalanceSeries:
    """Tests for running the water balance through a record."""

    def test_conservation(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        wb = calculate_water_balance_series(precip, pet, awc)

        np.testing.assert_allclose(
            wb['precip'], wb['et'] + wb['r'] + wb['ro'] - wb['l'], atol=1e-10
        )
        storage = wb['sm_lower'] + wb['sm_upper']
        previous = np.concatenate(([awc], storage[:-1]))
        np.testing.assert_allclose(storage - previous, wb['r'] - wb['l'], atol=1e-10)

    def test_soil_stays_within_capacity(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        wb = calculate_water_balance_series(precip, pet, awc)
        assert np.all((wb['sm_upper'] >= 0) & (wb['sm_upper'] <= 1.0))
        assert np.all((wb['sm_lower'] >= 0) & (wb['sm_lower'] <= awc - 1.0))

    def test_initial_soil_moisture(self) -> None:
        wb = calculate_water_balance_series([0.0], [1.0], 6.0, sm_lower=2.0, sm_upper=0.0)
        assert wb['l'][0] == pytest.approx(2.0 * 1.0 / 6.0)

    def test_non_numeric_initial_soil_moisture(self) -> None:
        wb = calculate_water_balance_series([1.0, 2.0], [1.0, 1.0], 6.0, sm_lower="n/a")
        assert np.isnan(wb['et']).all()
        assert np.isnan(wb['sm_upper']).all()

    def test_missing_period_carries_state(self, awc) -> None:
        precip = np.array([1.0, np.nan, 1.0])
        pet = np.array([3.0, 3.0, 3.0])
        wb = calculate_water_balance_series(precip, pet, awc)
        assert np.isnan(wb['et'][1])
        reference = calculate_water_balance_series([1.0, 1.0], [3.0, 3.0], awc)
        assert wb['sm_lower'][2] == pytest.approx(reference['sm_lower'][1])

    def test_mismatched_lengths_raise(self) -> None:
        with pytest.raises(ValueError, match="mismatched"):
            calculate_water_balance_series([1.0, 2.0], [1.0], 6.0)


class TestClimatology:
    """Tests for deriving coefficients from a record."""

    def test_monthly_coefficients(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        coeffs = calculate_climatology(precip, pet, awc, 'monthly')

        assert coeffs.period_type is PeriodType.month
        for name, values in coeffs.to_dict().items():
            assert values.shape == (12,), name
            assert np.all(np.isfinite(values)), name
        for name in ('alpha', 'beta', 'gamma', 'delta'):
            values = getattr(coeffs, name)
            assert np.all((values >= 0) & (values <= 1)), name

    def test_calibration_period(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        full = calculate_climatology(precip, pet, awc, 'month')
        recent = calculate_climatology(
            precip, pet, awc, 'month', data_start_year=1981,
            calibration_start_year=1991, calibration_end_year=2000,
        )
        assert not np.allclose(full.k, recent.k)

    def test_calibration_outside_record_raises(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        with pytest.raises(ValueError, match="does not overlap"):
            calculate_climatology(
                precip, pet, awc, 'month', data_start_year=1900,
                calibration_start_year=1950, calibration_end_year=1960,
            )


class TestPmdiSeries:
    """Tests for the PMDI recurrence through a record."""

    def test_columns_and_index(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        frame = calculate_pmdi(precip, pet, awc, 'monthly')

        assert list(frame.columns) == list(WATER_BALANCE_NAMES + PALMER_NAMES)
        assert len(frame) == len(precip)
        assert isinstance(frame.index, pd.DatetimeIndex)
        assert frame.index.name == 'time'

    def test_accounting_invariants(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        frame = calculate_pmdi(precip, pet, awc, 'monthly')

        assert frame['pmdi'].notna().all()
        assert (frame['x1'] >= 0).all()
        assert (frame['x2'] <= 0).all()
        assert frame['prob_spell_end'].between(0, 1).all()

    def test_matches_scalar_accounting(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        frame = calculate_pmdi(precip, pet, awc, 'monthly')

        state = SpellState.initial()
        for row in frame.itertuples():
            result = advance('month', row.z_index, state)
            assert result.x3 == pytest.approx(row.x3)
            assert result.prob_spell_end == pytest.approx(row.prob_spell_end)
            assert select_pmdi(
                result.x1, result.x2, result.x3, result.prob_spell_end
            ) == pytest.approx(row.pmdi)
            state = result.state

    def test_missing_period(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        precip = precip.copy()
        precip.iloc[100] = np.nan
        frame = calculate_pmdi(precip, pet, awc, 'monthly')

        assert frame.iloc[100].isna().all()
        assert frame.iloc[101].notna().all()
        assert frame['pmdi'].isna().sum() == 1

    def test_period_of_year_without_data(self, monthly_record, awc, caplog) -> None:
        precip, pet = monthly_record
        precip = precip.copy()
        precip.iloc[::12] = np.nan
        with caplog.at_level(logging.WARNING):
            coeffs = calculate_climatology(precip, pet, awc, 'monthly')
            frame = calculate_pmdi(precip, pet, awc, 'monthly', coefficients=coeffs)

        assert np.isnan(coeffs.k[0])
        assert np.all(np.isfinite(coeffs.k[1:]))
        assert "1 of 12 periods have no climatology" in caplog.text

        january = frame.index.month == 1
        assert frame.loc[january, 'pmdi'].isna().all()
        assert frame.loc[~january, 'pmdi'].notna().all()
        assert (frame.loc[~january, 'x1'] >= 0).all()

    def test_precomputed_coefficients(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        coeffs = calculate_climatology(precip, pet, awc, 'monthly')
        frame = calculate_pmdi(precip, pet, awc, 'monthly', coefficients=coeffs)
        derived = calculate_pmdi(precip, pet, awc, 'monthly')
        pd.testing.assert_frame_equal(frame, derived)

    def test_coefficients_for_other_period_raise(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        coeffs = calculate_climatology(precip, pet, awc, 'monthly')
        with pytest.raises(ValueError, match="coefficients"):
            calculate_pmdi(precip.values[:520], pet.values[:520], awc, 'weekly',
                           coefficients=coeffs)

    def test_initial_state_used(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        dry_start = calculate_pmdi(
            precip, pet, awc, 'monthly', initial_state=SpellState(0.0, -4.0, -4.0, 0.0)
        )
        fresh = calculate_pmdi(precip, pet, awc, 'monthly')
        assert dry_start['x3'].iloc[0] != fresh['x3'].iloc[0]

    def test_missing_initial_state_raises(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        with pytest.raises(ValueError, match="initial state"):
            calculate_pmdi(
                precip, pet, awc, 'monthly',
                initial_state=SpellState(0.0, 0.0, float('nan'), 0.0),
            )

    def test_dataarray_input(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        precip_da = xr.DataArray(precip.values, coords={'time': precip.index}, dims='time')
        pet_da = xr.DataArray(pet.values, coords={'time': pet.index}, dims='time')
        frame = calculate_pmdi(precip_da, pet_da, awc, 'monthly')
        assert frame.index.equals(pd.DatetimeIndex(precip.index, name='time'))

    def test_pentad_logs_placeholder_warning(self, awc, caplog) -> None:
        rng = np.random.default_rng(1)
        precip = rng.gamma(0.6, 0.4, size=73 * 5)
        pet = np.full(73 * 5, 0.3)
        with caplog.at_level(logging.WARNING):
            frame = calculate_pmdi(precip, pet, awc, 'pentad')
        assert 'unverified' in caplog.text
        assert len(frame) == 73 * 5


class TestCmiSeries:
    """Tests for the weekly Crop Moisture Index series."""

    def test_weekly_cmi(self, weekly_record, awc) -> None:
        precip, pet = weekly_record
        coeffs = calculate_climatology(precip, pet, awc, 'weekly')
        frame = calculate_pmdi(precip, pet, awc, 'weekly', coefficients=coeffs)
        cmi = calculate_cmi_series(frame, pet, awc, coeffs, season_start_periods=[12])

        assert list(cmi.columns) == ['etai', 'gwai', 'cmi']
        assert len(cmi) == len(frame)
        assert cmi['cmi'].notna().all()
        np.testing.assert_allclose(cmi['cmi'], cmi['etai'] + cmi['gwai'])

    def test_requires_weekly(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        coeffs = calculate_climatology(precip, pet, awc, 'monthly')
        frame = calculate_pmdi(precip, pet, awc, 'monthly', coefficients=coeffs)
        with pytest.raises(ValueError, match="weekly"):
            calculate_cmi_series(frame, pet, awc, coeffs)


class TestDataset:
    """Tests for conversion to an xarray Dataset."""

    def test_attributes(self, monthly_record, awc) -> None:
        precip, pet = monthly_record
        frame = calculate_pmdi(precip, pet, awc, 'monthly')
        ds = pmdi_to_dataset(frame, 'monthly', awc=awc)

        assert 'time' in ds.dims
        assert ds['pmdi'].attrs['long_name'] == 'Palmer Modified Drought Index'
        assert ds['et'].attrs['units'] == 'inches'
        assert ds.attrs['awc_inches'] == awc
