"""
Shared fixtures for the Palmer drought index tests.

Synthetic records stand in for station data: gamma-distributed
precipitation and a seasonal PET cycle, both in inches.
"""

import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


AWC = 6.0


@pytest.fixture
def awc() -> float:
    return AWC


@pytest.fixture
def monthly_record():
    """30 years of monthly precipitation and PET starting January 1981."""
    rng = np.random.default_rng(42)
    n = 30 * 12
    months = np.arange(n) % 12
    precip = rng.gamma(shape=2.0, scale=1.5, size=n)
    pet = np.clip(3.0 + 2.5 * np.sin(2 * np.pi * (months - 3) / 12), 0.1, None)
    time = pd.date_range('1981-01-01', periods=n, freq='MS')
    return pd.Series(precip, index=time), pd.Series(pet, index=time)


@pytest.fixture
def weekly_record():
    """10 years of 52-week precipitation and PET."""
    rng = np.random.default_rng(7)
    n = 10 * 52
    weeks = np.arange(n) % 52
    precip = rng.gamma(shape=0.8, scale=1.0, size=n)
    pet = np.clip(0.7 + 0.6 * np.sin(2 * np.pi * (weeks - 13) / 52), 0.05, None)
    return precip, pet
