"""Tests for the Crop Moisture Index."""

import math

import pytest

from cmi import CropMoistureResult, _gwai_decay, get_cmi


def weekly(**overrides) -> CropMoistureResult:
    args = dict(
        pct_field_cap=0.5,
        prev_etai=1.0,
        prev_gwai=2.0,
        et=2.0,
        pet=1.5,
        alpha=0.64,
        recharge=0.4,
        runoff=0.2,
    )
    args.update(overrides)
    return get_cmi(**args)


class TestCmi:
    """Tests for the weekly CMI calculation."""

    def test_fresh_season(self) -> None:
        result = get_cmi(1.0, 0.0, 0.0, 1.0, 1.0, 1.0, 0.0, 0.4)
        assert result.etai == 0.0
        assert result.gwai == pytest.approx(0.4)
        assert result.cmi == pytest.approx(0.4)

    def test_components(self) -> None:
        result = weekly()
        eta = 1.8 * (2.0 - 0.64 * 1.5) / 0.8
        assert result.etai == pytest.approx(0.5 * (0.67 * 1.0 + eta))
        # GWAI of 2 drains by half
        assert result.gwai == pytest.approx(2.0 - 1.0 + 0.2 + 0.5 * 0.4)
        assert result.cmi == pytest.approx(result.etai + result.gwai)

    def test_negative_etai_not_scaled(self) -> None:
        result = weekly(et=0.5, prev_etai=-1.0)
        eta = 1.8 * (0.5 - 0.64 * 1.5) / 0.8
        assert result.etai == pytest.approx(-0.67 + eta)

    def test_zero_alpha_has_no_et_anomaly(self) -> None:
        result = weekly(alpha=0.0, prev_etai=0.0)
        assert result.etai == 0.0

    def test_field_capacity_clipped(self) -> None:
        assert weekly(pct_field_cap=1.7) == weekly(pct_field_cap=1.0)
        assert weekly(pct_field_cap=-0.2) == weekly(pct_field_cap=0.0)

    def test_negative_recharge_and_runoff_clamped(self) -> None:
        assert weekly(recharge=-1.0, runoff=-1.0) == weekly(recharge=0.0, runoff=0.0)

    @pytest.mark.parametrize(
        "prev_gwai, decay",
        [(3.0, 1.5), (0.8, 0.5), (0.3, 0.3), (-0.2, 0.0)],
    )
    def test_gwai_decay(self, prev_gwai, decay) -> None:
        assert _gwai_decay(prev_gwai) == decay

    def test_missing_gives_all_nan(self) -> None:
        result = weekly(et=float('nan'))
        assert all(math.isnan(v) for v in (result.cmi, result.etai, result.gwai))

    def test_none_raises(self) -> None:
        with pytest.raises(ValueError, match="runoff"):
            weekly(runoff=None)
