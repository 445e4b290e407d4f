"""
Tests for the psychrometric calculations (GPP, dry standard, display formatting).
Pure functions - no database or Flask needed.
"""
import math

import pytest
from drylog.drying.psychrometrics import (
    calculate_gpp,
    meets_dry_standard,
    format_gpp,
    format_delta,
    STANDARD_PRESSURE_PSIA,
)


# ==============================================================================
# GPP CALCULATION TESTS
# ==============================================================================

class TestCalculateGpp:
    """Tests for calculate_gpp."""

    def test_known_value_at_sea_level(self):
        """70°F at 50% RH is 54.5 grains per pound."""
        assert calculate_gpp(70, 50) == 54.5

    def test_accepts_floats(self):
        assert calculate_gpp(70.0, 50.0) == 54.5

    def test_result_has_one_decimal(self):
        gpp = calculate_gpp(72.3, 41.7)
        assert gpp == round(gpp, 1)

    def test_zero_humidity_is_zero_gpp(self):
        assert calculate_gpp(70, 0) == 0.0

    def test_full_saturation_is_allowed(self):
        assert calculate_gpp(70, 100) is not None

    def test_higher_humidity_means_more_grains(self):
        assert calculate_gpp(70, 60) > calculate_gpp(70, 50)

    def test_warmer_air_holds_more_grains(self):
        assert calculate_gpp(80, 50) > calculate_gpp(70, 50)

    def test_negative_temperature_is_valid(self):
        gpp = calculate_gpp(-10, 50)
        assert gpp is not None
        assert gpp >= 0

    def test_lower_pressure_raises_gpp(self):
        """At altitude the same reading carries more grains."""
        assert calculate_gpp(70, 50, 12.0) > calculate_gpp(70, 50, STANDARD_PRESSURE_PSIA)

    @pytest.mark.parametrize("rh", [-0.1, 100.1, 150])
    def test_humidity_out_of_range_returns_none(self, rh):
        assert calculate_gpp(70, rh) is None

    @pytest.mark.parametrize("temp_f, rh", [
        (None, 50),
        (70, None),
        (math.nan, 50),
        (70, math.nan),
        (math.inf, 50),
        (-math.inf, 50),
        ("70", 50),
        (True, 50),
    ])
    def test_unusable_input_returns_none(self, temp_f, rh):
        """Missing, non-numeric or non-finite input never raises."""
        assert calculate_gpp(temp_f, rh) is None

    def test_below_absolute_zero_returns_none(self):
        assert calculate_gpp(-500, 50) is None


# ==============================================================================
# DRY STANDARD TESTS
# ==============================================================================

class TestMeetsDryStandard:
    """Tests for meets_dry_standard."""

    def test_within_tolerance_is_dry(self):
        assert meets_dry_standard(16, 12) is True

    def test_at_baseline_is_dry(self):
        assert meets_dry_standard(12, 12) is True

    def test_below_baseline_is_dry(self):
        assert meets_dry_standard(5, 12) is True

    def test_over_tolerance_is_wet(self):
        assert meets_dry_standard(17, 12) is False

    def test_just_over_tolerance_is_wet(self):
        assert meets_dry_standard(16.1, 12) is False

    def test_missing_reading_is_never_dry(self):
        assert meets_dry_standard(None, 12) is False

    def test_missing_baseline_is_never_dry(self):
        assert meets_dry_standard(10, None) is False


# ==============================================================================
# FORMATTING TESTS
# ==============================================================================

class TestFormatGpp:

    def test_none_renders_placeholder(self):
        assert format_gpp(None) == "--"

    def test_rounds_to_one_decimal(self):
        assert format_gpp(54.53) == "54.5"

    def test_whole_number_keeps_decimal(self):
        assert format_gpp(54) == "54.0"

    def test_formats_calculated_value(self):
        assert format_gpp(calculate_gpp(70, 50)) == "54.5"

    @pytest.mark.parametrize("gpp, expected", [
        (0.25, "0.3"),
        (1.25, "1.3"),
        (54.75, "54.8"),
    ])
    def test_exact_ties_round_up(self, gpp, expected):
        assert format_gpp(gpp) == expected

    def test_near_tie_follows_stored_value(self):
        """0.15 is stored just under the tie, so it rounds down."""
        assert format_gpp(0.15) == "0.1"


class TestFormatDelta:

    def test_decrease_uses_down_arrow(self):
        assert format_delta(12.0, 14.0) == "↓2.0"

    def test_increase_uses_up_arrow(self):
        assert format_delta(14.0, 12.0) == "↑2.0"

    def test_no_change_renders_as_down_zero(self):
        assert format_delta(12.0, 12.0) == "↓0.0"

    def test_magnitude_has_one_decimal(self):
        assert format_delta(10, 12.5) == "↓2.5"

    def test_exact_tie_rounds_up(self):
        assert format_delta(10.75, 10.5) == "↑0.3"
        assert format_delta(10.5, 10.75) == "↓0.3"

    def test_missing_prior_renders_placeholder(self):
        assert format_delta(12.0, None) == "--"

    def test_missing_current_renders_placeholder(self):
        assert format_delta(None, 12.0) == "--"
