"""
Psychrometric calculation module.

Converts temperature / relative humidity pairs into absolute humidity in
grains per pound of dry air (GPP) and evaluates moisture readings against the
dry standard. Every function here is pure and cheap enough to run on each
keystroke of a reading form.

Invalid input never raises: it produces a signal value (None, False or "--")
that callers treat as "not yet computable".
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from numbers import Real
from typing import Optional

# Saturation vapor pressure fit (IAPWS-derived, Rankine / psia).
# Digit errors here cause GPP drift; keep exactly as published.
C8 = -10440.397
C9 = -11.29465
C10 = -0.027022355
C11 = 0.00001289036
C12 = -0.0000000024780681
C13 = 6.5459673

RANKINE_OFFSET = 459.67
STANDARD_PRESSURE_PSIA = 14.696
# Ratio of molecular weights of water vapor and dry air
MOLECULAR_WEIGHT_RATIO = 0.62198
GRAINS_PER_POUND = 7000

# Percentage points above baseline still counted as dry
DRY_STANDARD_TOLERANCE = 4

UNAVAILABLE = '--'
ARROW_DOWN = '↓'
ARROW_UP = '↑'


def _is_finite_number(value) -> bool:
    """True for real, finite numbers. Booleans are not readings."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value)


def _round_tenth(value: float) -> float:
    """Round half up at the tenths digit."""
    return math.floor(value * 10 + 0.5) / 10


def _fixed_tenth(value: float) -> str:
    """One-decimal display string; exact ties of the stored double round up."""
    return str(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def calculate_gpp(
    temp_f: Optional[float],
    rh_percent: Optional[float],
    pressure_psia: float = STANDARD_PRESSURE_PSIA
) -> Optional[float]:
    """
    Calculate grains of moisture per pound of dry air.

    Formula:
        temp_r = temp_f + 459.67
        ln(pws) = C8/temp_r + C9 + C10*temp_r + C11*temp_r^2 + C12*temp_r^3 + C13*ln(temp_r)
        pw = (rh_percent / 100) * pws
        w = 0.62198 * pw / (pressure_psia - pw)
        gpp = w * 7000, rounded to one decimal

    Args:
        temp_f: Dry-bulb temperature in degrees Fahrenheit (may be negative)
        rh_percent: Relative humidity, 0 to 100
        pressure_psia: Atmospheric pressure, sea level by default

    Returns:
        GPP rounded to one decimal, or None when either input is missing,
        not a finite number, or the humidity is outside 0-100.
    """
    if not _is_finite_number(temp_f) or not _is_finite_number(rh_percent):
        return None
    if rh_percent < 0 or rh_percent > 100:
        return None

    temp_r = temp_f + RANKINE_OFFSET
    # Below absolute zero the fit has no meaning
    if temp_r <= 0:
        return None

    ln_pws = (
        C8 / temp_r
        + C9
        + C10 * temp_r
        + C11 * temp_r * temp_r
        + C12 * temp_r * temp_r * temp_r
        + C13 * math.log(temp_r)
    )
    pws = math.exp(ln_pws)
    pw = (rh_percent / 100) * pws
    if pressure_psia == pw:
        return None
    w = MOLECULAR_WEIGHT_RATIO * pw / (pressure_psia - pw)

    return _round_tenth(w * GRAINS_PER_POUND)


def meets_dry_standard(reading_value: Optional[float], baseline_value: Optional[float]) -> bool:
    """
    Check a moisture content reading against the baseline for its material.

    A material is dry once its reading is no more than DRY_STANDARD_TOLERANCE
    points above the baseline. Missing values are never dry.
    """
    if reading_value is None or baseline_value is None:
        return False
    return reading_value <= baseline_value + DRY_STANDARD_TOLERANCE


def format_gpp(gpp: Optional[float]) -> str:
    """Format a GPP value with one decimal, or '--' when unavailable."""
    if gpp is None:
        return UNAVAILABLE
    return _fixed_tenth(gpp)


def format_delta(current: Optional[float], prior: Optional[float]) -> str:
    """
    Format the change between two readings with a direction arrow.

    A decrease and an unchanged value both render with the down arrow, so
    equal readings show as '↓0.0'.
    """
    if current is None or prior is None:
        return UNAVAILABLE

    diff = current - prior
    if diff < 0:
        return f"{ARROW_DOWN}{_fixed_tenth(abs(diff))}"
    if diff > 0:
        return f"{ARROW_UP}{_fixed_tenth(diff)}"
    return f"{ARROW_DOWN}0.0"
