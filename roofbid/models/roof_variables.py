"""
Roof Variable Models
Named roof-geometry and feature-count variables consumed by quantity formulas
Variables: SQ, SF, P, EAVE, R, VAL, HIP, RAKE + per-slope variants (F1SQ, F2EAVE, ...)
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from roofbid.utils import round_half_up


# Standard slope-area factors (rise per 12 run)
PITCH_MULTIPLIERS: Dict[int, float] = {
    0: 1.00,    # Flat
    1: 1.003,
    2: 1.014,
    3: 1.031,
    4: 1.054,
    5: 1.083,
    6: 1.118,
    7: 1.158,
    8: 1.202,
    9: 1.250,
    10: 1.302,
    11: 1.357,
    12: 1.414,
    13: 1.474,
    14: 1.537,
    15: 1.601,
    16: 1.667,
    17: 1.734,
    18: 1.803,
}

MAX_TABLE_PITCH = 18

ROOF_FIELDS = [
    "SQ", "SF", "P", "EAVE", "R", "VAL", "HIP", "RAKE",
    "SKYLIGHT_COUNT", "CHIMNEY_COUNT", "PIPE_COUNT", "VENT_COUNT",
    "GUTTER_LF", "DS_COUNT",
]

SLOPE_FIELDS = ["SQ", "SF", "PITCH", "EAVE", "RIDGE", "VALLEY", "HIP", "RAKE"]

# Fields that are areas or lengths and therefore can never be negative
MEASURED_FIELDS = ["SQ", "SF", "P", "EAVE", "R", "VAL", "HIP", "RAKE", "GUTTER_LF"]

PITCH_WORDS: Dict[str, int] = {
    "flat": 1,
    "low": 3,
    "medium": 5,
    "steep": 8,
    "very_steep": 12,
    "unknown": 5,
}


def pitch_multiplier(pitch: float) -> float:
    """
    Slope-area factor for a pitch given as rise per 12
    Non-integer pitches are linearly interpolated between table rows
    """
    if pitch <= 0:
        return 1.00
    if pitch >= MAX_TABLE_PITCH:
        return PITCH_MULTIPLIERS[MAX_TABLE_PITCH]

    lower = math.floor(pitch)
    upper = math.ceil(pitch)
    if lower == upper:
        return PITCH_MULTIPLIERS[int(lower)]

    lower_mult = PITCH_MULTIPLIERS[int(lower)]
    upper_mult = PITCH_MULTIPLIERS[int(upper)]
    return lower_mult + (upper_mult - lower_mult) * (pitch - lower)


def pitch_category(pitch: float) -> str:
    """Bucket a pitch into flat / low / standard / steep / very_steep"""
    if pitch <= 0:
        return "flat"
    if pitch <= 3:
        return "low"
    if pitch <= 6:
        return "standard"
    if pitch <= 9:
        return "steep"
    return "very_steep"


def sqft_to_squares(sqft: float) -> float:
    return sqft / 100


def squares_to_sqft(squares: float) -> float:
    return squares * 100


def sqft_with_pitch(length_ft: float, width_ft: float, pitch: float) -> float:
    """Roof surface area of a rectangular footprint at the given pitch"""
    return length_ft * width_ft * pitch_multiplier(pitch)


def _number(value) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


@dataclass
class SlopeVariables:
    """Measurements for a single roof facet"""
    SQ: float = 0.0
    SF: float = 0.0
    PITCH: float = 0.0
    EAVE: float = 0.0
    RIDGE: float = 0.0
    VALLEY: float = 0.0
    HIP: float = 0.0
    RAKE: float = 0.0

    def to_dict(self) -> Dict:
        return {name: getattr(self, name) for name in SLOPE_FIELDS}

    @classmethod
    def from_dict(cls, data: Dict) -> 'SlopeVariables':
        return cls(**{name: _number(data.get(name)) for name in SLOPE_FIELDS})


@dataclass
class RoofVariables:
    """Canonical measurement vector for a roof"""
    SQ: float = 0.0
    SF: float = 0.0
    P: float = 0.0
    EAVE: float = 0.0
    R: float = 0.0
    VAL: float = 0.0
    HIP: float = 0.0
    RAKE: float = 0.0
    SKYLIGHT_COUNT: float = 0
    CHIMNEY_COUNT: float = 0
    PIPE_COUNT: float = 0
    VENT_COUNT: float = 0
    GUTTER_LF: float = 0.0
    DS_COUNT: float = 0
    slopes: Dict[str, SlopeVariables] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        data = {name: getattr(self, name) for name in ROOF_FIELDS}
        data["slopes"] = {key: slope.to_dict() for key, slope in self.slopes.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'RoofVariables':
        """Build variables from a JSON object; missing fields become 0"""
        slopes = {
            str(key).upper(): SlopeVariables.from_dict(value or {})
            for key, value in (data.get("slopes") or {}).items()
        }
        return cls(slopes=slopes, **{name: _number(data.get(name)) for name in ROOF_FIELDS})

    def as_formula_values(self, slope_id: Optional[str] = None) -> Dict[str, float]:
        """
        Flatten into the name -> value map used by the formula evaluator
        Per-slope values appear as F1SQ, F1EAVE, ...; when scoped to a slope,
        that slope's bare field names (SQ, PITCH, RIDGE, ...) take precedence
        """
        values = {name: float(getattr(self, name)) for name in ROOF_FIELDS}
        for key, slope in self.slopes.items():
            for name in SLOPE_FIELDS:
                values[f"{key}{name}"] = float(getattr(slope, name))

        if slope_id is not None:
            slope = self.slopes.get(slope_id.upper())
            for name in SLOPE_FIELDS:
                values[name] = float(getattr(slope, name)) if slope else 0.0
        return values


def variables_from_dimensions(length_ft: float, width_ft: float, pitch: float,
                              skylights: int = 0, chimneys: int = 0,
                              pipe_boots: int = 2, vents: int = 0,
                              gutter_lf: Optional[float] = None,
                              downspouts: int = 2) -> RoofVariables:
    """
    Approximate variables for a simple gable roof over a rectangular footprint
    Two eaves along the length, one ridge, two rakes across the width
    """
    actual_sqft = sqft_with_pitch(length_ft, width_ft, pitch)
    squares = sqft_to_squares(actual_sqft)

    perimeter = 2 * (length_ft + width_ft)
    eave = length_ft * 2
    ridge = length_ft
    rake = width_ft * 2
    gutters = eave if gutter_lf is None else gutter_lf

    half = SlopeVariables(
        SQ=round_half_up(squares / 2, 2),
        SF=round_half_up(actual_sqft / 2),
        PITCH=pitch,
        EAVE=round_half_up(eave / 2),
        RIDGE=round_half_up(ridge / 2),
        VALLEY=0,
        HIP=0,
        RAKE=round_half_up(rake / 2),
    )

    return RoofVariables(
        SQ=round_half_up(squares, 2),
        SF=round_half_up(actual_sqft),
        P=round_half_up(perimeter),
        EAVE=round_half_up(eave),
        R=round_half_up(ridge),
        VAL=0,
        HIP=0,
        RAKE=round_half_up(rake),
        SKYLIGHT_COUNT=skylights,
        CHIMNEY_COUNT=chimneys,
        PIPE_COUNT=pipe_boots,
        VENT_COUNT=vents,
        GUTTER_LF=round_half_up(gutters),
        DS_COUNT=downspouts,
        slopes={"F1": half, "F2": SlopeVariables(**half.to_dict())},
    )


def variables_from_intake(intake: Dict) -> RoofVariables:
    """
    Rough variables from funnel intake answers
    Assumes a square footprint sized from the reported roof area
    """
    base_sqft = intake.get("roof_size_sqft") or 2000
    pitch = PITCH_WORDS.get(intake.get("roof_pitch") or "medium", 5)
    stories = intake.get("stories") or 1
    side = math.sqrt(base_sqft)

    return variables_from_dimensions(
        length_ft=side,
        width_ft=side,
        pitch=pitch,
        skylights=1 if intake.get("has_skylights") else 0,
        chimneys=1 if intake.get("has_chimneys") else 0,
        pipe_boots=2 + stories,
        vents=math.ceil(base_sqft / 500),
        downspouts=math.ceil(side / 20),
    )


def validate_variables(variables: RoofVariables) -> Tuple[List[str], List[str]]:
    """
    Check variables for impossible and implausible values
    Returns (errors, warnings); slope totals are not reconciled here
    """
    errors = []
    warnings = []

    for name in MEASURED_FIELDS:
        if getattr(variables, name) < 0:
            errors.append(f"{name} cannot be negative")
    for key, slope in variables.slopes.items():
        for name in SLOPE_FIELDS:
            if getattr(slope, name) < 0:
                errors.append(f"{key}{name} cannot be negative")

    if variables.SQ > 200:
        warnings.append("Very large roof (>200 squares)")
    if variables.SQ < 5:
        warnings.append("Very small roof (<5 squares)")

    if abs(variables.SF - squares_to_sqft(variables.SQ)) > 10:
        warnings.append("SF and SQ values are inconsistent")

    if variables.SF > 0 and variables.P > 0:
        ratio = variables.SF / variables.P
        if ratio < 5:
            warnings.append("Unusual shape - very long/narrow")
        if ratio > 50:
            warnings.append("Perimeter seems too small for area")

    return errors, warnings


def format_variables_for_display(variables: RoofVariables) -> Dict[str, str]:
    return {
        "Total Squares": f"{variables.SQ:.2f} SQ",
        "Square Feet": f"{variables.SF:,.0f} SF",
        "Perimeter": f"{variables.P:.0f} LF",
        "Eave Length": f"{variables.EAVE:.0f} LF",
        "Ridge Length": f"{variables.R:.0f} LF",
        "Valley Length": f"{variables.VAL:.0f} LF",
        "Hip Length": f"{variables.HIP:.0f} LF",
        "Rake Length": f"{variables.RAKE:.0f} LF",
        "Skylights": f"{variables.SKYLIGHT_COUNT:.0f}",
        "Chimneys": f"{variables.CHIMNEY_COUNT:.0f}",
        "Pipe Boots": f"{variables.PIPE_COUNT:.0f}",
        "Vents": f"{variables.VENT_COUNT:.0f}",
        "Gutter Length": f"{variables.GUTTER_LF:.0f} LF",
        "Downspouts": f"{variables.DS_COUNT:.0f}",
    }
