"""
Photo Measurement Merger
Turns raw per-photo roof analyses into measurement results and combines several
of them into one consolidated result using confidence weighting
"""

import logging
import math
from typing import Callable, Dict, List, Optional

from roofbid.errors import ValidationError
from roofbid.models.photo_measurement import DetectedFeature, DetectedPlane, PhotoMeasurementResult
from roofbid.models.roof_variables import RoofVariables, SlopeVariables, pitch_category
from roofbid.utils import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_PITCH = 5
DEFAULT_CONFIDENCE = 0.5
DEFAULT_LENGTH_FT = 50
DEFAULT_WIDTH_FT = 30
DEFAULT_PIPE_BOOTS = 2
SQUARES_PER_VENT = 3
EAVE_LF_PER_DOWNSPOUT = 40

CONFIDENCE_BOOST = 1.1


def suggest_variables(total_sqft: float, length_ft: float, width_ft: float, pitch: float,
                      roof_style: str, features: List[DetectedFeature],
                      planes: List[DetectedPlane]) -> RoofVariables:
    """
    Derive roof variables from a footprint, a roof style and detections
    Detected ridge/valley/hip lengths replace the style-based estimates
    """
    by_type = {}
    for feature in features:
        by_type.setdefault(feature.type, feature)

    perimeter = 2 * (length_ft + width_ft)
    squares = total_sqft / 100

    # Linear footage by roof style (gable unless told otherwise)
    eave = perimeter
    ridge = length_ft
    rake = width_ft * 2
    valley = 0.0
    hip = 0.0

    if roof_style == "hip":
        ridge = length_ft * 0.6
        hip = math.sqrt(width_ft * width_ft / 4 + (pitch * width_ft / 24) ** 2) * 4
        rake = 0.0
    elif roof_style == "flat":
        ridge = 0.0
        rake = 0.0

    ridge_feature = by_type.get("ridge")
    if ridge_feature and ridge_feature.length_ft:
        ridge = ridge_feature.length_ft
    valley_feature = by_type.get("valley")
    if valley_feature and valley_feature.length_ft:
        valley = valley_feature.length_ft * (valley_feature.count or 1)
    hip_feature = by_type.get("hip")
    if hip_feature and hip_feature.length_ft:
        hip = hip_feature.length_ft * (hip_feature.count or 1)

    def count(feature_type: str, default: float = 0) -> float:
        feature = by_type.get(feature_type)
        return feature.count if feature and feature.count else default

    gutter_feature = by_type.get("gutter")
    gutter_lf = gutter_feature.length_ft if gutter_feature and gutter_feature.length_ft else eave

    slopes = {}
    for index, plane in enumerate(planes):
        slopes[(plane.id or f"F{index + 1}").upper()] = SlopeVariables(
            SQ=plane.estimated_sqft / 100,
            SF=plane.estimated_sqft,
            PITCH=plane.estimated_pitch,
        )

    return RoofVariables(
        SQ=squares,
        SF=total_sqft,
        P=perimeter,
        EAVE=eave,
        R=ridge,
        VAL=valley,
        HIP=hip,
        RAKE=rake,
        SKYLIGHT_COUNT=count("skylight"),
        CHIMNEY_COUNT=count("chimney"),
        PIPE_COUNT=count("pipe_boot", DEFAULT_PIPE_BOOTS),
        VENT_COUNT=count("vent", math.ceil(squares / SQUARES_PER_VENT)),
        GUTTER_LF=gutter_lf,
        DS_COUNT=math.ceil(eave / EAVE_LF_PER_DOWNSPOUT),
        slopes=slopes,
    )


def _with_suggested_variables(result: PhotoMeasurementResult) -> PhotoMeasurementResult:
    result.suggested_variables = suggest_variables(
        result.estimated_total_sqft,
        result.footprint_length_ft,
        result.footprint_width_ft,
        result.detected_pitch,
        result.roof_style,
        result.detected_features,
        result.detected_planes,
    )
    return result


def _number(raw: Dict, key: str, default: float) -> float:
    """Numeric field of a raw analysis; missing means default, NaN and Infinity are rejected"""
    value = raw.get(key)
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number", {"field": key})
    if not math.isfinite(number):
        raise ValidationError(f"{key} must be a finite number", {"field": key})
    return number


def build_measurement_result(raw: Dict) -> PhotoMeasurementResult:
    """
    Turn a raw vision-model analysis into a measurement result
    Missing pitch defaults to 5/12 and missing footprint to 50 x 30 ft
    """
    if not raw.get("success"):
        raise ValidationError(raw.get("limitationsWarning") or "Could not analyze photo")

    pitch = _number(raw, "detectedPitch", DEFAULT_PITCH)
    confidence = _number(raw, "confidence", DEFAULT_CONFIDENCE)
    if confidence < 0 or confidence > 1:
        raise ValidationError("confidence must be between 0 and 1", {"confidence": confidence})

    total_sqft = _number(raw, "estimatedTotalSqFt", 0.0)

    try:
        planes = [DetectedPlane.from_dict(p) for p in raw.get("detectedPlanes") or []]
        features = [DetectedFeature.from_dict(f) for f in raw.get("detectedFeatures") or []]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ValidationError("Malformed plane or feature detection", {"error": str(e)})

    result = PhotoMeasurementResult(
        success=True,
        confidence=confidence,
        estimated_total_sqft=total_sqft,
        estimated_total_squares=total_sqft / 100,
        footprint_length_ft=_number(raw, "estimatedFootprintLengthFt", 0.0) or DEFAULT_LENGTH_FT,
        footprint_width_ft=_number(raw, "estimatedFootprintWidthFt", 0.0) or DEFAULT_WIDTH_FT,
        detected_material=raw.get("detectedMaterial") or None,
        detected_pitch=pitch,
        pitch_category=pitch_category(pitch),
        roof_style=raw.get("roofStyle") or "gable",
        detected_planes=planes,
        detected_features=features,
        notes=list(raw.get("notes") or []),
        limitations_warning=raw.get("limitationsWarning") or None,
    )
    return _with_suggested_variables(result)


def weighted_average(results: List[PhotoMeasurementResult],
                     getter: Callable[[PhotoMeasurementResult], float]) -> float:
    """Confidence-weighted mean; plain mean when every confidence is 0"""
    total_weight = sum(r.confidence for r in results)
    if total_weight == 0:
        return sum(getter(r) for r in results) / len(results)
    return sum(getter(r) * r.confidence for r in results) / total_weight


def weighted_vote(results: List[PhotoMeasurementResult],
                  getter: Callable[[PhotoMeasurementResult], Optional[str]]) -> Optional[str]:
    """
    Value with the highest summed confidence
    Ties go to the value seen first; missing values do not vote
    """
    totals: Dict[str, float] = {}
    for r in results:
        value = getter(r)
        if value is None:
            continue
        totals[value] = totals.get(value, 0.0) + r.confidence

    winner = None
    best = None
    for value, score in totals.items():
        if best is None or score > best:
            winner, best = value, score
    return winner


def merge_features(results: List[PhotoMeasurementResult]) -> List[DetectedFeature]:
    """Per feature type keep the single most confident detection; counts are not summed"""
    merged: Dict[str, DetectedFeature] = {}
    for r in results:
        for feature in r.detected_features:
            existing = merged.get(feature.type)
            if existing is None or feature.confidence > existing.confidence:
                merged[feature.type] = feature
    return list(merged.values())


def merge_planes(results: List[PhotoMeasurementResult]) -> List[DetectedPlane]:
    merged: Dict[str, DetectedPlane] = {}
    for r in results:
        for plane in r.detected_planes:
            existing = merged.get(plane.id)
            if existing is None or plane.pitch_confidence > existing.pitch_confidence:
                merged[plane.id] = plane
    return list(merged.values())


def merge_notes(results: List[PhotoMeasurementResult]) -> List[str]:
    notes = []
    for r in results:
        for note in r.notes:
            if note not in notes:
                notes.append(note)
    return notes


def merge_results(results: List[PhotoMeasurementResult]) -> PhotoMeasurementResult:
    """
    Combine several photo analyses of the same roof into one result

    Unsuccessful results are dropped first. A single remaining result is
    returned as-is. Otherwise numeric fields are confidence-weighted averages,
    material, roof style and pitch category are confidence-weighted votes, and
    the merged confidence is the weakest input boosted by 10% and capped at 1.0.
    """
    usable = [r for r in results if r.success]
    if not usable:
        raise ValidationError("No usable photo measurements")
    if len(usable) == 1:
        return usable[0]

    logger.info("Merging %d photo measurements", len(usable))

    merged_sqft = round_half_up(weighted_average(usable, lambda r: r.estimated_total_sqft))
    merged_pitch = round_half_up(weighted_average(usable, lambda r: r.detected_pitch))
    confidence = min(1.0, min(r.confidence for r in usable) * CONFIDENCE_BOOST)

    merged = PhotoMeasurementResult(
        success=True,
        confidence=round(confidence, 4),
        estimated_total_sqft=merged_sqft,
        estimated_total_squares=merged_sqft / 100,
        footprint_length_ft=round_half_up(weighted_average(usable, lambda r: r.footprint_length_ft)),
        footprint_width_ft=round_half_up(weighted_average(usable, lambda r: r.footprint_width_ft)),
        detected_material=weighted_vote(usable, lambda r: r.detected_material),
        detected_pitch=merged_pitch,
        pitch_category=weighted_vote(usable, lambda r: r.pitch_category) or pitch_category(merged_pitch),
        roof_style=weighted_vote(usable, lambda r: r.roof_style) or "gable",
        detected_planes=merge_planes(usable),
        detected_features=merge_features(usable),
        notes=merge_notes(usable),
        limitations_warning=next((r.limitations_warning for r in usable if r.limitations_warning), None),
    )
    return _with_suggested_variables(merged)


def merge_raw_results(raw_results: List[Dict]) -> PhotoMeasurementResult:
    """Build results from raw analyses, skipping failed ones, then merge"""
    if not isinstance(raw_results, list):
        raise ValidationError("results must be a list")
    built = [build_measurement_result(raw) for raw in raw_results
             if isinstance(raw, dict) and raw.get("success")]
    return merge_results(built)
