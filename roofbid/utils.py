"""
Utility functions for money rounding, display formatting and request validation
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List

from roofbid.models.billing import JobStatus

CENT = Decimal("0.01")

PERCENT_LIMITS = {
    "overhead_percent": 50,
    "profit_percent": 50,
    "tax_percent": 20,
}

BILLING_TRIGGER_STATUSES = tuple(status.value for status in JobStatus)


def round_money(amount: float) -> float:
    """
    Round to cents, half-up
    Goes through str() so binary floats like 2.675 round the way people expect
    """
    return float(Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP))


def round_half_up(value: float, places: int = 0) -> float:
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def format_currency(amount: float) -> str:
    """
    Format currency amount for display
    """
    return f"${amount:,.2f}"


def format_quote_range(min_quote: float, max_quote: float) -> str:
    """
    Format quote range for display
    """
    return f"${min_quote:,.0f} - ${max_quote:,.0f}"


def format_quantity(quantity: float, unit_type: str) -> str:
    return f"{quantity:.2f} {unit_type}"


def _is_number(value) -> bool:
    """Real, finite number; NaN and Infinity are rejected"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_variables_payload(variables, errors: List[str], field: str = "variables"):
    if not isinstance(variables, dict):
        errors.append(f"{field} must be an object")
        return
    for key, value in variables.items():
        if key == "slopes":
            if value is not None and not isinstance(value, dict):
                errors.append(f"{field}.slopes must be an object")
            continue
        if value is not None and not _is_number(value):
            errors.append(f"{field}.{key} must be a number")


def validate_apply_macro_request(data: Dict, require_lead: bool = True) -> List[str]:
    """
    Validate a macro apply/preview body and return list of errors
    Previews are not saved, so lead_id is only required when require_lead is set
    """
    errors = []

    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    lead_id = data.get("lead_id")
    if require_lead and (not lead_id or not isinstance(lead_id, str)):
        errors.append("Missing required field: lead_id")

    if "variables" not in data:
        errors.append("Missing required field: variables")
    else:
        validate_variables_payload(data["variables"], errors)

    for field in ("sketch_id", "geographic_pricing_id", "name", "zip_code"):
        if data.get(field) is not None and not isinstance(data[field], str):
            errors.append(f"{field} must be a string")

    for field, upper in PERCENT_LIMITS.items():
        if data.get(field) is None:
            continue
        value = data[field]
        if not _is_number(value):
            errors.append(f"{field} must be a valid number")
        elif value < 0 or value > upper:
            errors.append(f"{field} must be between 0 and {upper}")

    selections = data.get("selections")
    if selections is not None:
        if not isinstance(selections, dict) or not all(isinstance(v, bool) for v in selections.values()):
            errors.append("selections must map line item ids to true/false")

    return errors


def validate_billing_template_request(data: Dict) -> List[str]:
    """
    Validate a billing-schedule POST body
    Either template_name or a milestones list is required
    """
    errors = []

    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    contract = data.get("contract_amount")
    if contract is not None and (not _is_number(contract) or contract < 0):
        errors.append("contract_amount must be a non-negative number")

    milestones = data.get("milestones")
    if data.get("template_name") is None and milestones is None:
        errors.append("Either template_name or milestones is required")

    if milestones is not None:
        if not isinstance(milestones, list) or not milestones:
            errors.append("milestones must be a non-empty list")
        else:
            for index, milestone in enumerate(milestones):
                if not isinstance(milestone, dict):
                    errors.append(f"milestones[{index}] must be an object")
                    continue
                if not milestone.get("milestone_name"):
                    errors.append(f"milestones[{index}].milestone_name is required")
                pct = milestone.get("percentage")
                if not _is_number(pct) or pct <= 0 or pct > 100:
                    errors.append(f"milestones[{index}].percentage must be between 0 and 100")
                if milestone.get("trigger_status") not in BILLING_TRIGGER_STATUSES:
                    errors.append(f"milestones[{index}].trigger_status is not a job status")

    return errors


def validate_dimensions_request(data: Dict) -> List[str]:
    errors = []

    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    for field in ("length_ft", "width_ft", "pitch"):
        if field not in data:
            errors.append(f"Missing required field: {field}")
        elif not _is_number(data[field]) or data[field] < 0:
            errors.append(f"{field} must be a non-negative number")

    for field in ("skylights", "chimneys", "pipe_boots", "vents", "downspouts", "gutter_lf"):
        if data.get(field) is not None and (not _is_number(data[field]) or data[field] < 0):
            errors.append(f"{field} must be a non-negative number")

    return errors


PHOTO_NUMBER_FIELDS = (
    "confidence", "detectedPitch", "estimatedTotalSqFt",
    "estimatedFootprintLengthFt", "estimatedFootprintWidthFt",
)

PLANE_NUMBER_FIELDS = ("estimatedSqFt", "estimatedPitch", "pitchConfidence")

FEATURE_NUMBER_FIELDS = ("count", "confidence")


def _check_numbers(item: Dict, names, prefix: str, errors: List[str]):
    for name in names:
        if item.get(name) is not None and not _is_number(item[name]):
            errors.append(f"{prefix}.{name} must be a number")


def _check_detections(item: Dict, prefix: str, errors: List[str]):
    planes = item.get("detectedPlanes")
    if planes is not None:
        if not isinstance(planes, list):
            errors.append(f"{prefix}.detectedPlanes must be a list")
        else:
            for index, plane in enumerate(planes):
                where = f"{prefix}.detectedPlanes[{index}]"
                if not isinstance(plane, dict):
                    errors.append(f"{where} must be an object")
                    continue
                if plane.get("id") is None:
                    errors.append(f"{where}.id is required")
                _check_numbers(plane, PLANE_NUMBER_FIELDS, where, errors)

    features = item.get("detectedFeatures")
    if features is not None:
        if not isinstance(features, list):
            errors.append(f"{prefix}.detectedFeatures must be a list")
        else:
            for index, feature in enumerate(features):
                where = f"{prefix}.detectedFeatures[{index}]"
                if not isinstance(feature, dict):
                    errors.append(f"{where} must be an object")
                    continue
                if not feature.get("type") or not isinstance(feature["type"], str):
                    errors.append(f"{where}.type is required")
                _check_numbers(feature, FEATURE_NUMBER_FIELDS, where, errors)
                dimensions = feature.get("estimatedDimensions")
                if dimensions is not None:
                    if not isinstance(dimensions, dict):
                        errors.append(f"{where}.estimatedDimensions must be an object")
                    else:
                        _check_numbers(dimensions, ("lengthFt", "widthFt"),
                                       f"{where}.estimatedDimensions", errors)


def validate_photo_results_request(data: Dict) -> List[str]:
    """
    Validate a photo-merge body: a list of per-photo analyses
    Failed analyses are only checked for shape since the merge skips them
    """
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    results = data.get("results")
    if not isinstance(results, list):
        return ["results must be a list of photo analyses"]

    errors = []
    for index, item in enumerate(results):
        prefix = f"results[{index}]"
        if not isinstance(item, dict):
            errors.append(f"{prefix} must be an object")
            continue
        if not item.get("success"):
            continue

        _check_numbers(item, PHOTO_NUMBER_FIELDS, prefix, errors)
        confidence = item.get("confidence")
        if _is_number(confidence) and (confidence < 0 or confidence > 1):
            errors.append(f"{prefix}.confidence must be between 0 and 1")
        notes = item.get("notes")
        if notes is not None and not isinstance(notes, list):
            errors.append(f"{prefix}.notes must be a list")
        _check_detections(item, prefix, errors)

    return errors


def validate_quick_estimate_request(data: Dict) -> List[str]:
    """
    Validate intake answers for a quick estimate; every field is optional
    """
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    errors = []
    for field in ("job_type", "roof_material", "roof_pitch", "timeline_urgency"):
        if data.get(field) is not None and not isinstance(data[field], str):
            errors.append(f"{field} must be a string")

    size = data.get("roof_size_sqft")
    if size is not None and (not _is_number(size) or size <= 0):
        errors.append("roof_size_sqft must be a positive number")

    stories = data.get("stories")
    if stories is not None and (isinstance(stories, bool) or not isinstance(stories, int) or stories < 1):
        errors.append("stories must be a whole number of at least 1")

    for field in ("has_skylights", "has_chimneys", "has_solar_panels"):
        if data.get(field) is not None and not isinstance(data[field], bool):
            errors.append(f"{field} must be true or false")

    issues = data.get("issues")
    if issues is not None and (not isinstance(issues, list) or not all(isinstance(i, str) for i in issues)):
        errors.append("issues must be a list of strings")

    return errors


def validate_selections_request(data: Dict) -> List[str]:
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    selections = data.get("selections")
    if not isinstance(selections, dict) or not all(isinstance(v, bool) for v in selections.values()):
        return ["selections must map line item ids to true/false"]
    return []


def validate_formula_request(data: Dict, require_variables: bool = False) -> List[str]:
    errors = []

    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    if not isinstance(data.get("formula"), str):
        errors.append("Missing required field: formula")

    if require_variables:
        if "variables" not in data:
            errors.append("Missing required field: variables")
        else:
            validate_variables_payload(data["variables"], errors)

    waste = data.get("waste_factor")
    if waste is not None and (not _is_number(waste) or waste < 0):
        errors.append("waste_factor must be a non-negative number")

    if data.get("slope_id") is not None and not isinstance(data["slope_id"], str):
        errors.append("slope_id must be a string")

    return errors


def validate_estimate_response_request(data: Dict) -> List[str]:
    """
    Validate an accept/reject body; every field is optional
    """
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    errors = []
    for field in ("estimate_id", "accepted_by_name", "rejected_by_name", "signature", "reason"):
        if data.get(field) is not None and not isinstance(data[field], str):
            errors.append(f"{field} must be a string")
    return errors


def validate_contract_request(data: Dict) -> List[str]:
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    contract = data.get("contract_amount")
    if contract is None:
        return ["Missing required field: contract_amount"]
    if not _is_number(contract) or contract < 0:
        return ["contract_amount must be a non-negative number"]
    return []


def validate_status_request(data: Dict) -> List[str]:
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    status = data.get("status")
    if not status:
        return ["Missing required field: status"]
    if status not in BILLING_TRIGGER_STATUSES:
        return [f"Unknown job status: {status}"]
    return []
