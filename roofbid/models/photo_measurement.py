"""
Photo Measurement Models
One AI analysis of one roof photo; JSON keys are camelCase as the vision model returns them
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from roofbid.models.roof_variables import RoofVariables


@dataclass
class DetectedPlane:
    """A single roof facet seen in a photo"""
    id: str
    estimated_sqft: float = 0.0
    estimated_pitch: float = 0.0
    pitch_confidence: float = 0.0
    shape: str = "rectangle"
    position: str = "center"

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "estimatedSqFt": self.estimated_sqft,
            "estimatedPitch": self.estimated_pitch,
            "pitchConfidence": self.pitch_confidence,
            "shape": self.shape,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'DetectedPlane':
        return cls(
            id=str(data["id"]),
            estimated_sqft=float(data.get("estimatedSqFt") or 0),
            estimated_pitch=float(data.get("estimatedPitch") or 0),
            pitch_confidence=float(data.get("pitchConfidence") or 0),
            shape=data.get("shape") or "rectangle",
            position=data.get("position") or "center",
        )


@dataclass
class DetectedFeature:
    """Skylight, chimney, pipe boot, vent, ridge, valley, hip or gutter detection"""
    type: str
    count: int = 0
    confidence: float = 0.0
    length_ft: Optional[float] = None
    width_ft: Optional[float] = None

    def to_dict(self) -> Dict:
        data = {
            "type": self.type,
            "count": self.count,
            "confidence": self.confidence,
        }
        if self.length_ft is not None or self.width_ft is not None:
            data["estimatedDimensions"] = {"lengthFt": self.length_ft, "widthFt": self.width_ft}
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'DetectedFeature':
        dimensions = data.get("estimatedDimensions") or {}
        length = dimensions.get("lengthFt")
        width = dimensions.get("widthFt")
        return cls(
            type=data["type"],
            count=int(data.get("count") or 0),
            confidence=float(data.get("confidence") or 0),
            length_ft=None if length is None else float(length),
            width_ft=None if width is None else float(width),
        )


@dataclass
class PhotoMeasurementResult:
    """Measurements, detections and suggested variables from one photo (or a merge)"""
    success: bool
    confidence: float
    estimated_total_sqft: float = 0.0
    estimated_total_squares: float = 0.0
    footprint_length_ft: float = 0.0
    footprint_width_ft: float = 0.0
    detected_material: Optional[str] = None
    detected_pitch: float = 0.0
    pitch_category: str = "standard"
    roof_style: str = "gable"
    detected_planes: List[DetectedPlane] = field(default_factory=list)
    detected_features: List[DetectedFeature] = field(default_factory=list)
    suggested_variables: RoofVariables = field(default_factory=RoofVariables)
    notes: List[str] = field(default_factory=list)
    limitations_warning: Optional[str] = None

    def feature(self, feature_type: str) -> Optional[DetectedFeature]:
        return next((f for f in self.detected_features if f.type == feature_type), None)

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "confidence": self.confidence,
            "estimatedTotalSqFt": self.estimated_total_sqft,
            "estimatedTotalSquares": self.estimated_total_squares,
            "estimatedFootprintLengthFt": self.footprint_length_ft,
            "estimatedFootprintWidthFt": self.footprint_width_ft,
            "detectedMaterial": self.detected_material,
            "detectedPitch": self.detected_pitch,
            "pitchCategory": self.pitch_category,
            "roofStyle": self.roof_style,
            "detectedPlanes": [plane.to_dict() for plane in self.detected_planes],
            "detectedFeatures": [feature.to_dict() for feature in self.detected_features],
            "suggestedVariables": self.suggested_variables.to_dict(),
            "notes": list(self.notes),
            "limitationsWarning": self.limitations_warning,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'PhotoMeasurementResult':
        return cls(
            success=bool(data.get("success")),
            confidence=float(data.get("confidence") or 0),
            estimated_total_sqft=float(data.get("estimatedTotalSqFt") or 0),
            estimated_total_squares=float(data.get("estimatedTotalSquares") or 0),
            footprint_length_ft=float(data.get("estimatedFootprintLengthFt") or 0),
            footprint_width_ft=float(data.get("estimatedFootprintWidthFt") or 0),
            detected_material=data.get("detectedMaterial"),
            detected_pitch=float(data.get("detectedPitch") or 0),
            pitch_category=data.get("pitchCategory") or "standard",
            roof_style=data.get("roofStyle") or "gable",
            detected_planes=[DetectedPlane.from_dict(p) for p in data.get("detectedPlanes") or []],
            detected_features=[DetectedFeature.from_dict(f) for f in data.get("detectedFeatures") or []],
            suggested_variables=RoofVariables.from_dict(data.get("suggestedVariables") or {}),
            notes=list(data.get("notes") or []),
            limitations_warning=data.get("limitationsWarning"),
        )
