"""
Pricing Catalog Models
Immutable snapshot of line items, macros and geographic pricing, loaded once per request
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from roofbid.errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class GeoMultipliers:
    """Regional cost adjustment applied to base unit costs"""
    material: float = 1.0
    labor: float = 1.0
    equipment: float = 1.0

    @classmethod
    def identity(cls) -> 'GeoMultipliers':
        return cls()

    @property
    def average(self) -> float:
        return (self.material + self.labor + self.equipment) / 3

    def to_dict(self) -> Dict:
        return {
            "material": self.material,
            "labor": self.labor,
            "equipment": self.equipment,
        }


@dataclass(frozen=True)
class LineItem:
    """Catalog entry with default formula, waste factor and base unit costs"""
    id: str
    item_code: str
    name: str
    category: str
    unit_type: str
    quantity_formula: Optional[str] = None
    default_waste_factor: float = 1.0
    base_material_cost: float = 0.0
    base_labor_cost: float = 0.0
    base_equipment_cost: float = 0.0
    is_taxable: bool = True
    sort_order: int = 0
    description: Optional[str] = None

    def validate(self):
        for name in ("base_material_cost", "base_labor_cost", "base_equipment_cost"):
            if getattr(self, name) < 0:
                raise ValidationError(f"Line item {self.item_code}: {name} cannot be negative")
        if self.default_waste_factor < 1:
            raise ValidationError(f"Line item {self.item_code}: waste factor must be at least 1")

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "name": self.name,
            "category": self.category,
            "unit_type": self.unit_type,
            "quantity_formula": self.quantity_formula,
            "default_waste_factor": self.default_waste_factor,
            "base_material_cost": self.base_material_cost,
            "base_labor_cost": self.base_labor_cost,
            "base_equipment_cost": self.base_equipment_cost,
            "is_taxable": self.is_taxable,
            "sort_order": self.sort_order,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'LineItem':
        item = cls(
            id=str(data["id"]),
            item_code=data.get("item_code", str(data["id"])),
            name=data["name"],
            category=data.get("category", "other"),
            unit_type=data.get("unit_type", "EA"),
            quantity_formula=data.get("quantity_formula"),
            default_waste_factor=float(data.get("default_waste_factor") or 1.0),
            base_material_cost=float(data.get("base_material_cost") or 0),
            base_labor_cost=float(data.get("base_labor_cost") or 0),
            base_equipment_cost=float(data.get("base_equipment_cost") or 0),
            is_taxable=bool(data.get("is_taxable", True)),
            sort_order=int(data.get("sort_order") or 0),
            description=data.get("description"),
        )
        item.validate()
        return item


@dataclass(frozen=True)
class MacroLineItem:
    """A macro's reference to a catalog line item, with optional overrides"""
    line_item_id: str
    quantity_formula: Optional[str] = None
    waste_factor: Optional[float] = None
    material_cost_override: Optional[float] = None
    labor_cost_override: Optional[float] = None
    equipment_cost_override: Optional[float] = None
    is_selected_by_default: bool = True
    is_optional: bool = False
    sort_order: int = 0
    group_name: Optional[str] = None
    notes: Optional[str] = None

    def validate(self):
        if self.waste_factor is not None and self.waste_factor < 0:
            raise ValidationError(f"Macro line {self.line_item_id}: waste factor cannot be negative")
        for name in ("material_cost_override", "labor_cost_override", "equipment_cost_override"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationError(f"Macro line {self.line_item_id}: {name} cannot be negative")

    def to_dict(self) -> Dict:
        return {
            "line_item_id": self.line_item_id,
            "quantity_formula": self.quantity_formula,
            "waste_factor": self.waste_factor,
            "material_cost_override": self.material_cost_override,
            "labor_cost_override": self.labor_cost_override,
            "equipment_cost_override": self.equipment_cost_override,
            "is_selected_by_default": self.is_selected_by_default,
            "is_optional": self.is_optional,
            "sort_order": self.sort_order,
            "group_name": self.group_name,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'MacroLineItem':
        def optional_float(key):
            value = data.get(key)
            return None if value is None else float(value)

        line = cls(
            line_item_id=str(data["line_item_id"]),
            quantity_formula=data.get("quantity_formula"),
            waste_factor=optional_float("waste_factor"),
            material_cost_override=optional_float("material_cost_override"),
            labor_cost_override=optional_float("labor_cost_override"),
            equipment_cost_override=optional_float("equipment_cost_override"),
            is_selected_by_default=bool(data.get("is_selected_by_default", True)),
            is_optional=bool(data.get("is_optional", False)),
            sort_order=int(data.get("sort_order") or 0),
            group_name=data.get("group_name"),
            notes=data.get("notes"),
        )
        line.validate()
        return line


@dataclass(frozen=True)
class Macro:
    """Named bundle of line item references used to build an estimate"""
    id: str
    name: str
    description: Optional[str] = None
    roof_type: Optional[str] = None
    line_items: Tuple[MacroLineItem, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "roof_type": self.roof_type,
            "line_items": [line.to_dict() for line in self.line_items],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Macro':
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description"),
            roof_type=data.get("roof_type"),
            line_items=tuple(MacroLineItem.from_dict(line) for line in data.get("line_items", [])),
        )


@dataclass(frozen=True)
class GeographicPricing:
    """Regional multipliers for a set of ZIP codes"""
    id: str
    name: str
    state: Optional[str] = None
    zip_codes: Tuple[str, ...] = ()
    material_multiplier: float = 1.0
    labor_multiplier: float = 1.0
    equipment_multiplier: float = 1.0
    is_active: bool = True

    def multipliers(self) -> GeoMultipliers:
        return GeoMultipliers(
            material=self.material_multiplier,
            labor=self.labor_multiplier,
            equipment=self.equipment_multiplier,
        )

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state,
            "zip_codes": list(self.zip_codes),
            "material_multiplier": self.material_multiplier,
            "labor_multiplier": self.labor_multiplier,
            "equipment_multiplier": self.equipment_multiplier,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'GeographicPricing':
        region = cls(
            id=str(data["id"]),
            name=data["name"],
            state=data.get("state"),
            zip_codes=tuple(str(z) for z in data.get("zip_codes", [])),
            material_multiplier=float(data.get("material_multiplier", 1.0)),
            labor_multiplier=float(data.get("labor_multiplier", 1.0)),
            equipment_multiplier=float(data.get("equipment_multiplier", 1.0)),
            is_active=bool(data.get("is_active", True)),
        )
        for name in ("material_multiplier", "labor_multiplier", "equipment_multiplier"):
            if getattr(region, name) < 0:
                raise ValidationError(f"Geographic pricing {region.id}: {name} cannot be negative")
        return region


@dataclass(frozen=True)
class CatalogSnapshot:
    """Read-only view of the pricing catalog passed into the pricing engine"""
    line_items: Dict[str, LineItem] = field(default_factory=dict)
    macros: Dict[str, Macro] = field(default_factory=dict)
    regions: Dict[str, GeographicPricing] = field(default_factory=dict)
    version: str = "0.0.0"

    def line_item(self, line_item_id: str) -> LineItem:
        try:
            return self.line_items[str(line_item_id)]
        except KeyError:
            raise NotFoundError(f"Line item not found: {line_item_id}")

    def macro(self, macro_id: str) -> Macro:
        try:
            return self.macros[str(macro_id)]
        except KeyError:
            raise NotFoundError(f"Macro not found: {macro_id}")

    def geographic_pricing(self, pricing_id: str) -> GeographicPricing:
        try:
            return self.regions[str(pricing_id)]
        except KeyError:
            raise NotFoundError(f"Geographic pricing not found: {pricing_id}")

    def pricing_for_zip(self, zip_code: str) -> Optional[GeographicPricing]:
        for region in self.regions.values():
            if region.is_active and str(zip_code) in region.zip_codes:
                return region
        return None

    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "line_items": [item.to_dict() for item in self.line_items.values()],
            "macros": [macro.to_dict() for macro in self.macros.values()],
            "geographic_pricing": [region.to_dict() for region in self.regions.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'CatalogSnapshot':
        line_items = {}
        for raw in data.get("line_items", []):
            item = LineItem.from_dict(raw)
            line_items[item.id] = item

        macros = {}
        for raw in data.get("macros", []):
            macro = Macro.from_dict(raw)
            macros[macro.id] = macro

        regions = {}
        for raw in data.get("geographic_pricing", []):
            region = GeographicPricing.from_dict(raw)
            regions[region.id] = region

        return cls(
            line_items=line_items,
            macros=macros,
            regions=regions,
            version=str(data.get("version", "0.0.0")),
        )


# ---------- in-process cache keyed by path ----------
_CATALOG_CACHE: Dict[str, Tuple[Optional[float], CatalogSnapshot]] = {}


def _read_catalog_from_disk(path: str) -> CatalogSnapshot:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Missing catalog at {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return CatalogSnapshot.from_dict(data)


def load_catalog(path: str) -> CatalogSnapshot:
    """Read the catalog JSON, re-reading only when the file changes"""
    try:
        mtime = os.path.getmtime(path)
    except OSError:
        mtime = None

    cached = _CATALOG_CACHE.get(path)
    if cached is None or cached[0] != mtime:
        cached = (mtime, _read_catalog_from_disk(path))
        _CATALOG_CACHE[path] = cached
    return cached[1]


def reload_catalog(path: str) -> CatalogSnapshot:
    """Force cache invalidation + re-read from disk"""
    _CATALOG_CACHE.pop(path, None)
    return load_catalog(path)
