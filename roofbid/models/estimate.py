"""
Detailed Estimate Models
Priced line items and the estimate header produced by applying a macro
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class EstimateStatus(Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass
class PricedLineItem:
    """One resolved, priced line of an estimate; money fields are rounded to cents"""
    line_item_id: str
    item_code: str
    name: str
    category: str
    unit_type: str
    quantity: float
    quantity_formula: Optional[str]
    waste_factor: float
    quantity_with_waste: float
    material_unit_cost: float
    labor_unit_cost: float
    equipment_unit_cost: float
    material_total: float
    labor_total: float
    equipment_total: float
    line_total: float
    is_included: bool
    is_optional: bool
    is_taxable: bool
    sort_order: int
    group_name: Optional[str] = None
    notes: Optional[str] = None
    sources: Dict[str, str] = field(default_factory=dict)
    formula_error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "line_item_id": self.line_item_id,
            "item_code": self.item_code,
            "name": self.name,
            "category": self.category,
            "unit_type": self.unit_type,
            "quantity": self.quantity,
            "quantity_formula": self.quantity_formula,
            "waste_factor": self.waste_factor,
            "quantity_with_waste": self.quantity_with_waste,
            "material_unit_cost": self.material_unit_cost,
            "labor_unit_cost": self.labor_unit_cost,
            "equipment_unit_cost": self.equipment_unit_cost,
            "material_total": self.material_total,
            "labor_total": self.labor_total,
            "equipment_total": self.equipment_total,
            "line_total": self.line_total,
            "is_included": self.is_included,
            "is_optional": self.is_optional,
            "is_taxable": self.is_taxable,
            "sort_order": self.sort_order,
            "group_name": self.group_name,
            "notes": self.notes,
            "sources": dict(self.sources),
            "formula_error": self.formula_error,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'PricedLineItem':
        return cls(
            line_item_id=data["line_item_id"],
            item_code=data["item_code"],
            name=data["name"],
            category=data["category"],
            unit_type=data["unit_type"],
            quantity=data["quantity"],
            quantity_formula=data.get("quantity_formula"),
            waste_factor=data["waste_factor"],
            quantity_with_waste=data["quantity_with_waste"],
            material_unit_cost=data["material_unit_cost"],
            labor_unit_cost=data["labor_unit_cost"],
            equipment_unit_cost=data["equipment_unit_cost"],
            material_total=data["material_total"],
            labor_total=data["labor_total"],
            equipment_total=data["equipment_total"],
            line_total=data["line_total"],
            is_included=data["is_included"],
            is_optional=data["is_optional"],
            is_taxable=data["is_taxable"],
            sort_order=data["sort_order"],
            group_name=data.get("group_name"),
            notes=data.get("notes"),
            sources=dict(data.get("sources") or {}),
            formula_error=data.get("formula_error"),
        )


@dataclass
class PricedEstimate:
    """Priced, itemized estimate with rollups and the low/likely/high band"""
    macro_id: str
    macro_name: str
    variables: Dict
    line_items: List[PricedLineItem]
    total_material: float
    total_labor: float
    total_equipment: float
    subtotal: float
    overhead_percent: float
    overhead_amount: float
    profit_percent: float
    profit_amount: float
    taxable_amount: float
    tax_percent: float
    tax_amount: float
    price_low: float
    price_likely: float
    price_high: float
    geographic_adjustment: float = 1.0
    geographic_pricing_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    formula_error_count: int = 0

    # Persistence fields, filled in by the store
    id: Optional[str] = None
    lead_id: Optional[str] = None
    sketch_id: Optional[str] = None
    name: Optional[str] = None
    status: EstimateStatus = EstimateStatus.DRAFT
    valid_until: Optional[str] = None
    created_at: Optional[str] = None
    responded_at: Optional[str] = None
    responded_by: Optional[str] = None

    @property
    def included_items(self) -> List[PricedLineItem]:
        return [line for line in self.line_items if line.is_included]

    def selections(self) -> Dict[str, bool]:
        return {line.line_item_id: line.is_included for line in self.line_items}

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "sketch_id": self.sketch_id,
            "name": self.name,
            "status": self.status.value,
            "valid_until": self.valid_until,
            "created_at": self.created_at,
            "responded_at": self.responded_at,
            "responded_by": self.responded_by,
            "macro_id": self.macro_id,
            "macro_name": self.macro_name,
            "variables": self.variables,
            "line_items": [line.to_dict() for line in self.line_items],
            "total_material": self.total_material,
            "total_labor": self.total_labor,
            "total_equipment": self.total_equipment,
            "subtotal": self.subtotal,
            "overhead_percent": self.overhead_percent,
            "overhead_amount": self.overhead_amount,
            "profit_percent": self.profit_percent,
            "profit_amount": self.profit_amount,
            "taxable_amount": self.taxable_amount,
            "tax_percent": self.tax_percent,
            "tax_amount": self.tax_amount,
            "price_low": self.price_low,
            "price_likely": self.price_likely,
            "price_high": self.price_high,
            "geographic_pricing_id": self.geographic_pricing_id,
            "geographic_adjustment": self.geographic_adjustment,
            "warnings": list(self.warnings),
            "formula_error_count": self.formula_error_count,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'PricedEstimate':
        return cls(
            id=data.get("id"),
            lead_id=data.get("lead_id"),
            sketch_id=data.get("sketch_id"),
            name=data.get("name"),
            status=EstimateStatus(data.get("status", "draft")),
            valid_until=data.get("valid_until"),
            created_at=data.get("created_at"),
            responded_at=data.get("responded_at"),
            responded_by=data.get("responded_by"),
            macro_id=data["macro_id"],
            macro_name=data["macro_name"],
            variables=data["variables"],
            line_items=[PricedLineItem.from_dict(line) for line in data["line_items"]],
            total_material=data["total_material"],
            total_labor=data["total_labor"],
            total_equipment=data["total_equipment"],
            subtotal=data["subtotal"],
            overhead_percent=data["overhead_percent"],
            overhead_amount=data["overhead_amount"],
            profit_percent=data["profit_percent"],
            profit_amount=data["profit_amount"],
            taxable_amount=data["taxable_amount"],
            tax_percent=data["tax_percent"],
            tax_amount=data["tax_amount"],
            price_low=data["price_low"],
            price_likely=data["price_likely"],
            price_high=data["price_high"],
            geographic_pricing_id=data.get("geographic_pricing_id"),
            geographic_adjustment=data.get("geographic_adjustment", 1.0),
            warnings=list(data.get("warnings") or []),
            formula_error_count=data.get("formula_error_count", 0),
        )
