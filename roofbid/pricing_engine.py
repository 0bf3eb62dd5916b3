"""
Core Pricing Engine
Applies a macro (bundle of catalog line items) to roof variables and produces a
priced, itemized estimate with overhead/profit/tax rollups and a price band
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from roofbid.errors import FormulaError, ValidationError
from roofbid.formula_parser import evaluate_formula
from roofbid.models.catalog import CatalogSnapshot, GeoMultipliers, LineItem, Macro
from roofbid.models.estimate import PricedEstimate, PricedLineItem
from roofbid.models.roof_variables import RoofVariables
from roofbid.utils import round_money

logger = logging.getLogger(__name__)

DEFAULT_OVERHEAD_PERCENT = 10.0
DEFAULT_PROFIT_PERCENT = 15.0
DEFAULT_TAX_PERCENT = 0.0

PRICE_LOW_FACTOR = 0.90
PRICE_HIGH_FACTOR = 1.15

# Used by estimate_summary when the roof size is unknown
DEFAULT_SQUARES = 20

OVERRIDE = "override"
CATALOG = "catalog"
DEFAULT = "default"


@dataclass(frozen=True)
class Resolved:
    """A field value together with where it came from"""
    value: Any
    source: str


def resolve(override, catalog, default=None) -> Resolved:
    """
    Item-level override wins, then the catalog value, then the default
    Only None falls through
    """
    if override is not None:
        return Resolved(override, OVERRIDE)
    if catalog is not None:
        return Resolved(catalog, CATALOG)
    return Resolved(default, DEFAULT)


def resolve_waste_factor(override: Optional[float], catalog: Optional[float]) -> Resolved:
    """Zero or missing waste factors fall through to the next level, ending at 1"""
    return resolve(override or None, catalog or None, 1.0)


def _check_percent(name: str, value: float):
    if value is None or value < 0 or value > 100:
        raise ValidationError(f"{name} must be between 0 and 100", {"field": name, "value": value})


def _as_variables(variables: Union[RoofVariables, Dict, None]) -> RoofVariables:
    if isinstance(variables, RoofVariables):
        return variables
    if variables is None:
        return RoofVariables()
    if not isinstance(variables, dict):
        raise ValidationError("variables must be an object")
    try:
        return RoofVariables.from_dict(variables)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid variables: {e}")


def _catalog_item(catalog: Union[CatalogSnapshot, Dict[str, LineItem]], line_item_id: str) -> LineItem:
    if isinstance(catalog, CatalogSnapshot):
        return catalog.line_item(line_item_id)
    return CatalogSnapshot(line_items=dict(catalog)).line_item(line_item_id)


@dataclass
class _LineCalculation:
    """Full-precision figures for one line, rounded only when output"""
    item: LineItem
    quantity: float
    formula: Optional[str]
    waste_factor: float
    quantity_with_waste: float
    material_unit_cost: float
    labor_unit_cost: float
    equipment_unit_cost: float
    is_included: bool
    is_optional: bool
    sort_order: int
    group_name: Optional[str]
    notes: Optional[str]
    sources: Dict[str, str]
    formula_error: Optional[str] = None

    @property
    def material_total(self) -> float:
        return self.quantity_with_waste * self.material_unit_cost

    @property
    def labor_total(self) -> float:
        return self.quantity_with_waste * self.labor_unit_cost

    @property
    def equipment_total(self) -> float:
        return self.quantity_with_waste * self.equipment_unit_cost

    @property
    def line_total(self) -> float:
        return self.material_total + self.labor_total + self.equipment_total

    def to_priced(self) -> PricedLineItem:
        return PricedLineItem(
            line_item_id=self.item.id,
            item_code=self.item.item_code,
            name=self.item.name,
            category=self.item.category,
            unit_type=self.item.unit_type,
            quantity=round_money(self.quantity),
            quantity_formula=self.formula,
            waste_factor=self.waste_factor,
            quantity_with_waste=round_money(self.quantity_with_waste),
            material_unit_cost=round_money(self.material_unit_cost),
            labor_unit_cost=round_money(self.labor_unit_cost),
            equipment_unit_cost=round_money(self.equipment_unit_cost),
            material_total=round_money(self.material_total),
            labor_total=round_money(self.labor_total),
            equipment_total=round_money(self.equipment_total),
            line_total=round_money(self.line_total),
            is_included=self.is_included,
            is_optional=self.is_optional,
            is_taxable=self.item.is_taxable,
            sort_order=self.sort_order,
            group_name=self.group_name,
            notes=self.notes,
            sources=dict(self.sources),
            formula_error=self.formula_error,
        )


def calculate_line(macro_line, item: LineItem, variables: RoofVariables,
                   geo: GeoMultipliers, is_included: bool) -> _LineCalculation:
    """
    Resolve overrides for one macro line and compute its quantity and unit costs
    A broken formula degrades the line to quantity 0 and records the error
    """
    formula = resolve(macro_line.quantity_formula, item.quantity_formula)
    waste = resolve_waste_factor(macro_line.waste_factor, item.default_waste_factor)
    material = resolve(macro_line.material_cost_override, item.base_material_cost, 0.0)
    labor = resolve(macro_line.labor_cost_override, item.base_labor_cost, 0.0)
    equipment = resolve(macro_line.equipment_cost_override, item.base_equipment_cost, 0.0)

    quantity = 0.0
    formula_error = None
    if formula.value:
        try:
            quantity = evaluate_formula(formula.value, variables)
        except FormulaError as e:
            logger.warning("Line item %s: formula %r failed: %s", item.item_code, formula.value, e.message)
            formula_error = e.message
    quantity = max(0.0, quantity)

    return _LineCalculation(
        item=item,
        quantity=quantity,
        formula=formula.value,
        waste_factor=waste.value,
        quantity_with_waste=quantity * waste.value,
        material_unit_cost=material.value * geo.material,
        labor_unit_cost=labor.value * geo.labor,
        equipment_unit_cost=equipment.value * geo.equipment,
        is_included=is_included,
        is_optional=macro_line.is_optional,
        sort_order=macro_line.sort_order or item.sort_order,
        group_name=macro_line.group_name,
        notes=macro_line.notes,
        sources={
            "quantity_formula": formula.source,
            "waste_factor": waste.source,
            "material_unit_cost": material.source,
            "labor_unit_cost": labor.source,
            "equipment_unit_cost": equipment.source,
        },
        formula_error=formula_error,
    )


def apply_macro(macro: Macro, catalog: Union[CatalogSnapshot, Dict[str, LineItem]],
                variables: Union[RoofVariables, Dict], geo: Optional[GeoMultipliers] = None,
                overhead_percent: float = DEFAULT_OVERHEAD_PERCENT,
                profit_percent: float = DEFAULT_PROFIT_PERCENT,
                tax_percent: float = DEFAULT_TAX_PERCENT,
                selections: Optional[Dict[str, bool]] = None,
                low_factor: float = PRICE_LOW_FACTOR,
                high_factor: float = PRICE_HIGH_FACTOR,
                geographic_pricing_id: Optional[str] = None) -> PricedEstimate:
    """
    Main estimate calculation
    Every macro line is returned, included or not; only included lines count
    toward the totals. Totals are summed at full precision and rounded on output.
    """
    _check_percent("overhead_percent", overhead_percent)
    _check_percent("profit_percent", profit_percent)
    _check_percent("tax_percent", tax_percent)

    roof = _as_variables(variables)
    geo = geo or GeoMultipliers.identity()
    selections = selections or {}

    # 1. Resolve and price each line
    lines = []
    for macro_line in macro.line_items:
        item = _catalog_item(catalog, macro_line.line_item_id)
        is_included = selections.get(item.id, macro_line.is_selected_by_default)
        lines.append(calculate_line(macro_line, item, roof, geo, bool(is_included)))

    lines.sort(key=lambda line: line.sort_order)

    # 2. Sum included lines
    included = [line for line in lines if line.is_included]
    total_material = sum(line.material_total for line in included)
    total_labor = sum(line.labor_total for line in included)
    total_equipment = sum(line.equipment_total for line in included)
    subtotal = total_material + total_labor + total_equipment

    # 3. Overhead, profit, tax
    overhead_amount = subtotal * overhead_percent / 100
    profit_amount = (subtotal + overhead_amount) * profit_percent / 100
    taxable_amount = sum(line.line_total for line in included if line.item.is_taxable)
    tax_amount = taxable_amount * tax_percent / 100

    # 4. Price band
    price_likely = subtotal + overhead_amount + profit_amount + tax_amount

    warnings = [f"{line.item.item_code}: {line.formula_error}" for line in lines if line.formula_error]

    return PricedEstimate(
        macro_id=macro.id,
        macro_name=macro.name,
        variables=roof.to_dict(),
        line_items=[line.to_priced() for line in lines],
        total_material=round_money(total_material),
        total_labor=round_money(total_labor),
        total_equipment=round_money(total_equipment),
        subtotal=round_money(subtotal),
        overhead_percent=overhead_percent,
        overhead_amount=round_money(overhead_amount),
        profit_percent=profit_percent,
        profit_amount=round_money(profit_amount),
        taxable_amount=round_money(taxable_amount),
        tax_percent=tax_percent,
        tax_amount=round_money(tax_amount),
        price_low=round_money(price_likely * low_factor),
        price_likely=round_money(price_likely),
        price_high=round_money(price_likely * high_factor),
        geographic_adjustment=round_money(geo.average),
        geographic_pricing_id=geographic_pricing_id,
        warnings=warnings,
        formula_error_count=len(warnings),
    )


def apply_macro_by_id(catalog: CatalogSnapshot, macro_id: str,
                      variables: Union[RoofVariables, Dict],
                      geographic_pricing_id: Optional[str] = None,
                      **options) -> PricedEstimate:
    """
    Look up the macro and region in the snapshot, then apply the macro
    Raises NotFoundError for an unknown macro or geographic pricing id
    """
    macro = catalog.macro(macro_id)
    geo = None
    if geographic_pricing_id:
        geo = catalog.geographic_pricing(geographic_pricing_id).multipliers()
    return apply_macro(macro, catalog, variables, geo=geo,
                       geographic_pricing_id=geographic_pricing_id, **options)


def recalculate_estimate(estimate: PricedEstimate, catalog: CatalogSnapshot,
                         selections: Optional[Dict[str, bool]] = None) -> PricedEstimate:
    """
    Recompute an estimate after toggling optional lines
    Current inclusion flags are kept unless overridden by selections
    """
    merged = estimate.selections()
    merged.update(selections or {})

    recalculated = apply_macro_by_id(
        catalog,
        estimate.macro_id,
        estimate.variables,
        geographic_pricing_id=estimate.geographic_pricing_id,
        overhead_percent=estimate.overhead_percent,
        profit_percent=estimate.profit_percent,
        tax_percent=estimate.tax_percent,
        selections=merged,
    )

    recalculated.id = estimate.id
    recalculated.lead_id = estimate.lead_id
    recalculated.sketch_id = estimate.sketch_id
    recalculated.name = estimate.name
    recalculated.status = estimate.status
    recalculated.valid_until = estimate.valid_until
    recalculated.created_at = estimate.created_at
    return recalculated


def cost_per_square(total_cost: float, squares: float) -> float:
    if squares <= 0:
        return 0.0
    return round_money(total_cost / squares)


def group_line_items(lines: List[PricedLineItem]) -> Dict[str, List[PricedLineItem]]:
    """Group lines by group name, falling back to category, in first-seen order"""
    groups: Dict[str, List[PricedLineItem]] = {}
    for line in lines:
        groups.setdefault(line.group_name or line.category, []).append(line)
    return groups


def estimate_summary(estimate: PricedEstimate) -> Dict:
    """
    Headline figures for an estimate
    """
    included = estimate.included_items
    optional = [line for line in estimate.line_items if line.is_optional]

    material_share = estimate.total_material / estimate.subtotal * 100 if estimate.subtotal > 0 else 0
    labor_share = estimate.total_labor / estimate.subtotal * 100 if estimate.subtotal > 0 else 0

    squares = float(estimate.variables.get("SQ") or 0)
    if squares <= 0:
        shingles = next((line for line in estimate.line_items
                         if line.unit_type == "SQ" and line.category == "shingles"), None)
        squares = shingles.quantity_with_waste if shingles and shingles.quantity_with_waste else DEFAULT_SQUARES

    return {
        "total_cost": estimate.price_likely,
        "cost_per_square": cost_per_square(estimate.price_likely, squares),
        "material_percentage": round(material_share),
        "labor_percentage": round(labor_share),
        "included_items_count": len(included),
        "optional_items_count": len(optional),
        "formula_error_count": estimate.formula_error_count,
    }
