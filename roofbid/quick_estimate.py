"""
Quick Estimate from Intake Answers
Rule-based price band for a lead before anyone has measured the roof: a base
rate by job type, multipliers for material, pitch, stories and urgency, flat
fees for features and reported issues, a minimum charge and a low/high spread
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from roofbid.formula_parser import COMMON_FORMULAS, calculate_quantity_with_waste
from roofbid.models.roof_variables import RoofVariables, variables_from_intake
from roofbid.utils import round_half_up, round_money

logger = logging.getLogger(__name__)

DEFAULT_ROOF_SQFT = 2000
DEFAULT_MIN_CHARGE = 350
DEFAULT_RANGE_LOW = 0.85
DEFAULT_RANGE_HIGH = 1.25

# Rough split of the likely price
MATERIAL_SHARE = 0.4
LABOR_SHARE = 0.6

# Intake flag -> (rule key, adjustment description)
FEATURE_RULES = (
    ("has_skylights", "feature_skylights", "Skylight work"),
    ("has_chimneys", "feature_chimneys", "Chimney flashing"),
    ("has_solar_panels", "feature_solar", "Solar panel handling"),
)

# Takeoff name -> waste factor, formulas from COMMON_FORMULAS
QUICK_TAKEOFF = {
    "squares": 1.10,
    "eave_and_rake": 1.05,
    "ridge_and_hip": 1.05,
    "ice_and_water": 1.0,
    "pipe_boots": 1.0,
    "vents": 1.0,
}


@dataclass(frozen=True)
class PricingRule:
    rule_key: str
    category: str
    display_name: str
    multiplier: float = 1.0
    base_rate: float = 0.0
    unit: str = "flat"
    flat_fee: float = 0.0
    min_charge: float = 0.0
    is_active: bool = True


DEFAULT_PRICING_RULES = (
    PricingRule("base_replacement", "job_type", "Full Replacement Base", base_rate=4.5, unit="sqft"),
    PricingRule("base_repair", "job_type", "Repair Base", base_rate=150),
    PricingRule("base_inspection", "job_type", "Inspection Base", base_rate=250),
    PricingRule("material_asphalt_shingle", "material", "Asphalt Shingle", multiplier=1.0),
    PricingRule("material_metal", "material", "Metal Roofing", multiplier=2.2),
    PricingRule("material_tile", "material", "Tile Roofing", multiplier=2.5),
    PricingRule("pitch_flat", "pitch", "Flat Pitch", multiplier=0.9),
    PricingRule("pitch_steep", "pitch", "Steep Pitch", multiplier=1.25),
    PricingRule("story_2", "stories", "2 Stories", multiplier=1.15),
    PricingRule("story_3", "stories", "3+ Stories", multiplier=1.35),
    PricingRule("urgency_emergency", "urgency", "Emergency", multiplier=1.5),
    PricingRule("urgency_asap", "urgency", "ASAP", multiplier=1.2),
    PricingRule("feature_skylights", "feature", "Skylights", flat_fee=350),
    PricingRule("feature_chimneys", "feature", "Chimneys", flat_fee=450),
    PricingRule("feature_solar", "feature", "Solar Panels", flat_fee=1500),
    PricingRule("issue_leaks", "issue", "Active Leaks", flat_fee=500),
    PricingRule("issue_missing_shingles", "issue", "Missing Shingles", flat_fee=150),
    PricingRule("issue_storm_damage", "issue", "Storm Damage", flat_fee=750),
    PricingRule("range_low", "range", "Low Estimate", multiplier=0.85),
    PricingRule("range_high", "range", "High Estimate", multiplier=1.25),
    PricingRule("min_replacement", "minimum", "Minimum Replacement", min_charge=3500),
    PricingRule("min_repair", "minimum", "Minimum Repair", min_charge=350),
)


@dataclass
class PricingAdjustment:
    name: str
    rule_key: str
    impact: float
    description: str
    category: str

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "rule_key": self.rule_key,
            "impact": self.impact,
            "description": self.description,
            "category": self.category,
        }


@dataclass
class QuickEstimate:
    price_low: float
    price_likely: float
    price_high: float
    base_cost: float
    material_cost: float
    labor_cost: float
    adjustments: List[PricingAdjustment] = field(default_factory=list)
    variables: RoofVariables = field(default_factory=RoofVariables)
    takeoff: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "price_low": self.price_low,
            "price_likely": self.price_likely,
            "price_high": self.price_high,
            "base_cost": self.base_cost,
            "material_cost": self.material_cost,
            "labor_cost": self.labor_cost,
            "adjustments": [a.to_dict() for a in self.adjustments],
            "variables": self.variables.to_dict(),
            "takeoff": dict(self.takeoff),
        }


def _percent_change(multiplier: float) -> str:
    return f"{multiplier * 100 - 100:.0f}%"


class QuickEstimator:
    """Prices intake answers against a set of pricing rules; inactive rules are ignored"""

    def __init__(self, rules: Optional[Iterable[PricingRule]] = None):
        active = [r for r in (DEFAULT_PRICING_RULES if rules is None else rules) if r.is_active]
        self.rules = {rule.rule_key: rule for rule in active}

    def rule(self, key: str) -> Optional[PricingRule]:
        return self.rules.get(key)

    def base_cost(self, job_type: str, roof_sqft: float) -> Optional[PricingAdjustment]:
        key = "base_replacement" if job_type == "full_replacement" else f"base_{job_type}"
        rule = self.rule(key) or self.rule("base_repair")
        if rule is None:
            return None

        if rule.unit == "sqft":
            cost = rule.base_rate * roof_sqft
        elif rule.unit == "linear_ft":
            # perimeter of a square footprint
            cost = rule.base_rate * math.sqrt(roof_sqft) * 4
        else:
            cost = rule.base_rate or rule.flat_fee

        return PricingAdjustment(
            name=rule.display_name,
            rule_key=rule.rule_key,
            impact=cost,
            description=f"Base {job_type.replace('_', ' ')} rate",
            category="base",
        )

    def multiplier_adjustments(self, intake: Dict) -> List[PricingAdjustment]:
        """Material, pitch, story and urgency multipliers that differ from 1"""
        candidates = []
        if intake.get("roof_material"):
            candidates.append(("material", f"material_{intake['roof_material']}", ""))
        if intake.get("roof_pitch"):
            candidates.append(("pitch", f"pitch_{intake['roof_pitch']}", ""))
        stories = intake.get("stories") or 1
        if stories > 1:
            candidates.append(("stories", f"story_{min(stories, 3)}", f"for {stories} stories"))
        if intake.get("timeline_urgency"):
            candidates.append(("urgency", f"urgency_{intake['timeline_urgency']}", ""))

        adjustments = []
        for category, key, suffix in candidates:
            rule = self.rule(key)
            if rule is None or rule.multiplier == 1:
                continue

            if category == "urgency":
                if rule.multiplier > 1:
                    description = f"{_percent_change(rule.multiplier)} urgency premium"
                else:
                    description = f"{100 - rule.multiplier * 100:.0f}% flexible scheduling discount"
            else:
                target = suffix or f"for {rule.display_name.lower()}"
                description = f"{_percent_change(rule.multiplier)} {target}"

            adjustments.append(PricingAdjustment(
                name=rule.display_name,
                rule_key=rule.rule_key,
                impact=0.0,
                description=description,
                category=category,
            ))
        return adjustments

    def fee_adjustments(self, intake: Dict) -> List[PricingAdjustment]:
        adjustments = []
        for flag, key, description in FEATURE_RULES:
            rule = self.rule(key)
            if intake.get(flag) and rule and rule.flat_fee:
                adjustments.append(PricingAdjustment(
                    rule.display_name, rule.rule_key, rule.flat_fee, description, "feature",
                ))

        for issue in intake.get("issues") or []:
            rule = self.rule(f"issue_{issue}")
            if rule and rule.flat_fee:
                adjustments.append(PricingAdjustment(
                    rule.display_name, rule.rule_key, rule.flat_fee,
                    f"Repair for {rule.display_name.lower()}", "issue",
                ))
        return adjustments

    def estimate(self, intake: Dict) -> QuickEstimate:
        """
        Price a lead's intake answers

        The base cost is scaled by every applicable multiplier, flat fees are
        added on top, and the total is raised to the job type's minimum charge.
        Multiplier adjustments report their impact against the unmultiplied
        base; adjustments with no impact are left out.
        """
        job_type = intake.get("job_type") or "repair"
        roof_sqft = intake.get("roof_size_sqft") or DEFAULT_ROOF_SQFT

        adjustments = []
        base = self.base_cost(job_type, roof_sqft)
        base_cost = base.impact if base else 0.0
        if base:
            adjustments.append(base)

        multipliers = self.multiplier_adjustments(intake)
        total_multiplier = 1.0
        for adjustment in multipliers:
            rule = self.rules[adjustment.rule_key]
            total_multiplier *= rule.multiplier
            adjustment.impact = round_money(base_cost * (rule.multiplier - 1))
        adjustments.extend(multipliers)

        fees = self.fee_adjustments(intake)
        adjustments.extend(fees)

        likely = base_cost * total_multiplier + sum(a.impact for a in fees)

        minimum = self.rule("min_replacement" if job_type == "full_replacement" else "min_repair")
        min_charge = minimum.min_charge if minimum and minimum.min_charge else DEFAULT_MIN_CHARGE
        if likely < min_charge:
            logger.debug("Quick estimate %.2f raised to minimum charge %.2f", likely, min_charge)
            likely = min_charge

        low_rule = self.rule("range_low")
        high_rule = self.rule("range_high")
        low = low_rule.multiplier if low_rule and low_rule.multiplier else DEFAULT_RANGE_LOW
        high = high_rule.multiplier if high_rule and high_rule.multiplier else DEFAULT_RANGE_HIGH

        variables = variables_from_intake(intake)

        return QuickEstimate(
            price_low=round_half_up(likely * low),
            price_likely=round_half_up(likely),
            price_high=round_half_up(likely * high),
            base_cost=round_half_up(base_cost),
            material_cost=round_half_up(likely * MATERIAL_SHARE),
            labor_cost=round_half_up(likely * LABOR_SHARE),
            adjustments=[a for a in adjustments if a.impact != 0],
            variables=variables,
            takeoff=quick_takeoff(variables),
        )


def quick_takeoff(variables: RoofVariables) -> Dict[str, float]:
    """Rough material quantities (waste included) from the common formulas"""
    takeoff = {}
    for name, waste_factor in QUICK_TAKEOFF.items():
        result = calculate_quantity_with_waste(COMMON_FORMULAS[name], variables, waste_factor)
        takeoff[name] = round_money(result.quantity_with_waste)
    return takeoff


def quick_estimate(intake: Dict, rules: Optional[Iterable[PricingRule]] = None) -> QuickEstimate:
    return QuickEstimator(rules).estimate(intake)
