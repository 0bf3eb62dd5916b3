"""
Good / Better / Best pricing tiers built from a base price band
The base band is the "good" tier; upgrades scale it by a per-material multiplier
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from roofbid.errors import ValidationError
from roofbid.utils import round_half_up

TIER_LEVELS = ["good", "better", "best"]

WORKMANSHIP_YEARS = {"good": 5, "better": 7, "best": 10}


@dataclass(frozen=True)
class TierConfig:
    name: str
    description: str
    price_multiplier: float
    material_name: str
    material_description: str
    manufacturer_warranty: str
    features: tuple = ()


ASPHALT_TIERS = {
    "good": TierConfig(
        name="Essential",
        description="Quality protection at an affordable price",
        price_multiplier=1.0,
        material_name="3-Tab Shingles",
        material_description="Traditional 3-tab asphalt shingles - reliable and economical",
        manufacturer_warranty="25-Year Limited",
        features=("Standard 3-tab shingles", "Synthetic underlayment", "Basic ridge vent",
                  "5-year workmanship warranty"),
    ),
    "better": TierConfig(
        name="Premium",
        description="Enhanced durability and curb appeal",
        price_multiplier=1.15,
        material_name="Architectural Shingles",
        material_description="Dimensional shingles with improved aesthetics and durability",
        manufacturer_warranty="30-Year Limited Lifetime",
        features=("Architectural dimensional shingles", "Premium synthetic underlayment",
                  "Enhanced ridge ventilation", "Upgraded drip edge", "7-year workmanship warranty"),
    ),
    "best": TierConfig(
        name="Elite",
        description="Maximum protection and premium aesthetics",
        price_multiplier=1.35,
        material_name="Designer Shingles",
        material_description="High-definition designer shingles with superior performance",
        manufacturer_warranty="50-Year or Lifetime",
        features=("Designer high-definition shingles", "Ice & water shield at all valleys",
                  "Premium ventilation system", "Copper or aluminum drip edge",
                  "Starter strip protection", "10-year workmanship warranty", "Transferable warranty"),
    ),
}

METAL_TIERS = {
    "good": TierConfig(
        name="Essential",
        description="Quality metal roofing at a great value",
        price_multiplier=1.0,
        material_name="Corrugated Metal",
        material_description="Galvanized corrugated metal panels",
        manufacturer_warranty="25-Year Paint Warranty",
        features=("Corrugated metal panels", "Standard underlayment", "Basic trim package",
                  "5-year workmanship warranty"),
    ),
    "better": TierConfig(
        name="Premium",
        description="Standing seam for superior performance",
        price_multiplier=1.20,
        material_name="Standing Seam",
        material_description="Concealed fastener standing seam metal roofing",
        manufacturer_warranty="40-Year Warranty",
        features=("Standing seam panels", "High-temp synthetic underlayment", "Premium trim & flashing",
                  "Color-matched accessories", "7-year workmanship warranty"),
    ),
    "best": TierConfig(
        name="Elite",
        description="Premium metal with maximum longevity",
        price_multiplier=1.40,
        material_name="Premium Standing Seam",
        material_description="Kynar/PVDF coated premium standing seam",
        manufacturer_warranty="Lifetime Limited",
        features=("Kynar/PVDF coated panels", "Premium underlayment system", "Snow guards (if needed)",
                  "Custom fabricated trim", "Color-matched ventilation", "10-year workmanship warranty",
                  "Transferable warranty"),
    ),
}

DEFAULT_TIERS = {
    "good": TierConfig(
        name="Essential",
        description="Quality materials at an affordable price",
        price_multiplier=1.0,
        material_name="Standard Materials",
        material_description="Quality roofing materials from trusted manufacturers",
        manufacturer_warranty="25-Year Limited",
        features=("Standard roofing materials", "Synthetic underlayment", "Basic ventilation",
                  "5-year workmanship warranty"),
    ),
    "better": TierConfig(
        name="Premium",
        description="Enhanced quality and durability",
        price_multiplier=1.15,
        material_name="Premium Materials",
        material_description="Upgraded materials with enhanced performance",
        manufacturer_warranty="30-Year Limited Lifetime",
        features=("Premium roofing materials", "High-performance underlayment",
                  "Enhanced ventilation system", "Upgraded accessories", "7-year workmanship warranty"),
    ),
    "best": TierConfig(
        name="Elite",
        description="Top-tier materials and maximum protection",
        price_multiplier=1.35,
        material_name="Elite Materials",
        material_description="Best-in-class materials with superior performance",
        manufacturer_warranty="50-Year or Lifetime",
        features=("Premium designer materials", "Ice & water shield protection",
                  "Premium ventilation package", "All upgraded accessories",
                  "10-year workmanship warranty", "Transferable warranty"),
    ),
}


def tier_configs(material: Optional[str]) -> Dict[str, TierConfig]:
    if material == "asphalt_shingle":
        return ASPHALT_TIERS
    if material == "metal":
        return METAL_TIERS
    return DEFAULT_TIERS


@dataclass
class PricingTier:
    level: str
    name: str
    description: str
    price_multiplier: float
    price_low: float
    price_likely: float
    price_high: float
    material_name: str
    material_description: str
    manufacturer_warranty: str
    workmanship_warranty: str
    features: List[str] = field(default_factory=list)
    is_recommended: bool = False

    def to_dict(self) -> Dict:
        return {
            "level": self.level,
            "name": self.name,
            "description": self.description,
            "price_multiplier": self.price_multiplier,
            "price_low": self.price_low,
            "price_likely": self.price_likely,
            "price_high": self.price_high,
            "material": {
                "name": self.material_name,
                "warranty": self.manufacturer_warranty,
                "description": self.material_description,
            },
            "features": list(self.features),
            "warranty": {
                "workmanship": self.workmanship_warranty,
                "manufacturer": self.manufacturer_warranty,
            },
            "is_recommended": self.is_recommended,
        }


def calculate_pricing_tiers(price_low: float, price_likely: float, price_high: float,
                            material: Optional[str] = None,
                            recommended: str = "better") -> List[PricingTier]:
    """
    Build the three tiers; tier prices are whole dollars
    """
    if recommended not in TIER_LEVELS:
        raise ValidationError(f"Unknown tier: {recommended}")

    configs = tier_configs(material)
    tiers = []
    for level in TIER_LEVELS:
        config = configs[level]
        tiers.append(PricingTier(
            level=level,
            name=config.name,
            description=config.description,
            price_multiplier=config.price_multiplier,
            price_low=round_half_up(price_low * config.price_multiplier),
            price_likely=round_half_up(price_likely * config.price_multiplier),
            price_high=round_half_up(price_high * config.price_multiplier),
            material_name=config.material_name,
            material_description=config.material_description,
            manufacturer_warranty=config.manufacturer_warranty,
            workmanship_warranty=f"{WORKMANSHIP_YEARS[level]} Years",
            features=list(config.features),
            is_recommended=level == recommended,
        ))
    return tiers


def tier_price_difference(current: PricingTier, upgrade: PricingTier) -> str:
    diff = upgrade.price_likely - current.price_likely
    sign = "-" if diff < 0 else ""
    return f"{sign}${abs(diff):,.0f}"


def monthly_payment(price: float, term_months: int = 60, apr: float = 0.0699) -> float:
    """
    Fixed monthly payment for financing a tier, whole dollars
    """
    if term_months <= 0:
        raise ValidationError("term_months must be positive")
    if apr == 0:
        return round_half_up(price / term_months)

    monthly_rate = apr / 12
    growth = (1 + monthly_rate) ** term_months
    payment = price * monthly_rate * growth / (growth - 1)
    return round_half_up(payment)
