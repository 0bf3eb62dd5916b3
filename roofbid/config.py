"""
Application settings loaded from the environment (and an optional .env file)
"""

import logging
import os
from dataclasses import dataclass, asdict
from typing import Dict

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_CATALOG_PATH = os.path.join(BASE_DIR, "data", "catalog.json")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class Settings:
    """Runtime configuration for the API and the store"""
    db_path: str = "roofbid.db"
    catalog_path: str = DEFAULT_CATALOG_PATH
    secret_key: str = "roofbid-dev-secret-key"
    log_level: str = "INFO"
    default_overhead_percent: float = 10.0
    default_profit_percent: float = 15.0
    default_tax_percent: float = 0.0
    estimate_valid_days: int = 30
    company_name: str = "RoofBid Roofing"
    company_email: str = "estimates@example.com"
    company_phone: str = "N/A"

    def to_flask_config(self) -> Dict:
        return {f"ROOFBID_{key.upper()}": value for key, value in asdict(self).items()}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """
    Build settings from ROOFBID_* environment variables
    """
    return Settings(
        db_path=os.environ.get("ROOFBID_DB_PATH", "roofbid.db"),
        catalog_path=os.environ.get("ROOFBID_CATALOG_PATH", DEFAULT_CATALOG_PATH),
        secret_key=os.environ.get("ROOFBID_SECRET_KEY", "roofbid-dev-secret-key"),
        log_level=os.environ.get("ROOFBID_LOG_LEVEL", "INFO"),
        default_overhead_percent=_env_float("ROOFBID_DEFAULT_OVERHEAD_PERCENT", 10.0),
        default_profit_percent=_env_float("ROOFBID_DEFAULT_PROFIT_PERCENT", 15.0),
        default_tax_percent=_env_float("ROOFBID_DEFAULT_TAX_PERCENT", 0.0),
        estimate_valid_days=int(_env_float("ROOFBID_ESTIMATE_VALID_DAYS", 30)),
        company_name=os.environ.get("ROOFBID_COMPANY_NAME", "RoofBid Roofing"),
        company_email=os.environ.get("ROOFBID_COMPANY_EMAIL", "estimates@example.com"),
        company_phone=os.environ.get("ROOFBID_COMPANY_PHONE", "N/A"),
    )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
