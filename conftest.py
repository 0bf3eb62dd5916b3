"""
Shared fixtures: a small pricing catalog, a sample roof, a temporary store and a Flask client
"""

import json

import pytest

from roofbid.config import Settings
from roofbid.models.catalog import CatalogSnapshot
from roofbid.models.roof_variables import RoofVariables, SlopeVariables
from roofbid.storage import EstimateStore


def create_sample_catalog_data():
    """Catalog with round numbers so expected totals can be worked out by hand"""
    return {
        "version": "test-1",
        "line_items": [
            {
                "id": "li-shingles", "item_code": "SHNG", "name": "Architectural shingles",
                "category": "shingles", "unit_type": "SQ", "quantity_formula": "SQ",
                "default_waste_factor": 1.1, "base_material_cost": 100, "base_labor_cost": 50,
                "base_equipment_cost": 0, "is_taxable": True, "sort_order": 10,
            },
            {
                "id": "li-drip", "item_code": "DRIP", "name": "Drip edge",
                "category": "flashing", "unit_type": "LF", "quantity_formula": "EAVE+RAKE",
                "default_waste_factor": 1.0, "base_material_cost": 2, "base_labor_cost": 1,
                "is_taxable": True, "sort_order": 20,
            },
            {
                "id": "li-disposal", "item_code": "DISP", "name": "Dumpster",
                "category": "disposal", "unit_type": "SQ", "quantity_formula": "SQ",
                "base_equipment_cost": 20, "is_taxable": False, "sort_order": 30,
            },
            {
                "id": "li-gutters", "item_code": "GTR", "name": "Seamless gutters",
                "category": "gutters", "unit_type": "LF", "quantity_formula": "GUTTER_LF",
                "base_material_cost": 4, "base_labor_cost": 3, "is_taxable": True, "sort_order": 40,
            },
        ],
        "macros": [
            {
                "id": "standard",
                "name": "Standard Replacement",
                "roof_type": "asphalt_shingle",
                "line_items": [
                    {"line_item_id": "li-gutters", "group_name": "Gutters",
                     "is_optional": True, "is_selected_by_default": False},
                    {"line_item_id": "li-disposal", "group_name": "Disposal"},
                    {"line_item_id": "li-shingles", "group_name": "Roofing"},
                    {"line_item_id": "li-drip", "group_name": "Roofing"},
                ],
            },
        ],
        "geographic_pricing": [
            {
                "id": "geo-high", "name": "High cost metro", "state": "CO",
                "zip_codes": ["80202"],
                "material_multiplier": 1.1, "labor_multiplier": 1.2, "equipment_multiplier": 1.0,
            },
        ],
    }


def create_sample_variables():
    return RoofVariables(
        SQ=20, SF=2000, P=180, EAVE=100, R=40, RAKE=60, GUTTER_LF=100,
        PIPE_COUNT=3, DS_COUNT=4,
        slopes={
            "F1": SlopeVariables(SQ=10, SF=1000, PITCH=6, EAVE=50, RIDGE=40, RAKE=30),
            "F2": SlopeVariables(SQ=10, SF=1000, PITCH=6, EAVE=50, RIDGE=40, RAKE=30),
        },
    )


@pytest.fixture
def catalog_data():
    return create_sample_catalog_data()


@pytest.fixture
def catalog(catalog_data):
    return CatalogSnapshot.from_dict(catalog_data)


@pytest.fixture
def variables():
    return create_sample_variables()


@pytest.fixture
def store(tmp_path):
    return EstimateStore(str(tmp_path / "roofbid_test.db"))


@pytest.fixture
def settings(tmp_path, catalog_data):
    catalog_path = tmp_path / "catalog.json"
    catalog_path.write_text(json.dumps(catalog_data), encoding="utf-8")
    return Settings(
        db_path=str(tmp_path / "roofbid_api.db"),
        catalog_path=str(catalog_path),
        company_name="Test Roofing Co",
    )


@pytest.fixture
def client(settings):
    from roofbid.app import app, configure_app

    configure_app(settings)
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client
