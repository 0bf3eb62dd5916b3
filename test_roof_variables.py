"""
Tests for roof variable models and geometry helpers
"""

import pytest

from roofbid.models.roof_variables import (
    RoofVariables, SlopeVariables, format_variables_for_display, pitch_category,
    pitch_multiplier, sqft_to_squares, sqft_with_pitch, squares_to_sqft, validate_variables,
    variables_from_dimensions, variables_from_intake,
)


@pytest.mark.parametrize("pitch, expected", [
    (0, 1.0), (2, 1.014), (3, 1.031), (5, 1.083), (6, 1.118),
    (8, 1.202), (9, 1.250), (12, 1.414),
])
def test_pitch_multiplier_table(pitch, expected):
    assert pitch_multiplier(pitch) == expected


def test_pitch_multiplier_interpolates_and_clamps():
    assert pitch_multiplier(5.5) == pytest.approx((1.083 + 1.118) / 2)
    assert pitch_multiplier(-1) == 1.0
    assert pitch_multiplier(24) == 1.803


@pytest.mark.parametrize("pitch, category", [
    (0, "flat"), (1, "low"), (3, "low"), (4, "standard"), (6, "standard"),
    (7, "steep"), (9, "steep"), (10, "very_steep"), (14, "very_steep"),
])
def test_pitch_category(pitch, category):
    assert pitch_category(pitch) == category


def test_round_trip_through_dict(variables):
    data = variables.to_dict()
    assert data["SQ"] == 20
    assert data["slopes"]["F1"]["PITCH"] == 6

    restored = RoofVariables.from_dict(data)
    assert restored == variables


def test_from_dict_fills_missing_with_zero():
    roof = RoofVariables.from_dict({"SQ": 18.5, "slopes": {"f1": {"SQ": 9}}})
    assert roof.SQ == 18.5
    assert roof.VAL == 0
    assert roof.slopes["F1"].SQ == 9
    assert roof.slopes["F1"].PITCH == 0


def test_formula_values_include_slope_names(variables):
    values = variables.as_formula_values()
    assert values["F1SQ"] == 10
    assert values["F2RIDGE"] == 40
    assert values["SQ"] == 20


def test_variables_from_dimensions():
    roof = variables_from_dimensions(50, 30, 6)

    assert roof.SF == 1677
    assert roof.SQ == pytest.approx(16.77)
    assert roof.P == 160
    assert roof.EAVE == 100
    assert roof.R == 50
    assert roof.RAKE == 60
    assert roof.GUTTER_LF == 100
    assert roof.PIPE_COUNT == 2
    assert set(roof.slopes) == {"F1", "F2"}
    assert roof.slopes["F1"].EAVE == 50
    assert roof.slopes["F1"].PITCH == 6


def test_variables_from_dimensions_flat_roof():
    roof = variables_from_dimensions(40, 25, 0, gutter_lf=30, downspouts=1)
    assert roof.SF == 1000
    assert roof.SQ == 10
    assert roof.GUTTER_LF == 30
    assert roof.DS_COUNT == 1


def test_variables_from_intake():
    roof = variables_from_intake({
        "roof_size_sqft": 2500,
        "roof_pitch": "steep",
        "stories": 2,
        "has_skylights": True,
    })
    assert roof.SQ == pytest.approx(30.05)
    assert roof.SKYLIGHT_COUNT == 1
    assert roof.CHIMNEY_COUNT == 0
    assert roof.PIPE_COUNT == 4
    assert roof.VENT_COUNT == 5
    assert roof.DS_COUNT == 3


def test_validate_variables_rejects_negative_lengths():
    roof = RoofVariables(SQ=20, SF=2000, P=180, EAVE=-5,
                         slopes={"F1": SlopeVariables(SQ=-1)})
    errors, _ = validate_variables(roof)
    assert "EAVE cannot be negative" in errors
    assert "F1SQ cannot be negative" in errors


def test_validate_variables_warnings():
    errors, warnings = validate_variables(RoofVariables(SQ=3, SF=900, P=120))
    assert errors == []
    assert "Very small roof (<5 squares)" in warnings
    assert "SF and SQ values are inconsistent" in warnings


def test_sample_roof_is_clean(variables):
    errors, warnings = validate_variables(variables)
    assert errors == []
    assert warnings == []


def test_display_formatting(variables):
    display = format_variables_for_display(variables)
    assert display["Total Squares"] == "20.00 SQ"
    assert display["Square Feet"] == "2,000 SF"
    assert display["Pipe Boots"] == "3"
    assert sqft_to_squares(2550) == 25.5


def test_area_conversions():
    assert squares_to_sqft(25.5) == 2550
    assert sqft_with_pitch(50, 30, 0) == 1500
    assert sqft_with_pitch(50, 30, 12) == pytest.approx(2121)
