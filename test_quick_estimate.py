"""
Tests for the rule-based quick estimate from intake answers
"""

import pytest

from roofbid.quick_estimate import DEFAULT_PRICING_RULES, PricingRule, QuickEstimator, quick_estimate


def full_intake(**overrides):
    intake = {
        "job_type": "full_replacement",
        "roof_size_sqft": 2000,
        "roof_material": "metal",
        "roof_pitch": "steep",
        "stories": 2,
        "timeline_urgency": "asap",
        "has_skylights": True,
        "issues": ["leaks"],
    }
    intake.update(overrides)
    return intake


def test_replacement_with_every_adjustment():
    result = quick_estimate(full_intake())

    # 4.5/sqft x 2000 x 2.2 x 1.25 x 1.15 x 1.2 + 350 + 500
    assert result.base_cost == 9000
    assert result.price_likely == 35005
    assert result.price_low == 29754
    assert result.price_high == 43756
    assert result.material_cost == 14002
    assert result.labor_cost == 21003

    impacts = {a.rule_key: a.impact for a in result.adjustments}
    assert impacts == {
        "base_replacement": 9000,
        "material_metal": 10800,
        "pitch_steep": 2250,
        "story_2": 1350,
        "urgency_asap": 1800,
        "feature_skylights": 350,
        "issue_leaks": 500,
    }

    descriptions = {a.rule_key: a.description for a in result.adjustments}
    assert descriptions["material_metal"] == "120% for metal roofing"
    assert descriptions["story_2"] == "15% for 2 stories"
    assert descriptions["urgency_asap"] == "20% urgency premium"


def test_empty_intake_is_a_repair_at_the_minimum():
    result = quick_estimate({})

    assert result.base_cost == 150
    assert result.price_likely == 350
    assert result.price_low == 298
    assert result.price_high == 438
    assert [a.rule_key for a in result.adjustments] == ["base_repair"]


def test_replacement_minimum_charge():
    result = quick_estimate({"job_type": "full_replacement", "roof_size_sqft": 300})
    assert result.base_cost == 1350
    assert result.price_likely == 3500


def test_neutral_and_unknown_rules_add_nothing():
    result = quick_estimate(full_intake(
        roof_material="asphalt_shingle", roof_pitch="medium", stories=1,
        timeline_urgency="flexible", has_skylights=False, issues=["hail"],
    ))

    assert result.price_likely == 9000
    assert [a.category for a in result.adjustments] == ["base"]


def test_stories_cap_at_three():
    result = quick_estimate(full_intake(stories=5, roof_material=None, roof_pitch=None,
                                        timeline_urgency=None, has_skylights=False, issues=[]))
    story = [a for a in result.adjustments if a.category == "stories"][0]
    assert story.rule_key == "story_3"
    assert story.description == "35% for 5 stories"


def test_flexible_discount_and_inactive_rules():
    rules = [r for r in DEFAULT_PRICING_RULES if r.rule_key not in ("feature_skylights", "issue_leaks")]
    rules.append(PricingRule("urgency_flexible", "urgency", "Flexible", multiplier=0.9))
    rules.append(PricingRule("issue_leaks", "issue", "Active Leaks", flat_fee=500, is_active=False))

    estimator = QuickEstimator(rules)
    result = estimator.estimate(full_intake(timeline_urgency="flexible", roof_material=None,
                                            roof_pitch=None, stories=1))

    assert estimator.rule("issue_leaks") is None
    urgency = [a for a in result.adjustments if a.category == "urgency"][0]
    assert urgency.description == "10% flexible scheduling discount"
    assert urgency.impact == pytest.approx(-900)
    assert result.price_likely == 8100


def test_linear_foot_base_rate():
    rules = [PricingRule("base_repair", "job_type", "Gutter Repair", base_rate=10, unit="linear_ft")]
    result = QuickEstimator(rules).estimate({"roof_size_sqft": 2500})

    # sqrt(2500) x 4 = 200 LF
    assert result.base_cost == 2000
    assert result.price_likely == 2000


def test_suggested_variables_and_takeoff():
    result = quick_estimate(full_intake(has_chimneys=True))

    assert result.variables.CHIMNEY_COUNT == 1
    assert result.variables.SKYLIGHT_COUNT == 1
    assert result.variables.PIPE_COUNT == 4
    assert result.takeoff["squares"] == pytest.approx(result.variables.SQ * 1.10, abs=0.01)
    assert result.takeoff["pipe_boots"] == 4
    assert set(result.to_dict()["takeoff"]) == {
        "squares", "eave_and_rake", "ridge_and_hip", "ice_and_water", "pipe_boots", "vents",
    }
