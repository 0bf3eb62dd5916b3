"""
API tests for the Flask estimation service
"""

from dataclasses import replace

import pytest

from conftest import create_sample_variables


def apply_body(**overrides):
    body = {
        "lead_id": "lead-1",
        "variables": create_sample_variables().to_dict(),
    }
    body.update(overrides)
    return body


def create_estimate(client, **overrides):
    response = client.post("/api/macros/standard/apply", json=apply_body(**overrides))
    assert response.status_code == 201
    return response.get_json()["estimate"]


def accept(client, estimate_id, lead_id="lead-1"):
    return client.post(f"/api/leads/{lead_id}/estimate/accept", json={
        "estimate_id": estimate_id,
        "accepted_by_name": "Pat Homeowner",
        "signature": "data:image/png;base64,AAAA",
    })


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["catalog_version"] == "test-1"


def test_list_macros_with_usage(client):
    data = client.get("/api/macros").get_json()
    assert data["count"] == 1
    assert data["macros"][0]["usage_count"] == 0

    create_estimate(client)
    data = client.get("/api/macros").get_json()
    assert data["macros"][0]["id"] == "standard"
    assert data["macros"][0]["usage_count"] == 1


def test_apply_macro_saves_draft(client):
    response = client.post("/api/macros/standard/apply", json=apply_body(name="Main house"))
    assert response.status_code == 201
    data = response.get_json()

    estimate = data["estimate"]
    assert data["success"] is True
    assert estimate["id"]
    assert estimate["status"] == "draft"
    assert estimate["name"] == "Main house"
    assert estimate["price_likely"] == pytest.approx(5287.7)
    assert data["summary"]["included_items_count"] == 3
    assert data["groups"]["Roofing"] == ["li-shingles", "li-drip"]

    saved = client.get(f"/api/estimates/{estimate['id']}").get_json()
    assert saved["estimate"]["subtotal"] == 4180


def test_apply_with_zip_code_picks_region(client):
    estimate = create_estimate(client, zip_code="80202")
    assert estimate["geographic_pricing_id"] == "geo-high"
    assert estimate["total_material"] == pytest.approx(2772)


def test_preview_does_not_persist(client):
    body = apply_body(tax_percent=8)
    del body["lead_id"]

    response = client.post("/api/macros/standard/preview", json=body)
    assert response.status_code == 200
    data = response.get_json()
    assert data["estimate"]["id"] is None
    assert data["estimate"]["tax_amount"] == pytest.approx(302.4)

    macros = client.get("/api/macros").get_json()["macros"]
    assert macros[0]["usage_count"] == 0


def test_apply_rejects_bad_body(client):
    response = client.post("/api/macros/standard/apply", json=apply_body(overhead_percent=60))
    assert response.status_code == 400
    assert "overhead_percent must be between 0 and 50" in response.get_json()["details"]["errors"]

    response = client.post("/api/macros/standard/apply", json={"variables": {"SQ": "twenty"}})
    errors = response.get_json()["details"]["errors"]
    assert "Missing required field: lead_id" in errors
    assert "variables.SQ must be a number" in errors


def test_apply_rejects_negative_measurements(client):
    variables = create_sample_variables().to_dict()
    variables["EAVE"] = -10
    response = client.post("/api/macros/standard/apply", json=apply_body(variables=variables))
    assert response.status_code == 400
    assert "EAVE cannot be negative" in response.get_json()["details"]["errors"]


def test_unknown_macro(client):
    response = client.post("/api/macros/missing/apply", json=apply_body())
    assert response.status_code == 404
    assert "missing" in response.get_json()["error"]


def test_unknown_estimate(client):
    assert client.get("/api/estimates/nope").status_code == 404


def test_toggle_optional_lines(client):
    estimate = create_estimate(client)

    response = client.patch(f"/api/estimates/{estimate['id']}", json={"selections": {"li-gutters": True}})
    assert response.status_code == 200
    assert response.get_json()["estimate"]["subtotal"] == 4880

    saved = client.get(f"/api/estimates/{estimate['id']}").get_json()
    assert saved["estimate"]["subtotal"] == 4880

    bad = client.patch(f"/api/estimates/{estimate['id']}", json={"selections": {"li-gutters": "yes"}})
    assert bad.status_code == 400


def test_estimate_pdf(client):
    estimate = create_estimate(client)

    response = client.get(f"/api/estimates/{estimate['id']}/pdf")
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.data.startswith(b"%PDF")
    assert "attachment" in response.headers["Content-Disposition"]


def test_estimate_tiers(client):
    estimate = create_estimate(client)

    response = client.get(f"/api/estimates/{estimate['id']}/tiers?recommended=best")
    tiers = response.get_json()["tiers"]
    assert [t["level"] for t in tiers] == ["good", "better", "best"]
    assert tiers[2]["is_recommended"]
    assert all(t["monthly_payment"] > 0 for t in tiers)

    bad = client.get(f"/api/estimates/{estimate['id']}/tiers?recommended=platinum")
    assert bad.status_code == 400


def test_accept_then_reject_conflicts(client):
    estimate = create_estimate(client)

    response = accept(client, estimate["id"])
    assert response.status_code == 200
    data = response.get_json()
    assert data["estimate"]["status"] == "accepted"
    assert data["estimate"]["responded_by"] == "Pat Homeowner"
    assert data["job"]["contract_amount"] == pytest.approx(5287.7)
    assert data["job"]["status"] == "pending_start"

    rejected = client.post("/api/leads/lead-1/estimate/reject",
                           json={"estimate_id": estimate["id"], "reason": "Changed my mind"})
    assert rejected.status_code == 409

    locked = client.patch(f"/api/estimates/{estimate['id']}", json={"selections": {"li-gutters": True}})
    assert locked.status_code == 409


def test_accept_defaults_to_latest_estimate(client):
    create_estimate(client)
    latest = create_estimate(client, name="Revised")

    response = client.post("/api/leads/lead-1/estimate/accept", json={})
    assert response.get_json()["estimate"]["id"] == latest["id"]


def test_accept_other_leads_estimate(client):
    estimate = create_estimate(client)
    assert accept(client, estimate["id"], lead_id="lead-2").status_code == 404
    assert client.post("/api/leads/lead-9/estimate/reject", json={}).status_code == 404


def test_validate_formula(client):
    data = client.post("/api/formulas/validate", json={"formula": "SQ*1.1"}).get_json()
    assert data["valid"] is True
    assert data["variables"] == ["SQ"]
    assert data["formatted"] == "SQ × 1.1"

    data = client.post("/api/formulas/validate", json={"formula": "SQ*(1.1"}).get_json()
    assert data["valid"] is False
    assert data["error"]


def test_evaluate_formula(client):
    response = client.post("/api/formulas/evaluate", json={
        "formula": "EAVE+RAKE",
        "variables": {"EAVE": 100, "RAKE": 60},
        "waste_factor": 1.1,
    })
    data = response.get_json()
    assert data["quantity"] == 160
    assert data["quantity_with_waste"] == 176

    slope = client.post("/api/formulas/evaluate", json={
        "formula": "F1SQ+F2SQ",
        "variables": create_sample_variables().to_dict(),
    }).get_json()
    assert slope["quantity"] == 20
    assert slope["waste_factor"] == 1.0


def test_evaluate_bad_formula(client):
    response = client.post("/api/formulas/evaluate", json={"formula": "SQ/0", "variables": {"SQ": 20}})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Division by zero"

    response = client.post("/api/formulas/evaluate", json={"formula": "BOGUS*2", "variables": {}})
    assert response.status_code == 400


def test_variables_from_dimensions(client):
    response = client.post("/api/variables/from-dimensions",
                           json={"length_ft": 50, "width_ft": 30, "pitch": 6, "skylights": 1})
    data = response.get_json()
    assert data["variables"]["SF"] == 1677
    assert data["variables"]["SKYLIGHT_COUNT"] == 1
    assert data["errors"] == []
    assert data["display"]["Square Feet"] == "1,677 SF"

    missing = client.post("/api/variables/from-dimensions", json={"length_ft": 50})
    assert missing.status_code == 400


def test_merge_photo_measurements(client):
    response = client.post("/api/photo-measurements/merge", json={"results": [
        {"success": True, "confidence": 0.9, "estimatedTotalSqFt": 2500, "detectedPitch": 6},
        {"success": True, "confidence": 0.6, "estimatedTotalSqFt": 2000, "detectedPitch": 4},
        {"success": False, "limitationsWarning": "Photo too blurry"},
    ]})
    assert response.status_code == 200
    measurement = response.get_json()["measurement"]
    assert measurement["estimatedTotalSqFt"] == 2300
    assert measurement["detectedPitch"] == 5


def test_merge_without_usable_results(client):
    response = client.post("/api/photo-measurements/merge", json={"results": [{"success": False}]})
    assert response.status_code == 400
    assert response.get_json()["error"] == "No usable photo measurements"

    assert client.post("/api/photo-measurements/merge", json={"results": "nope"}).status_code == 400


def test_billing_schedule_workflow(client):
    estimate = create_estimate(client)
    job = accept(client, estimate["id"]).get_json()["job"]
    job_id = job["id"]

    schedule = client.get(f"/api/jobs/{job_id}/billing-schedule").get_json()
    assert schedule["milestones"] == []
    assert len(schedule["templates"]) >= 1

    response = client.post(f"/api/jobs/{job_id}/billing-schedule",
                           json={"template_name": "Standard (30/50/20)", "contract_amount": 10000})
    assert response.status_code == 201
    assert [m["amount"] for m in response.get_json()["milestones"]] == [3000, 5000, 2000]

    schedule = client.get(f"/api/jobs/{job_id}/billing-schedule").get_json()
    assert schedule["total_percentage"] == 100

    moved = client.patch(f"/api/jobs/{job_id}/status", json={"status": "materials_ordered"})
    assert moved.status_code == 200
    data = moved.get_json()
    assert data["job"]["status"] == "materials_ordered"
    assert [i["total"] for i in data["invoices"]] == [3000]

    recalculated = client.put(f"/api/jobs/{job_id}/billing-schedule", json={"contract_amount": 12000})
    assert [m["amount"] for m in recalculated.get_json()["milestones"]] == [3000, 6000, 2400]


def test_billing_schedule_uses_job_contract(client):
    estimate = create_estimate(client)
    job = accept(client, estimate["id"]).get_json()["job"]

    response = client.post(f"/api/jobs/{job['id']}/billing-schedule", json={"milestones": [
        {"milestone_name": "Deposit", "percentage": 50, "trigger_status": "scheduled"},
        {"milestone_name": "Balance", "percentage": 50, "trigger_status": "completed"},
    ]})
    amounts = [m["amount"] for m in response.get_json()["milestones"]]
    assert sum(amounts) == pytest.approx(5287.7)


def test_billing_errors(client):
    estimate = create_estimate(client)
    job_id = accept(client, estimate["id"]).get_json()["job"]["id"]

    assert client.post(f"/api/jobs/{job_id}/billing-schedule", json={}).status_code == 400
    assert client.post(f"/api/jobs/{job_id}/billing-schedule",
                       json={"template_name": "Weekly"}).status_code == 404
    assert client.put(f"/api/jobs/{job_id}/billing-schedule",
                      json={"contract_amount": 9000}).status_code == 400
    assert client.get("/api/jobs/nope/billing-schedule").status_code == 404

    invalid = client.patch(f"/api/jobs/{job_id}/status", json={"status": "completed"})
    assert invalid.status_code == 400
    assert invalid.get_json()["error"] == "Invalid status transition"

    unknown = client.patch(f"/api/jobs/{job_id}/status", json={"status": "dancing"})
    assert unknown.status_code == 400


def test_preview_rejects_non_finite_numbers(client):
    response = client.post("/api/macros/standard/preview",
                           data='{"variables": {"SQ": NaN, "SF": 2000}}',
                           content_type="application/json")
    assert response.status_code == 400
    assert "variables.SQ must be a number" in response.get_json()["details"]["errors"]

    response = client.post("/api/variables/from-dimensions",
                           data='{"length_ft": Infinity, "width_ft": 30, "pitch": 6}',
                           content_type="application/json")
    assert response.status_code == 400


def test_merge_rejects_malformed_analyses(client):
    response = client.post("/api/photo-measurements/merge", json={"results": [
        {"success": True, "confidence": "high", "estimatedTotalSqFt": 2500},
        {"success": True, "confidence": 0.6, "detectedFeatures": [{"count": 2}]},
    ]})
    assert response.status_code == 400
    errors = response.get_json()["details"]["errors"]
    assert "results[0].confidence must be a number" in errors
    assert "results[1].detectedFeatures[0].type is required" in errors

    response = client.post("/api/photo-measurements/merge",
                           data='{"results": [{"success": true, "estimatedTotalSqFt": NaN}]}',
                           content_type="application/json")
    assert response.status_code == 400


def test_merge_ignores_shape_of_failed_analyses(client):
    response = client.post("/api/photo-measurements/merge", json={"results": [
        {"success": True, "confidence": 0.9, "estimatedTotalSqFt": 2500},
        {"success": False, "confidence": "unknown"},
    ]})
    assert response.status_code == 200
    assert response.get_json()["measurement"]["estimatedTotalSqFt"] == 2500


def test_quick_estimate(client):
    response = client.post("/api/estimates/quick", json={
        "job_type": "full_replacement",
        "roof_size_sqft": 2000,
        "roof_material": "metal",
        "stories": 2,
        "has_chimneys": True,
    })
    assert response.status_code == 200
    data = response.get_json()
    # 9000 x 2.2 x 1.15 + 450
    assert data["price_likely"] == 23220
    assert data["quote_range"] == "$19,737 - $29,025"
    assert data["variables"]["CHIMNEY_COUNT"] == 1
    assert data["takeoff"]["squares"] > 0

    assert client.post("/api/estimates/quick", json={}).get_json()["price_likely"] == 350


def test_quick_estimate_rejects_bad_intake(client):
    response = client.post("/api/estimates/quick", json={"stories": 1.5, "issues": "leaks"})
    assert response.status_code == 400
    errors = response.get_json()["details"]["errors"]
    assert "stories must be a whole number of at least 1" in errors
    assert "issues must be a list of strings" in errors


def test_list_formulas(client):
    data = client.get("/api/formulas").get_json()
    assert data["formulas"]["eave_and_rake"] == "EAVE+RAKE"
    assert data["categories"]["gutters"] == "GUTTER_LF"

    flashing = client.get("/api/formulas?category=flashing").get_json()
    assert flashing["formula"] == "EAVE+RAKE"
    assert flashing["formatted"] == "EAVE + RAKE"

    assert client.get("/api/formulas?category=paint").status_code == 404


def test_lapsed_estimates_expire(client, settings):
    from roofbid.app import configure_app

    configure_app(replace(settings, estimate_valid_days=-1))
    lapsed = create_estimate(client)
    configure_app(settings)
    current = create_estimate(client, name="Revised")

    data = client.get("/api/leads/lead-1/estimates").get_json()
    statuses = {e["id"]: e["status"] for e in data["estimates"]}
    assert data["count"] == 2
    assert statuses == {lapsed["id"]: "expired", current["id"]: "draft"}

    response = accept(client, lapsed["id"])
    assert response.status_code == 409
    assert response.get_json()["details"]["status"] == "expired"
    assert accept(client, current["id"]).status_code == 200
