"""
Tests for billing schedules, job status transitions and milestone auto-invoicing
"""

import pytest

from roofbid.billing import (
    BillingService, auto_invoice_notes, build_schedule, milestone_amount, recalculate_amounts,
)
from roofbid.errors import NotFoundError, ValidationError
from roofbid.models.billing import BILLING_TEMPLATES, JobStatus, can_transition, find_template
from roofbid.utils import BILLING_TRIGGER_STATUSES


@pytest.fixture
def job(store):
    return store.create_job("lead-1", 10000)


@pytest.fixture
def service(store):
    return BillingService(store)


def test_templates_are_available():
    names = [t.name for t in BILLING_TEMPLATES]
    assert "Standard (30/50/20)" in names
    for template in BILLING_TEMPLATES:
        assert template.total_percentage == 100

    with pytest.raises(NotFoundError) as exc:
        find_template("Monthly")
    assert "50/50" in exc.value.details["available"]


def test_milestone_amount_rounds_to_cents():
    assert milestone_amount(10000, 30) == 3000
    assert milestone_amount(12345.67, 30) == 3703.7
    assert milestone_amount(999.99, 33.333) == 333.33


def test_build_schedule_from_template_name():
    rows = build_schedule("job-1", 18500, "Standard (30/50/20)")

    assert [r.milestone_name for r in rows] == ["Deposit", "Progress Payment", "Final Payment"]
    assert [r.amount for r in rows] == [5550, 9250, 3700]
    assert [r.sort_order for r in rows] == [0, 1, 2]
    assert rows[0].trigger_status == JobStatus.MATERIALS_ORDERED
    assert all(r.invoice_id is None for r in rows)
    assert len({r.id for r in rows}) == 3


def test_custom_milestones_need_not_sum_to_100():
    rows = build_schedule("job-1", 10000, [
        {"milestone_name": "Deposit", "percentage": 40, "trigger_status": "scheduled"},
        {"milestone_name": "Balance", "percentage": 40, "trigger_status": "completed"},
    ])
    assert [r.amount for r in rows] == [4000, 4000]


@pytest.mark.parametrize("percentage", [0, -5, 120])
def test_percentage_bounds(percentage):
    with pytest.raises(ValidationError):
        build_schedule("job-1", 10000, [
            {"milestone_name": "Bad", "percentage": percentage, "trigger_status": "completed"},
        ])


def test_bad_trigger_status():
    with pytest.raises(ValidationError):
        build_schedule("job-1", 10000, [
            {"milestone_name": "Deposit", "percentage": 50, "trigger_status": "someday"},
        ])


def test_recalculate_amounts_skips_invoiced_rows():
    rows = build_schedule("job-1", 10000, "50/50")
    rows[0].invoice_id = "inv-1"

    recalculate_amounts(rows, 12000)
    assert rows[0].amount == 5000
    assert rows[1].amount == 6000
    assert rows[0].percentage == 50


def test_apply_template_persists(service, store, job):
    saved = service.apply_template(job.id, job.contract_amount, "Standard (30/50/20)")
    assert [m.amount for m in saved] == [3000, 5000, 2000]
    assert [m.milestone_name for m in store.billing_schedule(job.id)] == [
        "Deposit", "Progress Payment", "Final Payment",
    ]

    # Applying again replaces rather than appends
    service.apply_template(job.id, job.contract_amount, "50/50")
    assert len(store.billing_schedule(job.id)) == 2


def test_apply_template_unknown_job(service):
    with pytest.raises(NotFoundError):
        service.apply_template("missing", 10000, "50/50")


def test_recalculate_locks_invoiced_milestones(service, store, job):
    service.apply_template(job.id, 10000, "Standard (30/50/20)")
    service.handle_status_change(job.id, JobStatus.MATERIALS_ORDERED)

    milestones = service.recalculate(job.id, 20000)

    assert [m.amount for m in milestones] == [3000, 10000, 4000]
    assert milestones[0].is_invoiced
    assert store.get_job(job.id).contract_amount == 20000


def test_recalculate_without_schedule(service, job):
    with pytest.raises(ValidationError):
        service.recalculate(job.id, 20000)


def test_status_change_creates_one_invoice(service, store, job):
    service.apply_template(job.id, 10000, "Standard (30/50/20)")

    first = service.handle_status_change(job.id, "materials_ordered")
    second = service.handle_status_change(job.id, "materials_ordered")

    invoices = store.list_invoices(job.id)
    assert len(invoices) == 1
    assert len(first) == 1
    assert second == []

    invoice = invoices[0]
    assert invoice.total == 3000
    assert invoice.balance_due == 3000
    assert invoice.payment_type == "progress"
    assert invoice.status == "draft"
    assert invoice.notes == auto_invoice_notes("Deposit")
    assert invoice.lead_id == "lead-1"

    deposit = store.billing_schedule(job.id)[0]
    assert deposit.invoice_id == invoice.id


def test_existing_invoice_is_linked_not_duplicated(service, store, job):
    service.apply_template(job.id, 10000, "Standard (30/50/20)")
    existing = store.create_invoice(job.id, "lead-1", 3000, "Deposit - auto-generated from billing schedule")

    linked = service.handle_status_change(job.id, JobStatus.MATERIALS_ORDERED)

    assert [i.id for i in linked] == [existing.id]
    assert len(store.list_invoices(job.id)) == 1
    assert store.billing_schedule(job.id)[0].invoice_id == existing.id


def test_similarly_named_invoice_is_not_linked(service, store, job):
    service.apply_template(job.id, 10000, [
        {"milestone_name": "Deposit", "percentage": 40, "trigger_status": "materials_ordered"},
        {"milestone_name": "Deposit Extra", "percentage": 60, "trigger_status": "completed"},
    ])
    other = store.create_invoice(job.id, "lead-1", 6000, auto_invoice_notes("Deposit Extra"))

    linked = service.handle_status_change(job.id, JobStatus.MATERIALS_ORDERED)

    assert len(linked) == 1
    assert linked[0].id != other.id
    assert linked[0].total == 4000
    assert len(store.list_invoices(job.id)) == 2


def test_non_matching_status_creates_nothing(service, store, job):
    service.apply_template(job.id, 10000, "Standard (30/50/20)")
    assert service.handle_status_change(job.id, JobStatus.SCHEDULED) == []
    assert store.list_invoices(job.id) == []


def test_transition_rules():
    assert can_transition(JobStatus.PENDING_START, JobStatus.MATERIALS_ORDERED)
    assert not can_transition(JobStatus.PENDING_START, JobStatus.COMPLETED)
    assert not can_transition(JobStatus.CLOSED, JobStatus.PENDING_START)


def test_invalid_transition_rejected(service, job):
    with pytest.raises(ValidationError) as exc:
        service.transition_job(job.id, "completed")
    assert "pending_start" in exc.value.details["message"]


def test_full_job_workflow_invoices_every_milestone(service, store, job):
    service.apply_template(job.id, 10000, "Standard (30/50/20)")

    result = service.transition_job(job.id, "materials_ordered")
    assert result["job"].status == JobStatus.MATERIALS_ORDERED
    assert [i.total for i in result["invoices"]] == [3000]

    service.transition_job(job.id, "scheduled")
    started = service.transition_job(job.id, "in_progress")["job"]
    assert started.actual_start is not None

    finished = service.transition_job(job.id, "completed")
    assert finished["job"].actual_end is not None
    assert [i.total for i in finished["invoices"]] == [2000]

    invoices = store.list_invoices(job.id)
    assert sum(i.total for i in invoices) == 10000
    assert all(m.is_invoiced for m in store.billing_schedule(job.id))

    warranty = service.transition_job(job.id, "warranty_active")["job"]
    assert warranty.warranty_start_date is not None


def test_trigger_statuses_follow_job_status():
    assert BILLING_TRIGGER_STATUSES == tuple(status.value for status in JobStatus)
    assert "warranty_active" in BILLING_TRIGGER_STATUSES
