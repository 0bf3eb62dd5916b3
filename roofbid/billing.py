"""
Billing Schedule Generator
Turns a contract amount and a milestone template into billing milestones, keeps
their amounts in step with the contract, and invoices them as the job progresses
"""

import logging
import secrets
from typing import Dict, List, Union

from roofbid.errors import ValidationError
from roofbid.models.billing import (
    JOB_STATUS_TRANSITIONS, BillingMilestone, BillingSchedule, BillingTemplate,
    Invoice, Job, JobStatus, can_transition, find_template, parse_job_status,
)
from roofbid.storage import EstimateStore
from roofbid.utils import round_money

logger = logging.getLogger(__name__)

AUTO_INVOICE_SUFFIX = " - auto-generated from billing schedule"

TemplateInput = Union[BillingTemplate, str, List[Dict]]


def milestone_amount(contract_amount: float, percentage: float) -> float:
    """contract x percentage / 100, rounded half-up to cents"""
    return round_money(contract_amount * percentage / 100)


def resolve_milestones(template: TemplateInput) -> List[BillingMilestone]:
    """Accept a template, a template name, or a list of milestone dicts"""
    if isinstance(template, BillingTemplate):
        milestones = list(template.milestones)
    elif isinstance(template, str):
        milestones = list(find_template(template).milestones)
    elif isinstance(template, list):
        milestones = [m if isinstance(m, BillingMilestone) else BillingMilestone.from_dict(m)
                      for m in template]
    else:
        raise ValidationError("template must be a template name or a list of milestones")

    if not milestones:
        raise ValidationError("A billing schedule needs at least one milestone")
    for milestone in milestones:
        milestone.validate()
    return milestones


def build_schedule(job_id: str, contract_amount: float, template: TemplateInput) -> List[BillingSchedule]:
    """
    One un-invoiced schedule row per milestone, in template order
    Percentages are not required to sum to 100
    """
    if contract_amount is None or contract_amount < 0:
        raise ValidationError("contract_amount must be a non-negative number")

    milestones = resolve_milestones(template)
    total = sum(m.percentage for m in milestones)
    if abs(total - 100) > 0.01:
        logger.warning("Billing schedule for job %s covers %.2f%% of the contract", job_id, total)

    return [
        BillingSchedule(
            id=secrets.token_urlsafe(16),
            job_id=job_id,
            milestone_name=milestone.milestone_name,
            percentage=milestone.percentage,
            amount=milestone_amount(contract_amount, milestone.percentage),
            trigger_status=milestone.trigger_status,
            sort_order=index,
        )
        for index, milestone in enumerate(milestones)
    ]


def recalculate_amounts(rows: List[BillingSchedule], new_contract_amount: float) -> List[BillingSchedule]:
    """
    Recompute amounts for a new contract value
    Invoiced milestones are locked and keep their amount
    """
    if new_contract_amount is None or new_contract_amount < 0:
        raise ValidationError("contract_amount must be a non-negative number")

    for row in rows:
        if not row.is_invoiced:
            row.amount = milestone_amount(new_contract_amount, row.percentage)
    return rows


def auto_invoice_notes(milestone_name: str) -> str:
    return f"{milestone_name}{AUTO_INVOICE_SUFFIX}"


class BillingService:
    """Applies billing schedules to jobs and invoices milestones on status changes"""

    def __init__(self, store: EstimateStore):
        self.store = store

    def apply_template(self, job_id: str, contract_amount: float, template: TemplateInput) -> List[BillingSchedule]:
        """Replace the job's schedule with one built from the template"""
        self.store.get_job(job_id)
        rows = build_schedule(job_id, contract_amount, template)
        saved = self.store.replace_billing_schedule(job_id, rows)
        logger.info("Applied %d-milestone billing schedule to job %s", len(saved), job_id)
        return saved

    def recalculate(self, job_id: str, new_contract_amount: float) -> List[BillingSchedule]:
        """Update un-invoiced milestone amounts and store the new contract amount"""
        self.store.get_job(job_id)
        rows = self.store.billing_schedule(job_id)
        if not rows:
            raise ValidationError(f"No billing schedule found for job {job_id}")

        recalculate_amounts(rows, new_contract_amount)
        self.store.update_milestone_amounts([row for row in rows if not row.is_invoiced])
        self.store.update_contract_amount(job_id, new_contract_amount)
        return self.store.billing_schedule(job_id)

    def handle_status_change(self, job_id: str, new_status: Union[JobStatus, str]) -> List[Invoice]:
        """
        Invoice every un-invoiced milestone triggered by new_status
        An existing progress invoice whose notes start with "<milestone name> - " is
        linked instead of creating a duplicate, so repeated events are harmless
        """
        status = parse_job_status(new_status)
        job = self.store.get_job(job_id)

        linked = []
        for milestone in self.store.billing_schedule(job_id):
            if milestone.trigger_status != status or milestone.is_invoiced:
                continue

            invoice = self.store.find_progress_invoice(job_id, f"{milestone.milestone_name} - ")
            if invoice is None:
                invoice = self.store.create_invoice(
                    job_id=job_id,
                    lead_id=job.lead_id,
                    amount=milestone.amount,
                    notes=auto_invoice_notes(milestone.milestone_name),
                )
                logger.info("Created invoice %s for milestone %r on job %s",
                            invoice.id, milestone.milestone_name, job_id)
            else:
                logger.info("Linking existing invoice %s to milestone %r on job %s",
                            invoice.id, milestone.milestone_name, job_id)

            self.store.link_invoice(milestone.id, invoice.id)
            linked.append(invoice)

        return linked

    def transition_job(self, job_id: str, new_status: Union[JobStatus, str]) -> Dict:
        """
        Validate and apply a job status change, then run auto-invoicing
        Returns the updated job and any invoices linked by this change
        """
        status = parse_job_status(new_status)
        job = self.store.get_job(job_id)

        if not can_transition(job.status, status):
            allowed = ", ".join(s.value for s in JOB_STATUS_TRANSITIONS[job.status]) or "none"
            raise ValidationError(
                "Invalid status transition",
                {"message": f'Cannot transition from "{job.status.value}" to "{status.value}". Allowed: {allowed}'},
            )

        updated: Job = self.store.update_job_status(job_id, job.status, status)
        invoices = self.handle_status_change(job_id, status)
        return {"job": updated, "invoices": invoices}
