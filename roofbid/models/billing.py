"""
Job, Billing Schedule and Invoice Models
Milestone templates and the job status workflow that triggers invoicing
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from roofbid.errors import NotFoundError, ValidationError


class JobStatus(Enum):
    PENDING_START = "pending_start"
    MATERIALS_ORDERED = "materials_ordered"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    INSPECTION_PENDING = "inspection_pending"
    PUNCH_LIST = "punch_list"
    COMPLETED = "completed"
    WARRANTY_ACTIVE = "warranty_active"
    CLOSED = "closed"


JOB_STATUS_TRANSITIONS: Dict[JobStatus, List[JobStatus]] = {
    JobStatus.PENDING_START: [JobStatus.MATERIALS_ORDERED, JobStatus.SCHEDULED, JobStatus.CLOSED],
    JobStatus.MATERIALS_ORDERED: [JobStatus.SCHEDULED, JobStatus.PENDING_START, JobStatus.CLOSED],
    JobStatus.SCHEDULED: [JobStatus.IN_PROGRESS, JobStatus.PENDING_START, JobStatus.CLOSED],
    JobStatus.IN_PROGRESS: [JobStatus.INSPECTION_PENDING, JobStatus.PUNCH_LIST,
                            JobStatus.COMPLETED, JobStatus.CLOSED],
    JobStatus.INSPECTION_PENDING: [JobStatus.IN_PROGRESS, JobStatus.PUNCH_LIST,
                                   JobStatus.COMPLETED, JobStatus.CLOSED],
    JobStatus.PUNCH_LIST: [JobStatus.IN_PROGRESS, JobStatus.COMPLETED, JobStatus.CLOSED],
    JobStatus.COMPLETED: [JobStatus.WARRANTY_ACTIVE, JobStatus.PUNCH_LIST, JobStatus.CLOSED],
    JobStatus.WARRANTY_ACTIVE: [JobStatus.CLOSED],
    JobStatus.CLOSED: [],
}


def parse_job_status(value) -> JobStatus:
    if isinstance(value, JobStatus):
        return value
    try:
        return JobStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown job status: {value}")


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    return new in JOB_STATUS_TRANSITIONS[current]


@dataclass(frozen=True)
class BillingMilestone:
    """One (name, percentage, trigger) entry of a billing template"""
    milestone_name: str
    percentage: float
    trigger_status: JobStatus

    def validate(self):
        if not self.milestone_name:
            raise ValidationError("milestone_name is required")
        if self.percentage <= 0 or self.percentage > 100:
            raise ValidationError(
                f"Milestone {self.milestone_name}: percentage must be greater than 0 and at most 100")

    def to_dict(self) -> Dict:
        return {
            "milestone_name": self.milestone_name,
            "percentage": self.percentage,
            "trigger_status": self.trigger_status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'BillingMilestone':
        try:
            percentage = float(data.get("percentage"))
        except (TypeError, ValueError):
            raise ValidationError("percentage must be a number")
        milestone = cls(
            milestone_name=data.get("milestone_name") or "",
            percentage=percentage,
            trigger_status=parse_job_status(data.get("trigger_status")),
        )
        milestone.validate()
        return milestone


@dataclass(frozen=True)
class BillingTemplate:
    name: str
    milestones: Tuple[BillingMilestone, ...]

    @property
    def total_percentage(self) -> float:
        return sum(m.percentage for m in self.milestones)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "milestones": [m.to_dict() for m in self.milestones],
        }


BILLING_TEMPLATES: List[BillingTemplate] = [
    BillingTemplate("Standard (30/50/20)", (
        BillingMilestone("Deposit", 30, JobStatus.MATERIALS_ORDERED),
        BillingMilestone("Progress Payment", 50, JobStatus.IN_PROGRESS),
        BillingMilestone("Final Payment", 20, JobStatus.COMPLETED),
    )),
    BillingTemplate("50/50", (
        BillingMilestone("Deposit", 50, JobStatus.MATERIALS_ORDERED),
        BillingMilestone("Final Payment", 50, JobStatus.COMPLETED),
    )),
    BillingTemplate("Deposit / Progress / Final (10/40/50)", (
        BillingMilestone("Deposit", 10, JobStatus.SCHEDULED),
        BillingMilestone("Progress Payment", 40, JobStatus.IN_PROGRESS),
        BillingMilestone("Final Payment", 50, JobStatus.COMPLETED),
    )),
    BillingTemplate("Insurance (ACV / Depreciation)", (
        BillingMilestone("ACV Payment", 80, JobStatus.MATERIALS_ORDERED),
        BillingMilestone("Recoverable Depreciation", 20, JobStatus.COMPLETED),
    )),
]


def find_template(name: str) -> BillingTemplate:
    for template in BILLING_TEMPLATES:
        if template.name == name:
            return template
    raise NotFoundError(f"Billing template not found: {name}",
                        {"available": [t.name for t in BILLING_TEMPLATES]})


@dataclass
class Job:
    id: str
    lead_id: Optional[str]
    estimate_id: Optional[str]
    job_number: str
    contract_amount: float
    status: JobStatus = JobStatus.PENDING_START
    created_at: Optional[str] = None
    actual_start: Optional[str] = None
    actual_end: Optional[str] = None
    warranty_start_date: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "estimate_id": self.estimate_id,
            "job_number": self.job_number,
            "contract_amount": self.contract_amount,
            "status": self.status.value,
            "created_at": self.created_at,
            "actual_start": self.actual_start,
            "actual_end": self.actual_end,
            "warranty_start_date": self.warranty_start_date,
        }


@dataclass
class BillingSchedule:
    """A persisted milestone row; locked once invoice_id is set"""
    id: str
    job_id: str
    milestone_name: str
    percentage: float
    amount: float
    trigger_status: JobStatus
    sort_order: int = 0
    invoice_id: Optional[str] = None

    @property
    def is_invoiced(self) -> bool:
        return self.invoice_id is not None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "milestone_name": self.milestone_name,
            "percentage": self.percentage,
            "amount": self.amount,
            "trigger_status": self.trigger_status.value,
            "sort_order": self.sort_order,
            "invoice_id": self.invoice_id,
        }


@dataclass
class Invoice:
    id: str
    job_id: str
    lead_id: Optional[str]
    payment_type: str
    subtotal: float
    total: float
    balance_due: float
    status: str = "draft"
    notes: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "lead_id": self.lead_id,
            "payment_type": self.payment_type,
            "subtotal": self.subtotal,
            "total": self.total,
            "balance_due": self.balance_due,
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at,
        }
