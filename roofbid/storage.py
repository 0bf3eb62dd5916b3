"""
SQLite persistence for estimates, macro usage, jobs, billing schedules and invoices
Every operation opens its own connection; status changes use conditional updates
"""

import json
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from roofbid.errors import ConflictError, NotFoundError, ValidationError
from roofbid.models.billing import BillingSchedule, Invoice, Job, JobStatus
from roofbid.models.estimate import EstimateStatus, PricedEstimate

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = (EstimateStatus.ACCEPTED, EstimateStatus.REJECTED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: Optional[datetime] = None) -> str:
    return (value or utc_now()).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _new_id() -> str:
    return secrets.token_urlsafe(16)


class EstimateStore:
    """Persistence boundary for the estimation and billing workflow"""

    def __init__(self, db_path: str = "roofbid.db"):
        self.db_path = db_path
        self.init_database()

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def begin_immediate(self) -> sqlite3.Connection:
        """Connection holding the write lock from the start of its transaction"""
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("BEGIN IMMEDIATE")
        return conn

    def init_database(self):
        """Initialize SQLite database"""
        conn = self.connect()
        cursor = conn.cursor()

        try:
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS detailed_estimates (
                    id TEXT PRIMARY KEY,
                    lead_id TEXT NOT NULL,
                    sketch_id TEXT,
                    name TEXT,
                    macro_id TEXT,
                    status TEXT NOT NULL DEFAULT 'draft',
                    price_likely REAL NOT NULL,
                    data TEXT NOT NULL,
                    valid_until TEXT,
                    created_at TEXT NOT NULL,
                    responded_at TEXT,
                    responded_by TEXT,
                    response_notes TEXT
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS macro_usage (
                    macro_id TEXT PRIMARY KEY,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    last_used_at TEXT
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    lead_id TEXT,
                    estimate_id TEXT UNIQUE,
                    job_number TEXT NOT NULL,
                    contract_amount REAL NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending_start',
                    created_at TEXT NOT NULL,
                    actual_start TEXT,
                    actual_end TEXT,
                    warranty_start_date TEXT,
                    FOREIGN KEY (estimate_id) REFERENCES detailed_estimates (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS job_billing_schedules (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL,
                    milestone_name TEXT NOT NULL,
                    percentage REAL NOT NULL,
                    amount REAL NOT NULL,
                    trigger_status TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    invoice_id TEXT,
                    FOREIGN KEY (job_id) REFERENCES jobs (id),
                    FOREIGN KEY (invoice_id) REFERENCES invoices (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS invoices (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL,
                    lead_id TEXT,
                    payment_type TEXT NOT NULL,
                    subtotal REAL NOT NULL,
                    total REAL NOT NULL,
                    balance_due REAL NOT NULL,
                    status TEXT NOT NULL DEFAULT 'draft',
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (job_id) REFERENCES jobs (id)
                )
            ''')

            conn.commit()
        finally:
            conn.close()

    # ---------- estimates ----------

    def save_estimate(self, lead_id: str, estimate: PricedEstimate, name: Optional[str] = None,
                      sketch_id: Optional[str] = None, valid_days: Optional[int] = 30,
                      now: Optional[datetime] = None) -> str:
        """Persist a priced estimate as a draft and return its id"""
        estimate_id = _new_id()
        created = now or utc_now()
        valid_until = _timestamp(created + timedelta(days=valid_days)) if valid_days else None

        estimate.id = estimate_id
        estimate.lead_id = lead_id
        estimate.sketch_id = sketch_id
        estimate.name = name
        estimate.status = EstimateStatus.DRAFT
        estimate.valid_until = valid_until
        estimate.created_at = _timestamp(created)

        conn = self.connect()
        try:
            conn.execute('''
                INSERT INTO detailed_estimates
                    (id, lead_id, sketch_id, name, macro_id, status, price_likely, data, valid_until, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (estimate_id, lead_id, sketch_id, name, estimate.macro_id, EstimateStatus.DRAFT.value,
                  estimate.price_likely, json.dumps(estimate.to_dict()), valid_until, estimate.created_at))
            conn.commit()
        finally:
            conn.close()

        logger.info("Saved estimate %s for lead %s (%.2f)", estimate_id, lead_id, estimate.price_likely)
        return estimate_id

    def _row_to_estimate(self, row: sqlite3.Row) -> PricedEstimate:
        estimate = PricedEstimate.from_dict(json.loads(row["data"]))
        estimate.id = row["id"]
        estimate.lead_id = row["lead_id"]
        estimate.sketch_id = row["sketch_id"]
        estimate.name = row["name"]
        estimate.status = EstimateStatus(row["status"])
        estimate.valid_until = row["valid_until"]
        estimate.created_at = row["created_at"]
        estimate.responded_at = row["responded_at"]
        estimate.responded_by = row["responded_by"]
        return estimate

    def get_estimate(self, estimate_id: str) -> PricedEstimate:
        conn = self.connect()
        try:
            row = conn.execute("SELECT * FROM detailed_estimates WHERE id = ?", (estimate_id,)).fetchone()
        finally:
            conn.close()

        if not row:
            raise NotFoundError(f"Estimate not found: {estimate_id}")
        return self._row_to_estimate(row)

    def list_estimates(self, lead_id: str) -> List[PricedEstimate]:
        conn = self.connect()
        try:
            rows = conn.execute('''
                SELECT * FROM detailed_estimates WHERE lead_id = ? ORDER BY created_at DESC, rowid DESC
            ''', (lead_id,)).fetchall()
        finally:
            conn.close()
        return [self._row_to_estimate(row) for row in rows]

    def latest_estimate(self, lead_id: str) -> PricedEstimate:
        estimates = self.list_estimates(lead_id)
        if not estimates:
            raise NotFoundError(f"No estimate found for lead {lead_id}")
        return estimates[0]

    def update_estimate(self, estimate: PricedEstimate):
        """Replace the priced content of a draft estimate (e.g. after toggling options)"""
        conn = self.connect()
        try:
            cursor = conn.execute('''
                UPDATE detailed_estimates SET data = ?, price_likely = ?
                WHERE id = ? AND status = 'draft'
            ''', (json.dumps(estimate.to_dict()), estimate.price_likely, estimate.id))
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()

        if updated == 0:
            self.get_estimate(estimate.id)
            raise ConflictError("Only draft estimates can be changed", {"estimate_id": estimate.id})

    def respond_to_estimate(self, estimate_id: str, status: EstimateStatus,
                            responder: Optional[str] = None, notes: Optional[str] = None,
                            now: Optional[datetime] = None) -> PricedEstimate:
        """
        Accept or reject an estimate exactly once
        The update only applies while the estimate is open and unexpired; zero
        affected rows means someone else responded first (ConflictError).
        Accepting also creates the job for the contract.
        """
        if status not in RESPONSE_STATUSES:
            raise ValidationError(f"Cannot respond with status {status.value}")

        now_text = _timestamp(now)
        conn = self.begin_immediate()
        try:
            cursor = conn.execute('''
                UPDATE detailed_estimates
                SET status = ?, responded_at = ?, responded_by = ?, response_notes = ?
                WHERE id = ?
                  AND status NOT IN ('accepted', 'rejected', 'expired')
                  AND (valid_until IS NULL OR valid_until >= ?)
            ''', (status.value, now_text, responder, notes, estimate_id, now_text))

            if cursor.rowcount == 0:
                conn.rollback()
                row = conn.execute("SELECT status FROM detailed_estimates WHERE id = ?",
                                   (estimate_id,)).fetchone()
                if not row:
                    raise NotFoundError(f"Estimate not found: {estimate_id}")
                raise ConflictError("Estimate has already been responded to or has expired",
                                    {"estimate_id": estimate_id, "status": row["status"]})

            if status == EstimateStatus.ACCEPTED:
                row = conn.execute("SELECT lead_id, price_likely FROM detailed_estimates WHERE id = ?",
                                   (estimate_id,)).fetchone()
                self._insert_job(conn, row["lead_id"], estimate_id, row["price_likely"], now_text)

            conn.commit()
        finally:
            conn.close()

        logger.info("Estimate %s %s by %s", estimate_id, status.value, responder or "unknown")
        return self.get_estimate(estimate_id)

    def expire_stale_estimates(self, now: Optional[datetime] = None) -> int:
        """Mark open estimates past their valid_until date as expired"""
        now_text = _timestamp(now)
        conn = self.connect()
        try:
            cursor = conn.execute('''
                UPDATE detailed_estimates SET status = 'expired'
                WHERE status IN ('draft', 'sent') AND valid_until IS NOT NULL AND valid_until < ?
            ''', (now_text,))
            conn.commit()
            expired = cursor.rowcount
        finally:
            conn.close()

        if expired:
            logger.info("Expired %d stale estimates", expired)
        return expired

    # ---------- macro usage ----------

    def increment_macro_usage(self, macro_id: str) -> int:
        conn = self.connect()
        try:
            conn.execute('''
                INSERT INTO macro_usage (macro_id, usage_count, last_used_at) VALUES (?, 1, ?)
                ON CONFLICT(macro_id) DO UPDATE SET
                    usage_count = usage_count + 1,
                    last_used_at = excluded.last_used_at
            ''', (macro_id, _timestamp()))
            conn.commit()
            row = conn.execute("SELECT usage_count FROM macro_usage WHERE macro_id = ?", (macro_id,)).fetchone()
        finally:
            conn.close()
        return row["usage_count"]

    def macro_usage(self, macro_id: str) -> int:
        conn = self.connect()
        try:
            row = conn.execute("SELECT usage_count FROM macro_usage WHERE macro_id = ?", (macro_id,)).fetchone()
        finally:
            conn.close()
        return row["usage_count"] if row else 0

    # ---------- jobs ----------

    def _insert_job(self, conn: sqlite3.Connection, lead_id: Optional[str], estimate_id: Optional[str],
                    contract_amount: float, created_at: str) -> str:
        job_id = _new_id()
        job_number = f"JOB-{created_at[:10].replace('-', '')}-{secrets.token_hex(2).upper()}"
        conn.execute('''
            INSERT INTO jobs (id, lead_id, estimate_id, job_number, contract_amount, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (job_id, lead_id, estimate_id, job_number, contract_amount,
              JobStatus.PENDING_START.value, created_at))
        return job_id

    def create_job(self, lead_id: Optional[str], contract_amount: float,
                   estimate_id: Optional[str] = None) -> Job:
        conn = self.connect()
        try:
            job_id = self._insert_job(conn, lead_id, estimate_id, contract_amount, _timestamp())
            conn.commit()
        finally:
            conn.close()
        return self.get_job(job_id)

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"],
            lead_id=row["lead_id"],
            estimate_id=row["estimate_id"],
            job_number=row["job_number"],
            contract_amount=row["contract_amount"],
            status=JobStatus(row["status"]),
            created_at=row["created_at"],
            actual_start=row["actual_start"],
            actual_end=row["actual_end"],
            warranty_start_date=row["warranty_start_date"],
        )

    def get_job(self, job_id: str) -> Job:
        conn = self.connect()
        try:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        finally:
            conn.close()

        if not row:
            raise NotFoundError(f"Job not found: {job_id}")
        return self._row_to_job(row)

    def job_for_estimate(self, estimate_id: str) -> Optional[Job]:
        conn = self.connect()
        try:
            row = conn.execute("SELECT * FROM jobs WHERE estimate_id = ?", (estimate_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_job(row) if row else None

    def update_job_status(self, job_id: str, current: JobStatus, new: JobStatus,
                          now: Optional[datetime] = None) -> Job:
        """
        Move a job from current to new status, filling the workflow dates
        Fails with ConflictError if the job is no longer in the current status
        """
        today = _timestamp(now)[:10]
        job = self.get_job(job_id)

        actual_start = job.actual_start
        actual_end = job.actual_end
        warranty_start = job.warranty_start_date
        if new == JobStatus.IN_PROGRESS and not actual_start:
            actual_start = today
        if new in (JobStatus.COMPLETED, JobStatus.CLOSED) and actual_start:
            actual_end = today
        if new == JobStatus.WARRANTY_ACTIVE:
            warranty_start = today

        conn = self.begin_immediate()
        try:
            cursor = conn.execute('''
                UPDATE jobs SET status = ?, actual_start = ?, actual_end = ?, warranty_start_date = ?
                WHERE id = ? AND status = ?
            ''', (new.value, actual_start, actual_end, warranty_start, job_id, current.value))
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()

        if updated == 0:
            raise ConflictError("Job status changed concurrently", {"job_id": job_id})
        return self.get_job(job_id)

    def update_contract_amount(self, job_id: str, contract_amount: float):
        conn = self.connect()
        try:
            cursor = conn.execute("UPDATE jobs SET contract_amount = ? WHERE id = ?", (contract_amount, job_id))
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()

        if updated == 0:
            raise NotFoundError(f"Job not found: {job_id}")

    # ---------- billing schedules ----------

    @staticmethod
    def _row_to_schedule(row: sqlite3.Row) -> BillingSchedule:
        return BillingSchedule(
            id=row["id"],
            job_id=row["job_id"],
            milestone_name=row["milestone_name"],
            percentage=row["percentage"],
            amount=row["amount"],
            trigger_status=JobStatus(row["trigger_status"]),
            sort_order=row["sort_order"],
            invoice_id=row["invoice_id"],
        )

    def replace_billing_schedule(self, job_id: str, rows: List[BillingSchedule]) -> List[BillingSchedule]:
        """Delete the job's schedule and insert the given milestones in one transaction"""
        conn = self.connect()
        try:
            conn.execute("DELETE FROM job_billing_schedules WHERE job_id = ?", (job_id,))
            conn.executemany('''
                INSERT INTO job_billing_schedules
                    (id, job_id, milestone_name, percentage, amount, trigger_status, sort_order, invoice_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', [(row.id, job_id, row.milestone_name, row.percentage, row.amount,
                   row.trigger_status.value, row.sort_order, row.invoice_id) for row in rows])
            conn.commit()
        finally:
            conn.close()
        return self.billing_schedule(job_id)

    def billing_schedule(self, job_id: str) -> List[BillingSchedule]:
        conn = self.connect()
        try:
            rows = conn.execute('''
                SELECT * FROM job_billing_schedules WHERE job_id = ? ORDER BY sort_order ASC
            ''', (job_id,)).fetchall()
        finally:
            conn.close()
        return [self._row_to_schedule(row) for row in rows]

    def update_milestone_amounts(self, rows: List[BillingSchedule]):
        """Write new amounts for milestones that are still un-invoiced"""
        conn = self.connect()
        try:
            conn.executemany('''
                UPDATE job_billing_schedules SET amount = ? WHERE id = ? AND invoice_id IS NULL
            ''', [(row.amount, row.id) for row in rows])
            conn.commit()
        finally:
            conn.close()

    def link_invoice(self, milestone_id: str, invoice_id: str):
        conn = self.connect()
        try:
            conn.execute("UPDATE job_billing_schedules SET invoice_id = ? WHERE id = ?", (invoice_id, milestone_id))
            conn.commit()
        finally:
            conn.close()

    # ---------- invoices ----------

    @staticmethod
    def _row_to_invoice(row: sqlite3.Row) -> Invoice:
        return Invoice(
            id=row["id"],
            job_id=row["job_id"],
            lead_id=row["lead_id"],
            payment_type=row["payment_type"],
            subtotal=row["subtotal"],
            total=row["total"],
            balance_due=row["balance_due"],
            status=row["status"],
            notes=row["notes"],
            created_at=row["created_at"],
        )

    def create_invoice(self, job_id: str, lead_id: Optional[str], amount: float, notes: str,
                       payment_type: str = "progress") -> Invoice:
        invoice_id = _new_id()
        conn = self.connect()
        try:
            conn.execute('''
                INSERT INTO invoices (id, job_id, lead_id, payment_type, subtotal, total, balance_due, status, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 'draft', ?, ?)
            ''', (invoice_id, job_id, lead_id, payment_type, amount, amount, amount, notes, _timestamp()))
            conn.commit()
        finally:
            conn.close()
        return self.get_invoice(invoice_id)

    def get_invoice(self, invoice_id: str) -> Invoice:
        conn = self.connect()
        try:
            row = conn.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
        finally:
            conn.close()

        if not row:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return self._row_to_invoice(row)

    def list_invoices(self, job_id: str) -> List[Invoice]:
        conn = self.connect()
        try:
            rows = conn.execute('''
                SELECT * FROM invoices WHERE job_id = ? ORDER BY created_at ASC, rowid ASC
            ''', (job_id,)).fetchall()
        finally:
            conn.close()
        return [self._row_to_invoice(row) for row in rows]

    def find_progress_invoice(self, job_id: str, name_prefix: str) -> Optional[Invoice]:
        """First progress invoice for the job whose notes start with the prefix (case-insensitive)"""
        escaped = name_prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        conn = self.connect()
        try:
            row = conn.execute('''
                SELECT * FROM invoices
                WHERE job_id = ? AND payment_type = 'progress' AND notes LIKE ? ESCAPE '\\'
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
            ''', (job_id, escaped + "%")).fetchone()
        finally:
            conn.close()
        return self._row_to_invoice(row) if row else None

    def macro_usage_counts(self) -> Dict[str, int]:
        conn = self.connect()
        try:
            rows = conn.execute("SELECT macro_id, usage_count FROM macro_usage").fetchall()
        finally:
            conn.close()
        return {row["macro_id"]: row["usage_count"] for row in rows}
