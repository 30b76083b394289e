# backend/stationery/services/audit_service.py
"""
Stock audit approval workflow.

A physical check that disagrees with the ledger is recorded as a proposal
and only changes stock once approved.

LIFECYCLE:
1. PENDING: Proposed with before/after quantities for one ledger cell
2. APPROVED: Cell overwritten with after_quantity (absolute value)
3. REJECTED: No ledger effect; rejection note appended

Approval never goes through the delta path used by purchases and
transfers: approving after_quantity=50 leaves the cell at exactly 50
whatever it held before.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLog
from ..validation import InvalidState, NotFoundError, coerce_int
from stationery.time_utils import utcnow
from .catalog_service import get_product
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import StockLedger
from .location_service import get_location


# Audit status constants
AUDIT_STATUS_PENDING = "PENDING"
AUDIT_STATUS_APPROVED = "APPROVED"
AUDIT_STATUS_REJECTED = "REJECTED"


def _require_audit_log(audit_log_id: int, *, lock: bool = False) -> AuditLog:
    query = db.session.query(AuditLog).filter_by(id=audit_log_id)
    if lock:
        query = lock_for_update(query)
    audit_log = query.first()
    if not audit_log:
        raise NotFoundError(f"Audit log {audit_log_id} not found", details={"audit_log_id": audit_log_id})
    return audit_log


def _require_pending(audit_log: AuditLog, action: str) -> None:
    if audit_log.status != AUDIT_STATUS_PENDING:
        raise InvalidState(
            f"Cannot {action} audit log in {audit_log.status} status",
            details={"audit_log_id": audit_log.id, "status": audit_log.status},
        )


def get_audit_log(audit_log_id: int) -> AuditLog:
    return _require_audit_log(audit_log_id)


def list_audit_logs(status: str | None = None, location_id: int | None = None) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if status:
        query = query.filter(AuditLog.status == status.upper())
    if location_id is not None:
        query = query.filter(AuditLog.location_id == location_id)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()


def propose_audit(
    *,
    product_id: int,
    before_quantity: int,
    after_quantity: int,
    location_id: int | None = None,
    notes: str | None = None,
    created_by: str | None = None,
) -> AuditLog:
    """
    Record a proposed correction (status: PENDING).

    Args:
        product_id: Product whose cell is corrected
        before_quantity: Quantity the auditor saw in the system (not re-verified)
        after_quantity: Physically counted quantity
        location_id: Target location; None targets central stock

    Returns:
        AuditLog: The created proposal
    """
    def _op():
        product = get_product(coerce_int(product_id, "product_id"))
        location = None
        if location_id is not None:
            location = get_location(coerce_int(location_id, "location_id"))

        audit_log = AuditLog(
            product_id=product.id,
            location_id=location.id if location else None,
            catalog=product.catalog,
            before_quantity=coerce_int(before_quantity, "before_quantity", minimum=0),
            after_quantity=coerce_int(after_quantity, "after_quantity", minimum=0),
            status=AUDIT_STATUS_PENDING,
            notes=(notes or "").strip(),
            created_by=(created_by or "System"),
        )

        db.session.add(audit_log)
        db.session.flush()
        return audit_log

    return run_with_retry(_op)


def approve_audit(audit_log_id: int, *, approved_by: str | None = None, notes: str | None = None) -> AuditLog:
    """
    Approve a pending audit and overwrite its ledger cell.

    Raises:
        NotFoundError: Unknown audit log, or its product was deleted
        InvalidState: Audit log is not PENDING
    """
    def _op():
        audit_log = _require_audit_log(audit_log_id, lock=True)
        _require_pending(audit_log, "approve")

        ledger = StockLedger(audit_log.catalog)
        previous = ledger.get(audit_log.location_id, audit_log.product_id)
        ledger.set_quantity(audit_log.location_id, audit_log.product_id, audit_log.after_quantity)

        if previous != audit_log.before_quantity:
            current_app.logger.warning(
                "Audit %s approved against a moved cell: recorded before=%s, ledger held %s",
                audit_log.id, audit_log.before_quantity, previous,
            )

        audit_log.status = AUDIT_STATUS_APPROVED
        audit_log.approved_by = approved_by or "System"
        audit_log.approved_at = utcnow()
        if notes:
            audit_log.notes = notes.strip()

        db.session.flush()
        current_app.logger.info(
            "Audit %s approved: product %s set to %s", audit_log.id, audit_log.product_id, audit_log.after_quantity
        )
        return audit_log

    return run_with_retry(_op)


def reject_audit(audit_log_id: int, *, notes: str | None = None) -> AuditLog:
    """Reject a pending audit; the ledger is left untouched."""
    def _op():
        audit_log = _require_audit_log(audit_log_id, lock=True)
        _require_pending(audit_log, "reject")

        rejection = f"Rejected: {notes.strip()}" if notes and notes.strip() else "Rejected"
        audit_log.notes = f"{audit_log.notes}\n{rejection}" if audit_log.notes else rejection
        audit_log.status = AUDIT_STATUS_REJECTED

        db.session.flush()
        return audit_log

    return run_with_retry(_op)
