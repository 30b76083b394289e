# backend/stationery/services/transfer_service.py
"""
Stock transfer service.

Moves stationery stock from the central warehouse (or a source location)
to a destination location, and records the movement as a mirror
Transaction so reporting can see it.

LIFECYCLE:
1. PENDING: Transfer created; source stock checked but not deducted
2. COMPLETED: Source decremented (conditional writes), destination
   incremented, mirror Transaction created (terminal; only deletable)
3. CANCELLED: Cancelled before completion; no ledger effect (terminal)

Deleting a COMPLETED transfer reverses both ledger effects and removes
the mirror Transaction. Deleting a PENDING or CANCELLED transfer only
removes the record.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, StockTransfer, StockTransferItem
from ..validation import (
    CATALOG_STATIONERY,
    InsufficientStock,
    InvalidState,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
    coerce_bool,
    coerce_int,
    one_or_many,
)
from stationery.time_utils import utcnow
from .concurrency import CompensationLog, lock_for_update, run_with_retry
from .document_service import next_document_number
from .ledger_service import CENTRAL, StockLedger
from .location_service import get_location
from .set_service import load_products
from .transaction_service import record_transfer_transaction


# Transfer status constants
TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_COMPLETED = "COMPLETED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

TRANSFER_STATUSES = (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_COMPLETED, TRANSFER_STATUS_CANCELLED)

# Both terminal states allow no forward transition
ALLOWED_TRANSITIONS = {
    TRANSFER_STATUS_PENDING: {TRANSFER_STATUS_COMPLETED, TRANSFER_STATUS_CANCELLED},
    TRANSFER_STATUS_COMPLETED: set(),
    TRANSFER_STATUS_CANCELLED: set(),
}


def _deducts(transfer: StockTransfer) -> bool:
    return transfer.from_location_id is not None or transfer.deduct_from_central


def _source(transfer: StockTransfer) -> int | None:
    return transfer.from_location_id if transfer.from_location_id is not None else CENTRAL


def _source_label(transfer: StockTransfer) -> str:
    if transfer.from_location_id is not None:
        return f"location {transfer.from_location_id}"
    return "central stock"


def _parse_transfer_items(items) -> dict[int, int]:
    """Normalize transfer items to product_id -> quantity (duplicates merged)."""
    merged: dict[int, int] = {}
    for raw in one_or_many(items, "items"):
        if raw.get("product_id") is None or raw.get("quantity") is None:
            raise ValidationError("Each transfer item must have product_id and quantity")
        product_id = coerce_int(raw["product_id"], "product_id")
        quantity = coerce_int(raw["quantity"], "quantity", minimum=1)
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def _shortage(product_id: int, requested: int, available: int, products: dict[int, Product]) -> dict:
    product = products.get(product_id)
    return {
        "product_id": product_id,
        "product_name": product.name if product else str(product_id),
        "available": available,
        "requested": requested,
    }


def _shortages(requested: dict[int, int], available: dict[int, int], products: dict[int, Product]) -> list[dict]:
    return [
        _shortage(pid, qty, available.get(pid, 0), products)
        for pid, qty in requested.items()
        if available.get(pid, 0) < qty
    ]


def _insufficient(shortages: list[dict]) -> InsufficientStock:
    message = "; ".join(
        f"Insufficient stock for {s['product_name']}. Available: {s['available']}, Requested: {s['requested']}"
        for s in shortages
    )
    return InsufficientStock(message, details={"shortages": shortages})


def _check_transition(transfer: StockTransfer, target: str) -> bool:
    """
    Validate a status change; returns False for a no-op (same status).

    Raises InvalidStateTransition for anything the table does not allow.
    """
    if target not in TRANSFER_STATUSES:
        raise ValidationError(f"Unknown transfer status: {target}")
    if target == transfer.status == TRANSFER_STATUS_PENDING:
        return False
    if target not in ALLOWED_TRANSITIONS[transfer.status]:
        raise InvalidStateTransition(
            f"Cannot change transfer {transfer.document_number} from {transfer.status} to {target}",
            details={"transfer_id": transfer.id, "from": transfer.status, "to": target},
        )
    return True


def _require_transfer(transfer_id: int, *, lock: bool = False) -> StockTransfer:
    query = db.session.query(StockTransfer).filter_by(id=transfer_id)
    if lock:
        query = lock_for_update(query)
    transfer = query.first()
    if not transfer:
        raise NotFoundError(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})
    return transfer


def get_transfer(transfer_id: int) -> StockTransfer:
    return _require_transfer(transfer_id)


def list_transfers(status: str | None = None, location_id: int | None = None) -> list[StockTransfer]:
    query = db.session.query(StockTransfer)
    if status:
        query = query.filter(StockTransfer.status == status.upper())
    if location_id is not None:
        query = query.filter(
            (StockTransfer.to_location_id == location_id)
            | (StockTransfer.from_location_id == location_id)
        )
    return query.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc()).all()


def create_transfer(
    items,
    to_location_id: int,
    *,
    from_location_id: int | None = None,
    deduct_from_central: bool = True,
    include_in_revenue: bool = True,
    is_paid: bool = False,
    remarks: str | None = None,
    created_by: str | None = None,
) -> StockTransfer:
    """
    Create a new transfer (status: PENDING).

    Args:
        items: One {product_id, quantity} mapping or a list of them
        to_location_id: Destination location
        from_location_id: Source location; None means central stock
        deduct_from_central: Deduct central stock on completion
            (ignored when a source location is given)

    Returns:
        StockTransfer: The created transfer

    Raises:
        ValidationError, NotFoundError, ProductNotFound, InsufficientStock
    """
    def _op():
        requested = _parse_transfer_items(items)
        destination = get_location(coerce_int(to_location_id, "to_location_id"), require_active=True)

        source = None
        if from_location_id is not None:
            source = get_location(coerce_int(from_location_id, "from_location_id"), require_active=True)
            if source.id == destination.id:
                raise ValidationError("Source and destination locations must differ")

        products = load_products(requested, catalog=CATALOG_STATIONERY)

        transfer = StockTransfer(
            from_location_id=source.id if source else None,
            to_location_id=destination.id,
            status=TRANSFER_STATUS_PENDING,
            deduct_from_central=coerce_bool(deduct_from_central, "deduct_from_central", default=True),
            include_in_revenue=coerce_bool(include_in_revenue, "include_in_revenue", default=True),
            is_paid=coerce_bool(is_paid, "is_paid", default=False),
            remarks=(remarks or "").strip(),
            created_by=(created_by or "System"),
        )

        # Checked now, deducted at completion
        if _deducts(transfer):
            available = StockLedger(CATALOG_STATIONERY).snapshot(_source(transfer), requested)
            shortages = _shortages(requested, available, products)
            if shortages:
                raise _insufficient(shortages)

        transfer.document_number = next_document_number(
            document_type="TRANSFER",
            prefix=current_app.config.get("TRANSFER_PREFIX", "TRF"),
        )
        transfer.items = [
            StockTransferItem(product_id=pid, quantity=qty)
            for pid, qty in requested.items()
        ]

        db.session.add(transfer)
        db.session.flush()

        current_app.logger.info(
            "Transfer %s created: %s item(s) to %s", transfer.document_number, len(requested), destination.name
        )
        return transfer

    return run_with_retry(_op)


def _complete(transfer: StockTransfer) -> StockTransfer:
    _check_transition(transfer, TRANSFER_STATUS_COMPLETED)

    requested = {item.product_id: item.quantity for item in transfer.items}
    if not requested:
        raise InvalidState(f"Transfer {transfer.document_number} has no items")
    products = load_products(requested, catalog=CATALOG_STATIONERY)
    ledger = StockLedger(CATALOG_STATIONERY)

    if _deducts(transfer):
        source = _source(transfer)

        # Re-check: stock may have moved since the transfer was created
        shortages = _shortages(requested, ledger.snapshot(source, requested), products)
        if shortages:
            raise _insufficient(shortages)

        log = CompensationLog(f"transfer {transfer.document_number}")
        for pid, qty in sorted(requested.items()):
            if not ledger.conditional_decrement(source, pid, qty):
                available = ledger.get(source, pid)
                log.unwind()
                raise _insufficient([_shortage(pid, qty, available, products)])
            log.record(
                f"-{qty} product {pid} from {_source_label(transfer)}",
                lambda pid=pid, qty=qty: ledger.apply_delta(source, pid, qty),
            )

    ledger.apply_batch(requested, transfer.to_location_id)

    mirror = record_transfer_transaction(
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        lines=[(products[pid], qty) for pid, qty in requested.items()],
        is_paid=transfer.is_paid,
        include_in_revenue=transfer.include_in_revenue,
        remarks=transfer.remarks,
    )

    transfer.status = TRANSFER_STATUS_COMPLETED
    transfer.completed_at = utcnow()
    transfer.linked_transaction = mirror
    db.session.flush()

    current_app.logger.info(
        "Transfer %s completed (mirror transaction %s)", transfer.document_number, mirror.document_number
    )
    return transfer


def _cancel(transfer: StockTransfer) -> StockTransfer:
    _check_transition(transfer, TRANSFER_STATUS_CANCELLED)
    transfer.status = TRANSFER_STATUS_CANCELLED
    transfer.cancelled_at = utcnow()
    db.session.flush()
    current_app.logger.info("Transfer %s cancelled", transfer.document_number)
    return transfer


def complete_transfer(transfer_id: int) -> StockTransfer:
    """
    Complete a pending transfer.

    Raises:
        InvalidStateTransition: Transfer is not PENDING
        InsufficientStock: Source no longer holds the requested quantities
            (any decrement already applied is reversed first)
    """
    def _op():
        return _complete(_require_transfer(transfer_id, lock=True))

    return run_with_retry(_op)


def cancel_transfer(transfer_id: int) -> StockTransfer:
    def _op():
        return _cancel(_require_transfer(transfer_id, lock=True))

    return run_with_retry(_op)


def update_transfer(
    transfer_id: int,
    *,
    status: str | None = None,
    is_paid: bool | None = None,
    remarks: str | None = None,
    deduct_from_central: bool | None = None,
    include_in_revenue: bool | None = None,
) -> StockTransfer:
    """
    Edit a transfer.

    deduct_from_central and include_in_revenue can change only while the
    transfer is PENDING. Status changes go through the transition table:
    PENDING -> COMPLETED completes, PENDING -> CANCELLED cancels.
    """
    def _op():
        transfer = _require_transfer(transfer_id, lock=True)

        flag_edits = {}
        if deduct_from_central is not None:
            flag_edits["deduct_from_central"] = coerce_bool(deduct_from_central, "deduct_from_central")
        if include_in_revenue is not None:
            flag_edits["include_in_revenue"] = coerce_bool(include_in_revenue, "include_in_revenue")
        changed = {k: v for k, v in flag_edits.items() if getattr(transfer, k) != v}
        if changed and transfer.status != TRANSFER_STATUS_PENDING:
            raise InvalidState(
                f"{', '.join(sorted(changed))} can only be changed while the transfer is pending",
                details={"transfer_id": transfer.id, "status": transfer.status},
            )
        for key, value in changed.items():
            setattr(transfer, key, value)

        if is_paid is not None:
            transfer.is_paid = coerce_bool(is_paid, "is_paid")
            if transfer.linked_transaction is not None:
                mirror = transfer.linked_transaction
                if mirror.is_paid != transfer.is_paid:
                    mirror.paid_at = utcnow() if transfer.is_paid else None
                mirror.is_paid = transfer.is_paid
        if remarks is not None:
            transfer.remarks = remarks.strip()

        if status is not None:
            target = str(status).upper()
            if target == TRANSFER_STATUS_COMPLETED:
                _complete(transfer)
            elif target == TRANSFER_STATUS_CANCELLED:
                _cancel(transfer)
            else:
                _check_transition(transfer, target)

        db.session.flush()
        return transfer

    return run_with_retry(_op)


def _existing_only(deltas: dict[int, int], transfer: StockTransfer) -> dict[int, int]:
    existing = {
        pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(list(deltas))).all()
    }
    for pid in sorted(set(deltas) - existing):
        current_app.logger.warning(
            "Transfer %s: product %s no longer exists; skipping reversal of %s unit(s)",
            transfer.document_number, pid, deltas[pid],
        )
    return {pid: qty for pid, qty in deltas.items() if pid in existing}


def delete_transfer(transfer_id: int) -> None:
    """
    Delete a transfer. A COMPLETED transfer is reversed first: units go
    back to their source, the destination is decremented (floored at 0)
    and the mirror Transaction is removed.
    """
    def _op():
        transfer = _require_transfer(transfer_id, lock=True)

        if transfer.status == TRANSFER_STATUS_COMPLETED:
            ledger = StockLedger(CATALOG_STATIONERY)
            moved = _existing_only({item.product_id: item.quantity for item in transfer.items}, transfer)

            if moved and _deducts(transfer):
                ledger.apply_batch(moved, _source(transfer))
            if moved:
                ledger.apply_batch({pid: -qty for pid, qty in moved.items()}, transfer.to_location_id)

            mirror = transfer.linked_transaction
            transfer.linked_transaction = None
            db.session.flush()
            if mirror is not None:
                db.session.delete(mirror)

        document_number = transfer.document_number
        db.session.delete(transfer)
        db.session.flush()
        current_app.logger.info("Transfer %s deleted", document_number)

    return run_with_retry(_op)
