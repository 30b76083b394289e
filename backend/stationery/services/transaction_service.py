# backend/stationery/services/transaction_service.py
"""
Transaction engine: purchases that consume location stock.

LIFECYCLE:
1. create: validate items, resolve the location, allocate against
   projected stock; commit deductions only when the transaction is paid.
2. edit: restore the current claim (if any), then allocate the new items
   (or the existing ones) again under the target payment flag.
3. payment toggle: paid->unpaid restores the claim; unpaid->paid
   re-validates the existing items and deducts what is available.
4. delete: restore the claim, then remove the record.

INVARIANTS:
- Validate-then-commit: every ValidationError, ProductNotFound,
  InvalidSetConfiguration and LocationRequired is raised before the
  ledger is touched.
- stock_deducted is True exactly when the stored items hold deductions;
  restore applies the exact inverse of the last commit (set components
  with taken=True, non-set items by quantity_deducted).
- Unpaid transactions reserve nothing.
- A shortfall never fails a purchase: non-set items deduct what is
  available and become partial; set components are all-or-nothing and
  are recorded taken=False with a reason.
- Restores skip products that no longer exist instead of aborting.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, Transaction, TransactionItem, TransactionSetComponent
from ..validation import (
    CATALOG_STATIONERY,
    InvalidState,
    NotFoundError,
    ValidationError,
    coerce_bool,
    coerce_int,
    coerce_price_cents,
    one_or_many,
    require_catalog,
)
from stationery.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .ledger_service import StockLedger
from .location_service import get_location, resolve_purchase_location
from .projection import StockProjection
from .set_service import ComponentRequirement, expand, load_products
from .student_service import get_student, mark_items_received


KIND_PURCHASE = "PURCHASE"
KIND_TRANSFER = "TRANSFER"

ITEM_STATUS_FULFILLED = "fulfilled"
ITEM_STATUS_PARTIAL = "partial"

PAYMENT_METHODS = ("cash", "online", "transfer")

REASON_NOT_TAKEN = "Marked as not taken"


@dataclass
class ItemRequest:
    """Validated shape of one requested line item."""
    product_id: int
    quantity: int
    unit_price_cents: int
    name: str | None = None
    # component_product_id -> {"taken": bool, "reason": str | None, "shortage": bool}
    component_flags: dict[int, dict] = field(default_factory=dict)


@dataclass
class LineAllocation:
    status: str
    quantity_deducted: int
    components: list[dict]


def _parse_component_flags(raw_components) -> dict[int, dict]:
    flags: dict[int, dict] = {}
    for comp in raw_components or []:
        if not isinstance(comp, dict):
            continue
        raw_id = comp.get("component_product_id", comp.get("product_id"))
        if raw_id is None:
            continue
        component_id = coerce_int(raw_id, "component_product_id")
        entry = {"reason": comp.get("reason"), "shortage": bool(comp.get("shortage", False))}
        if "taken" in comp:
            entry["taken"] = coerce_bool(comp["taken"], "taken")
        flags[component_id] = entry
    return flags


def parse_item_requests(items) -> list[ItemRequest]:
    """
    Validate the request shape of every item before anything else runs.

    Accepts a single item mapping or a list of them.
    """
    requests = []
    for raw in one_or_many(items, "items"):
        if raw.get("product_id") is None or raw.get("quantity") is None or raw.get("unit_price_cents") is None:
            raise ValidationError("Each item must have product_id, quantity, and unit_price_cents")
        requests.append(ItemRequest(
            product_id=coerce_int(raw["product_id"], "product_id"),
            quantity=coerce_int(raw["quantity"], "quantity", minimum=1),
            unit_price_cents=coerce_price_cents(raw["unit_price_cents"], "unit_price_cents"),
            name=(raw.get("name") or None),
            component_flags=_parse_component_flags(raw.get("set_components")),
        ))
    return requests


def _requests_from_items(items: list[TransactionItem]) -> list[ItemRequest]:
    return [
        ItemRequest(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            name=item.name_snapshot,
            component_flags={
                comp.component_product_id: {
                    "taken": comp.taken,
                    "reason": comp.reason,
                    "shortage": comp.shortage,
                }
                for comp in item.set_components
            },
        )
        for item in items
    ]


def _expand_all(requests: list[ItemRequest], products: dict[int, Product]) -> list[list[ComponentRequirement]]:
    return [expand(products[req.product_id], req.quantity, products) for req in requests]


def _allocate_line(
    product: Product,
    request: ItemRequest,
    requirements: list[ComponentRequirement],
    projection: StockProjection | None,
    *,
    retry_shortages: bool = False,
) -> LineAllocation:
    """
    Decide status, deductions and component flags for one line.

    projection=None means the transaction is unpaid: the intended
    allocation is recorded but nothing is reserved.
    """
    if not product.is_set:
        if projection is None:
            return LineAllocation(ITEM_STATUS_FULFILLED, 0, [])
        granted = projection.reserve_up_to(product.id, request.quantity)
        status = ITEM_STATUS_FULFILLED if granted >= request.quantity else ITEM_STATUS_PARTIAL
        return LineAllocation(status, granted, [])

    status = ITEM_STATUS_FULFILLED
    components = []
    for req in requirements:
        flags = request.component_flags.get(req.product_id, {})
        declined = flags.get("taken") is False and not (retry_shortages and flags.get("shortage"))

        taken, shortage, reason = True, False, None
        if declined:
            taken = False
            shortage = bool(flags.get("shortage"))
            reason = flags.get("reason") or REASON_NOT_TAKEN
            status = ITEM_STATUS_PARTIAL
        elif projection is not None:
            available = projection.available(req.product_id)
            if not projection.reserve(req.product_id, req.required):
                taken, shortage = False, True
                reason = f"Insufficient stock at location (required {req.required}, available {available})"
                status = ITEM_STATUS_PARTIAL

        components.append({
            "component_product_id": req.product_id,
            "name_snapshot": req.name,
            "quantity": req.required,
            "taken": taken,
            "shortage": shortage,
            "reason": reason,
        })
    return LineAllocation(status, 0, components)


def _build_items(
    requests: list[ItemRequest],
    products: dict[int, Product],
    expansions: list[list[ComponentRequirement]],
    projection: StockProjection | None,
) -> tuple[list[TransactionItem], int]:
    items = []
    total = 0
    for position, (request, requirements) in enumerate(zip(requests, expansions)):
        product = products[request.product_id]
        allocation = _allocate_line(product, request, requirements, projection)
        line_total = request.quantity * request.unit_price_cents
        total += line_total
        items.append(TransactionItem(
            position=position,
            product_id=product.id,
            name_snapshot=request.name or product.name,
            quantity=request.quantity,
            unit_price_cents=request.unit_price_cents,
            line_total_cents=line_total,
            is_set=bool(product.is_set),
            status=allocation.status,
            quantity_deducted=allocation.quantity_deducted,
            set_components=[
                TransactionSetComponent(position=i, **comp)
                for i, comp in enumerate(allocation.components)
            ],
        ))
    return items, total


def restore_deltas(txn: Transaction) -> dict[int, int]:
    """Positive deltas that undo the transaction's current ledger claim."""
    deltas: dict[int, int] = {}
    for item in txn.items:
        if item.is_set:
            for comp in item.set_components:
                if comp.taken and comp.quantity > 0:
                    deltas[comp.component_product_id] = deltas.get(comp.component_product_id, 0) + comp.quantity
        elif item.quantity_deducted > 0:
            deltas[item.product_id] = deltas.get(item.product_id, 0) + item.quantity_deducted
    return deltas


def _restore_claim(txn: Transaction, ledger: StockLedger) -> dict[int, int]:
    """Give the transaction's deductions back to its location, skipping deleted products."""
    deltas = restore_deltas(txn)
    if not deltas:
        return {}

    existing = {
        pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(list(deltas))).all()
    }
    for pid in sorted(set(deltas) - existing):
        current_app.logger.warning(
            "Transaction %s: product %s no longer exists; skipping restore of %s unit(s)",
            txn.document_number, pid, deltas[pid],
        )
        del deltas[pid]

    if deltas:
        ledger.apply_batch(deltas, txn.location_id)
    return deltas


def _commit_claim(projection: StockProjection, ledger: StockLedger, location_id: int) -> bool:
    if not projection.has_deltas():
        return False
    ledger.apply_batch(projection.deltas, location_id, guard=True)
    return True


def _validate_payment_method(payment_method: str | None) -> str:
    method = (payment_method or "cash").lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}")
    return method


def _require_transaction(transaction_id: int, *, lock: bool = False) -> Transaction:
    query = db.session.query(Transaction).filter_by(id=transaction_id)
    if lock:
        query = lock_for_update(query)
    txn = query.first()
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return txn


def get_transaction(transaction_id: int) -> Transaction:
    return _require_transaction(transaction_id)


def list_transactions(
    *,
    kind: str | None = None,
    location_id: int | None = None,
    student_id: int | None = None,
    is_paid: bool | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Transaction]:
    query = db.session.query(Transaction)
    if kind:
        query = query.filter(Transaction.kind == kind.upper())
    if location_id is not None:
        query = query.filter(
            (Transaction.location_id == location_id)
            | (Transaction.counterparty_location_id == location_id)
        )
    if student_id is not None:
        query = query.filter(Transaction.student_id == student_id)
    if is_paid is not None:
        query = query.filter(Transaction.is_paid.is_(is_paid))
    if start is not None:
        query = query.filter(Transaction.transaction_date >= start)
    if end is not None:
        query = query.filter(Transaction.transaction_date <= end)
    return query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()).all()


def create_transaction(
    *,
    student_id: int,
    items,
    location_id: int | None = None,
    staff_id: int | None = None,
    is_paid: bool = False,
    payment_method: str | None = None,
    remarks: str | None = None,
    catalog: str = CATALOG_STATIONERY,
) -> Transaction:
    """
    Create a purchase.

    Args:
        student_id: Recipient of the items
        items: One item mapping or a list of them
            ({product_id, quantity, unit_price_cents, name?})
        location_id: Explicit location; otherwise resolved from staff/course
        staff_id: Staff member recording the purchase
        is_paid: Deduct stock now (True) or record intent only (False)

    Returns:
        Transaction: The persisted transaction (not yet committed)

    Raises:
        ValidationError, NotFoundError, ProductNotFound,
        InvalidSetConfiguration, LocationRequired, StockConflictError
    """
    def _op():
        requests = parse_item_requests(items)
        method = _validate_payment_method(payment_method)
        paid = coerce_bool(is_paid, "is_paid", default=False)
        catalog_kind = require_catalog(catalog)

        student = get_student(student_id)
        location = resolve_purchase_location(location_id=location_id, staff_id=staff_id, student=student)

        products = load_products({r.product_id for r in requests}, catalog=catalog_kind)
        expansions = _expand_all(requests, products)

        ledger = StockLedger(catalog_kind)
        projection = None
        if paid:
            component_ids = {req.product_id for reqs in expansions for req in reqs}
            projection = StockProjection(ledger.snapshot(location.id, component_ids))

        new_items, total = _build_items(requests, products, expansions, projection)

        stock_deducted = False
        if projection is not None:
            stock_deducted = _commit_claim(projection, ledger, location.id)

        txn = Transaction(
            document_number=next_document_number(
                document_type="TRANSACTION",
                prefix=current_app.config.get("TRANSACTION_PREFIX", "TXN"),
            ),
            kind=KIND_PURCHASE,
            catalog=catalog_kind,
            location_id=location.id,
            student_id=student.id,
            staff_id=staff_id,
            items=new_items,
            total_amount_cents=total,
            payment_method=method,
            is_paid=paid,
            paid_at=utcnow() if paid else None,
            stock_deducted=stock_deducted,
            remarks=(remarks or "").strip(),
            transaction_date=utcnow(),
        )
        db.session.add(txn)

        mark_items_received(student, [item.name_snapshot for item in new_items])
        if paid and not student.paid:
            student.paid = True

        db.session.flush()
        current_app.logger.info(
            "Transaction %s created at location %s (paid=%s, stock_deducted=%s, total=%s)",
            txn.document_number, location.id, paid, stock_deducted, total,
        )
        return txn

    return run_with_retry(_op)


def _reallocate_existing(txn: Transaction, ledger: StockLedger) -> bool:
    """
    Unpaid -> paid: allocate the stored items against current stock.

    Components withheld earlier for lack of stock are retried; components
    an operator declared not taken stay that way. Items whose product has
    since been deleted are left without a claim.
    """
    requests = _requests_from_items(txn.items)
    products = load_products({r.product_id for r in requests}, catalog=txn.catalog, strict=False)

    planned = []
    for item, request in zip(txn.items, requests):
        product = products.get(item.product_id)
        if product is None:
            current_app.logger.warning(
                "Transaction %s: product %s no longer exists; item left undeducted",
                txn.document_number, item.product_id,
            )
            continue
        planned.append((item, product, request, expand(product, request.quantity, products)))

    projection = StockProjection(ledger.snapshot(
        txn.location_id,
        {req.product_id for _, _, _, reqs in planned for req in reqs},
    ))
    for item, product, request, requirements in planned:
        allocation = _allocate_line(product, request, requirements, projection, retry_shortages=True)
        item.status = allocation.status
        item.quantity_deducted = allocation.quantity_deducted
        if item.is_set:
            item.set_components = [
                TransactionSetComponent(position=i, **comp)
                for i, comp in enumerate(allocation.components)
            ]

    return _commit_claim(projection, ledger, txn.location_id)


def edit_transaction(
    transaction_id: int,
    *,
    items=None,
    is_paid: bool | None = None,
    payment_method: str | None = None,
    remarks: str | None = None,
) -> Transaction:
    """
    Edit items and/or payment state, keeping the ledger claim in sync.

    With items: restore the current claim, then allocate the new items
    under the target payment flag. A set component sent with taken=False
    is honored and marks the line partial.

    Payment toggle only: paid->unpaid restores the claim; unpaid->paid
    re-validates and deducts using the existing items.
    """
    def _op():
        txn = _require_transaction(transaction_id, lock=True)
        if txn.kind != KIND_PURCHASE:
            raise InvalidState(
                f"Transaction {txn.document_number} is managed by its stock transfer and cannot be edited"
            )

        target_paid = txn.is_paid if is_paid is None else coerce_bool(is_paid, "is_paid")
        method = _validate_payment_method(payment_method) if payment_method is not None else None
        ledger = StockLedger(txn.catalog)

        if items is not None:
            # Validate everything before the restore touches the ledger
            requests = parse_item_requests(items)
            products = load_products({r.product_id for r in requests}, catalog=txn.catalog)
            expansions = _expand_all(requests, products)

            if txn.stock_deducted:
                _restore_claim(txn, ledger)

            projection = None
            if target_paid:
                component_ids = {req.product_id for reqs in expansions for req in reqs}
                projection = StockProjection(ledger.snapshot(txn.location_id, component_ids))

            new_items, total = _build_items(requests, products, expansions, projection)
            txn.stock_deducted = _commit_claim(projection, ledger, txn.location_id) if projection is not None else False
            txn.items = new_items
            txn.total_amount_cents = total

            if txn.student is not None:
                mark_items_received(txn.student, [item.name_snapshot for item in new_items])

        elif is_paid is not None:
            if not target_paid and txn.stock_deducted:
                _restore_claim(txn, ledger)
                txn.stock_deducted = False
            elif target_paid and not txn.stock_deducted:
                txn.stock_deducted = _reallocate_existing(txn, ledger)

        if is_paid is not None:
            if target_paid != txn.is_paid:
                txn.paid_at = utcnow() if target_paid else None
            txn.is_paid = target_paid
            if txn.student is not None:
                txn.student.paid = target_paid

        if method is not None:
            txn.payment_method = method
        if remarks is not None:
            txn.remarks = remarks.strip()

        db.session.flush()
        current_app.logger.info(
            "Transaction %s edited (paid=%s, stock_deducted=%s)",
            txn.document_number, txn.is_paid, txn.stock_deducted,
        )
        return txn

    return run_with_retry(_op)


def delete_transaction(transaction_id: int) -> None:
    """Restore the transaction's claim (if any), then delete it."""
    def _op():
        txn = _require_transaction(transaction_id, lock=True)
        if txn.kind != KIND_PURCHASE:
            raise InvalidState(
                f"Transaction {txn.document_number} is managed by its stock transfer and cannot be deleted"
            )

        if txn.stock_deducted:
            _restore_claim(txn, StockLedger(txn.catalog))

        db.session.delete(txn)
        db.session.flush()
        current_app.logger.info("Transaction %s deleted", txn.document_number)

    return run_with_retry(_op)


def record_transfer_transaction(
    *,
    from_location_id: int | None,
    to_location_id: int,
    lines: list[tuple[Product, int]],
    is_paid: bool,
    include_in_revenue: bool,
    remarks: str,
) -> Transaction:
    """
    Create the mirror transaction of a completed stock transfer.

    One fulfilled line per transferred product at its current price. The
    mirror holds no ledger claim; the transfer owns the stock movement.
    """
    destination = get_location(to_location_id)
    items = []
    total = 0
    for position, (product, quantity) in enumerate(lines):
        line_total = product.price_cents * quantity
        total += line_total
        items.append(TransactionItem(
            position=position,
            product_id=product.id,
            name_snapshot=product.name,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            line_total_cents=line_total,
            is_set=False,
            status=ITEM_STATUS_FULFILLED,
            quantity_deducted=0,
        ))

    note = f"Stock transfer to {destination.name}"
    if remarks:
        note += f" - {remarks}"
    if not include_in_revenue:
        note += " (Not included in revenue)"

    txn = Transaction(
        document_number=next_document_number(
            document_type="TRANSACTION",
            prefix=current_app.config.get("TRANSACTION_PREFIX", "TXN"),
        ),
        kind=KIND_TRANSFER,
        catalog=CATALOG_STATIONERY,
        location_id=from_location_id,
        counterparty_location_id=destination.id,
        items=items,
        total_amount_cents=total,
        payment_method="transfer",
        is_paid=is_paid,
        paid_at=utcnow() if is_paid else None,
        stock_deducted=False,
        include_in_revenue=include_in_revenue,
        remarks=note,
        transaction_date=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn
