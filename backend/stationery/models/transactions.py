from __future__ import annotations

from ..extensions import db
from stationery.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Monetary transaction that consumes stock: a student purchase, or the
    mirror record of a completed stock transfer.

    LEDGER CLAIM:
    stock_deducted is the single source of truth for whether this
    transaction's items currently hold deductions against the location
    ledger. Every mutation of is_paid or items keeps it in sync.

    Transfer mirrors never hold a claim (the StockTransfer owns its
    ledger effects), so their stock_deducted is always False.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_kind_date", "kind", "transaction_date"),
        db.Index("ix_transactions_location_date", "location_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    # PURCHASE or TRANSFER
    kind = db.Column(db.String(16), nullable=False, default="PURCHASE", index=True)
    catalog = db.Column(db.String(16), nullable=False, default="STATIONERY")

    # Location whose ledger the items are drawn from (source location for transfers, may be null)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    # Destination location for transfer mirrors
    counterparty_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=True, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)
    include_in_revenue = db.Column(db.Boolean, nullable=False, default=True)

    remarks = db.Column(db.Text, nullable=False, default="")
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransactionItem",
        order_by="TransactionItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    location = db.relationship("Location", foreign_keys=[location_id])
    counterparty_location = db.relationship("Location", foreign_keys=[counterparty_location_id])
    student = db.relationship("Student")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} doc_num={self.document_number!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "kind": self.kind,
            "catalog": self.catalog,
            "location_id": self.location_id,
            "counterparty_location_id": self.counterparty_location_id,
            "student_id": self.student_id,
            "staff_id": self.staff_id,
            "items": [item.to_dict() for item in self.items],
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "stock_deducted": self.stock_deducted,
            "include_in_revenue": self.include_in_revenue,
            "remarks": self.remarks,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TransactionItem(db.Model):
    """
    Line item of a transaction.

    quantity_deducted records how many units of a non-set item hold a live
    deduction (it may be below quantity on partial fulfillment). Set items
    track deductions per component through TransactionSetComponent.taken.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # No FK: history must survive product deletion
    product_id = db.Column(db.Integer, nullable=False, index=True)
    name_snapshot = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    is_set = db.Column(db.Boolean, nullable=False, default=False)
    # fulfilled or partial
    status = db.Column(db.String(16), nullable=False, default="fulfilled")
    quantity_deducted = db.Column(db.Integer, nullable=False, default=0)

    set_components = db.relationship(
        "TransactionSetComponent",
        order_by="TransactionSetComponent.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        data = {
            "product_id": self.product_id,
            "name": self.name_snapshot,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "is_set": self.is_set,
            "status": self.status,
        }
        if self.is_set:
            data["set_components"] = [c.to_dict() for c in self.set_components]
        else:
            data["quantity_deducted"] = self.quantity_deducted
        return data


class TransactionSetComponent(db.Model):
    """
    One bundle component of a set line item.

    taken=False means the component was not deducted. shortage=True marks
    that it was withheld for lack of stock (retried when payment is
    confirmed later) as opposed to an operator declaring it not given out.
    """
    __tablename__ = "transaction_set_components"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("transaction_items.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    component_product_id = db.Column(db.Integer, nullable=False)
    name_snapshot = db.Column(db.String(255), nullable=False, default="")
    quantity = db.Column(db.Integer, nullable=False, default=0)

    taken = db.Column(db.Boolean, nullable=False, default=True)
    shortage = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "component_product_id": self.component_product_id,
            "name": self.name_snapshot,
            "quantity": self.quantity,
            "taken": self.taken,
            "shortage": self.shortage,
            "reason": self.reason,
        }
