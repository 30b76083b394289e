from __future__ import annotations

from ..extensions import db
from stationery.time_utils import to_utc_z


class StockTransfer(db.Model):
    """
    Stock movement from the central warehouse (or a source location) to a
    destination location.

    LIFECYCLE:
    1. PENDING: Created; stock checked but nothing committed
    2. COMPLETED: Source decremented, destination incremented, mirror
       Transaction created (terminal; only deletable)
    3. CANCELLED: Cancelled before completion (terminal)

    deduct_from_central and include_in_revenue are fixed once the status
    leaves PENDING.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.Index("ix_stock_transfers_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # PENDING, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    deduct_from_central = db.Column(db.Boolean, nullable=False, default=True)
    include_in_revenue = db.Column(db.Boolean, nullable=False, default=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)

    remarks = db.Column(db.Text, nullable=False, default="")
    created_by = db.Column(db.String(120), nullable=False, default="System")

    # Mirror transaction, owned by this transfer
    linked_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)

    transfer_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "StockTransferItem",
        order_by="StockTransferItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])
    linked_transaction = db.relationship("Transaction", foreign_keys=[linked_transaction_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockTransfer id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "deduct_from_central": self.deduct_from_central,
            "include_in_revenue": self.include_in_revenue,
            "is_paid": self.is_paid,
            "remarks": self.remarks,
            "created_by": self.created_by,
            "linked_transaction_id": self.linked_transaction_id,
            "transfer_date": to_utc_z(self.transfer_date),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }


class StockTransferItem(db.Model):
    __tablename__ = "stock_transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_stock_transfer_items_product"),
        db.CheckConstraint("quantity >= 1", name="ck_stock_transfer_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
        }


class AuditLog(db.Model):
    """
    Proposed manual correction of one ledger cell.

    LIFECYCLE:
    1. PENDING: Proposed with before/after quantities
    2. APPROVED: Ledger cell set to after_quantity (absolute, not a delta)
    3. REJECTED: No ledger effect; rejection note appended

    location_id NULL targets the product's central stock.
    before_quantity is caller-asserted and not re-verified against the ledger.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.CheckConstraint("before_quantity >= 0", name="ck_audit_logs_before_nonneg"),
        db.CheckConstraint("after_quantity >= 0", name="ck_audit_logs_after_nonneg"),
        db.Index("ix_audit_logs_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    catalog = db.Column(db.String(16), nullable=False, default="STATIONERY")

    before_quantity = db.Column(db.Integer, nullable=False)
    after_quantity = db.Column(db.Integer, nullable=False)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=False, default="")

    created_by = db.Column(db.String(120), nullable=False, default="System")
    approved_by = db.Column(db.String(120), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    location = db.relationship("Location")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "catalog": self.catalog,
            "before_quantity": self.before_quantity,
            "after_quantity": self.after_quantity,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class DocumentSequence(db.Model):
    """
    Atomic document sequences per document type.

    WHY: Prevent race conditions when generating document numbers
    (transactions, transfers).
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
