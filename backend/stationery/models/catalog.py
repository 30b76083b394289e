from __future__ import annotations

from ..extensions import db
from stationery.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product (stationery or general).

    CENTRAL LEDGER: central_stock is the warehouse quantity for this product.
    Location quantities live in LocationStock, never on the product row.

    SETS:
    A set product is a sellable bundle; selling it consumes its components.
    Components are always non-set products of the same catalog (one level
    of bundling only). Enforced by catalog_service at create/update time.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_catalog_name", "catalog", "name"),
        db.CheckConstraint("central_stock >= 0", name="ck_products_central_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # STATIONERY or GENERAL
    catalog = db.Column(db.String(16), nullable=False, default="STATIONERY", index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    central_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    is_set = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    set_items = db.relationship(
        "SetItem",
        foreign_keys="SetItem.set_product_id",
        order_by="SetItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} catalog={self.catalog} is_set={self.is_set}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "catalog": self.catalog,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "central_stock": self.central_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "is_set": self.is_set,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if self.is_set:
            data["set_items"] = [item.to_dict() for item in self.set_items]
        return data


class SetItem(db.Model):
    """
    One component of a set product.

    Snapshots keep historical transactions readable if the component is
    later renamed or repriced.
    """
    __tablename__ = "set_items"
    __table_args__ = (
        db.UniqueConstraint("set_product_id", "component_product_id", name="uq_set_items_set_component"),
        db.CheckConstraint("quantity >= 1", name="ck_set_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    set_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # No FK cascade: a deleted component must surface as InvalidSetConfiguration
    component_product_id = db.Column(db.Integer, nullable=False, index=True)

    position = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    name_snapshot = db.Column(db.String(255), nullable=False, default="")
    price_snapshot_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "component_product_id": self.component_product_id,
            "quantity": self.quantity,
            "name_snapshot": self.name_snapshot,
            "price_snapshot_cents": self.price_snapshot_cents,
        }
