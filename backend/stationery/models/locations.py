from __future__ import annotations

from ..extensions import db
from stationery.time_utils import to_utc_z


class Location(db.Model):
    """
    College location holding its own stock.

    OWNERSHIP: A location exclusively owns its ledger cells (LocationStock).
    No other entity keeps a copy of location quantities.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=False, default="")
    description = db.Column(db.Text, nullable=False, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    courses = db.relationship(
        "LocationCourse",
        order_by="LocationCourse.course",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    @property
    def course_names(self) -> list[str]:
        return [c.course for c in self.courses]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "description": self.description,
            "is_active": self.is_active,
            "courses": self.course_names,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LocationCourse(db.Model):
    """Course served by a location; used to attribute purchases to a location."""
    __tablename__ = "location_courses"
    __table_args__ = (
        db.UniqueConstraint("location_id", "course", name="uq_location_courses_location_course"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    course = db.Column(db.String(64), nullable=False, index=True)


class LocationStock(db.Model):
    """
    Ledger cell: quantity of one product at one location, per catalog.

    An absent row means quantity 0. Rows that reach 0 through a delta are
    removed; absolute writes (audit approval) keep the row.
    """
    __tablename__ = "location_stock"
    __table_args__ = (
        db.UniqueConstraint("location_id", "catalog", "product_id", name="uq_location_stock_cell"),
        db.CheckConstraint("quantity >= 0", name="ck_location_stock_quantity_nonneg"),
        db.Index("ix_location_stock_location_catalog", "location_id", "catalog"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    catalog = db.Column(db.String(16), nullable=False, default="STATIONERY")
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "catalog": self.catalog,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
