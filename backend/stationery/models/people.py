from __future__ import annotations

from ..extensions import db
from stationery.time_utils import to_utc_z


class Student(db.Model):
    """
    Purchase recipient.

    Received items are kept as a set of normalized item names
    (StudentReceivedItem), not as a free-form flag map.
    """
    __tablename__ = "students"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    student_code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    course = db.Column(db.String(64), nullable=True, index=True)
    year = db.Column(db.Integer, nullable=True)
    branch = db.Column(db.String(64), nullable=False, default="")
    paid = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    received_items = db.relationship(
        "StudentReceivedItem",
        order_by="StudentReceivedItem.item_key",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id} code={self.student_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_code": self.student_code,
            "name": self.name,
            "course": self.course,
            "year": self.year,
            "branch": self.branch,
            "paid": self.paid,
            "received_items": [r.item_key for r in self.received_items],
            "created_at": to_utc_z(self.created_at),
        }


class StudentReceivedItem(db.Model):
    __tablename__ = "student_received_items"
    __table_args__ = (
        db.UniqueConstraint("student_id", "item_key", name="uq_student_received_items"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False, index=True)
    item_key = db.Column(db.String(255), nullable=False)


class StaffMember(db.Model):
    """Staff account reference; only its location assignment matters to the stock core."""
    __tablename__ = "staff_members"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    assigned_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    assigned_location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "assigned_location_id": self.assigned_location_id,
        }
