# Overview: Service-layer operations for locations: CRUD, ledger view, and purchase location resolution.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Location, LocationCourse, LocationStock, StaffMember, StockTransfer, Student, Transaction
from ..validation import (
    InvalidState,
    LocationNotFound,
    LocationRequired,
    NotFoundError,
    ValidationError,
    require_catalog,
)
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import StockLedger


def _normalize_courses(courses) -> list[str]:
    if courses is None:
        return []
    if not isinstance(courses, (list, tuple)):
        raise ValidationError("courses must be a list of strings")
    normalized = []
    for course in courses:
        if not isinstance(course, str) or not course.strip():
            raise ValidationError("courses must be a list of non-empty strings")
        if course.strip() not in normalized:
            normalized.append(course.strip())
    return normalized


def _require_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Location).filter(Location.name == name)
    if exclude_id is not None:
        query = query.filter(Location.id != exclude_id)
    if query.first():
        raise ValidationError("Location with this name already exists")


def get_location(location_id: int, *, require_active: bool = False) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise LocationNotFound(f"Location {location_id} not found", details={"location_id": location_id})
    if require_active and not location.is_active:
        raise LocationNotFound(f"Location {location.name} is inactive", details={"location_id": location_id})
    return location


def list_locations(active_only: bool = False) -> list[Location]:
    query = db.session.query(Location)
    if active_only:
        query = query.filter(Location.is_active.is_(True))
    return query.order_by(Location.name.asc()).all()


def create_location(
    name: str,
    address: str | None = None,
    description: str | None = None,
    courses=None,
) -> Location:
    def _op():
        if not name or not name.strip():
            raise ValidationError("Location name is required")
        _require_unique_name(name.strip())

        location = Location(
            name=name.strip(),
            address=(address or "").strip(),
            description=(description or "").strip(),
            is_active=True,
        )
        location.courses = [LocationCourse(course=c) for c in _normalize_courses(courses)]

        db.session.add(location)
        db.session.flush()
        return location

    return run_with_retry(_op)


def update_location(
    location_id: int,
    *,
    name: str | None = None,
    address: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
    courses=None,
) -> Location:
    def _op():
        location = lock_for_update(db.session.query(Location).filter_by(id=location_id)).first()
        if location is None:
            raise LocationNotFound(f"Location {location_id} not found", details={"location_id": location_id})

        if name is not None and name.strip():
            _require_unique_name(name.strip(), exclude_id=location_id)
            location.name = name.strip()
        if address is not None:
            location.address = address.strip()
        if description is not None:
            location.description = description.strip()
        if is_active is not None:
            location.is_active = bool(is_active)
        if courses is not None:
            normalized = _normalize_courses(courses)
            location.courses = []
            db.session.flush()
            location.courses = [LocationCourse(course=c) for c in normalized]

        db.session.flush()
        return location

    return run_with_retry(_op)


def delete_location(location_id: int) -> None:
    """Delete a location that holds no stock and no transfer or transaction references."""
    location = get_location(location_id)

    transfers_count = (
        db.session.query(StockTransfer)
        .filter(
            (StockTransfer.to_location_id == location_id)
            | (StockTransfer.from_location_id == location_id)
        )
        .count()
    )
    if transfers_count:
        raise InvalidState(f"Cannot delete location. It is used in {transfers_count} transfer(s).")

    transactions_count = (
        db.session.query(Transaction)
        .filter(
            (Transaction.location_id == location_id)
            | (Transaction.counterparty_location_id == location_id)
        )
        .count()
    )
    if transactions_count:
        raise InvalidState(f"Cannot delete location. It is used in {transactions_count} transaction(s).")

    total_stock = sum(
        cell.quantity
        for cell in db.session.query(LocationStock).filter_by(location_id=location_id).all()
    )
    if total_stock > 0:
        raise InvalidState(
            f"Cannot delete location. It has {total_stock} items in stock. "
            f"Please transfer or clear stock first."
        )

    db.session.query(LocationStock).filter_by(location_id=location_id).delete(synchronize_session="fetch")
    db.session.delete(location)
    db.session.flush()


def get_location_stock(location_id: int, catalog: str | None = None) -> dict:
    location = get_location(location_id)
    ledger = StockLedger(require_catalog(catalog))
    return {
        "location": {"id": location.id, "name": location.name, "address": location.address},
        "catalog": ledger.catalog,
        "stock": [cell.to_dict() for cell in ledger.location_cells(location.id)],
    }


def resolve_purchase_location(
    *,
    location_id: int | None = None,
    staff_id: int | None = None,
    student: Student | None = None,
) -> Location:
    """
    Attribute a purchase to a location.

    Order: explicit location -> staff member's assigned location ->
    location serving the student's course. Raises LocationRequired when
    none applies.
    """
    if location_id is not None:
        return get_location(location_id)

    if staff_id is not None:
        staff = db.session.query(StaffMember).filter_by(id=staff_id).first()
        if staff is None:
            raise NotFoundError(f"Staff member {staff_id} not found", details={"staff_id": staff_id})
        if staff.assigned_location_id is not None:
            return get_location(staff.assigned_location_id)

    if student is not None and student.course:
        location = (
            db.session.query(Location)
            .join(LocationCourse, LocationCourse.location_id == Location.id)
            .filter(LocationCourse.course == student.course, Location.is_active.is_(True))
            .order_by(Location.id.asc())
            .first()
        )
        if location is not None:
            current_app.logger.info(
                "Purchase for student %s attributed to %s via course %s",
                student.id, location.name, student.course,
            )
            return location

    raise LocationRequired(
        "Transaction must be associated with a location for stock deduction. "
        "Please ensure staff is assigned to a location."
    )
