# Overview: Service-layer operations for students and staff; received items kept as a normalized set.

from __future__ import annotations

import re
from typing import Iterable

from ..extensions import db
from ..models import StaffMember, Student, StudentReceivedItem
from ..validation import NotFoundError, ValidationError, coerce_int

_WHITESPACE = re.compile(r"\s+")


def normalize_item_key(name: str) -> str:
    """'Lab  Record Book' -> 'lab_record_book'"""
    return _WHITESPACE.sub("_", (name or "").strip().lower())


def get_student(student_id: int) -> Student:
    student = db.session.query(Student).filter_by(id=student_id).first()
    if student is None:
        raise NotFoundError(f"Student {student_id} not found", details={"student_id": student_id})
    return student


def create_student(
    *,
    student_code: str,
    name: str,
    course: str | None = None,
    year: int | None = None,
    branch: str | None = None,
) -> Student:
    if not student_code or not name:
        raise ValidationError("student_code and name are required")
    if db.session.query(Student).filter_by(student_code=student_code).first():
        raise ValidationError(f"Student {student_code} already exists")

    student = Student(
        student_code=student_code,
        name=name,
        course=course,
        year=coerce_int(year, "year", minimum=1) if year is not None else None,
        branch=branch or "",
    )
    db.session.add(student)
    db.session.flush()
    return student


def create_staff_member(name: str, assigned_location_id: int | None = None) -> StaffMember:
    if not name:
        raise ValidationError("Staff name is required")
    staff = StaffMember(name=name, assigned_location_id=assigned_location_id)
    db.session.add(staff)
    db.session.flush()
    return staff


def mark_items_received(student: Student, item_names: Iterable[str]) -> set[str]:
    """Add normalized item names to the student's received set; returns the keys added."""
    existing = {r.item_key for r in student.received_items}
    added = set()
    for name in item_names:
        key = normalize_item_key(name)
        if not key or key in existing or key in added:
            continue
        student.received_items.append(StudentReceivedItem(item_key=key))
        added.add(key)
    return added


def has_received(student: Student, item_name: str) -> bool:
    key = normalize_item_key(item_name)
    return any(r.item_key == key for r in student.received_items)
