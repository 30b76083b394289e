# backend/stationery/routes/people.py
"""
Student and staff routes (recipients and recorders of purchases).
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import student_service
from ..services.concurrency import commit_or_conflict
from ..validation import StockError


people_bp = Blueprint("people", __name__, url_prefix="/api")


@people_bp.post("/students")
def create_student():
    data = request.get_json(silent=True) or {}

    try:
        student = student_service.create_student(
            student_code=data.get("student_code"),
            name=data.get("name"),
            course=data.get("course"),
            year=data.get("year"),
            branch=data.get("branch"),
        )
        commit_or_conflict()
        return jsonify(student.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create student")
        return jsonify({"error": "Unexpected error"}), 500


@people_bp.get("/students/<int:student_id>")
def get_student(student_id: int):
    try:
        return jsonify(student_service.get_student(student_id).to_dict()), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@people_bp.post("/staff")
def create_staff_member():
    data = request.get_json(silent=True) or {}

    try:
        staff = student_service.create_staff_member(
            data.get("name"),
            assigned_location_id=data.get("assigned_location_id"),
        )
        commit_or_conflict()
        return jsonify(staff.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff member")
        return jsonify({"error": "Unexpected error"}), 500
