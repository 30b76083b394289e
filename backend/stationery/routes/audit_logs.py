# backend/stationery/routes/audit_logs.py
"""
Stock audit approval API routes.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import audit_service
from ..services.concurrency import commit_or_conflict
from ..validation import StockError, ValidationError, coerce_int


audit_logs_bp = Blueprint("audit_logs", __name__, url_prefix="/api/audit-logs")


@audit_logs_bp.route("", methods=["POST"])
def propose_audit():
    """
    Propose a stock correction.

    Request body:
    {
        "product_id": int,
        "location_id": int (optional; central stock when omitted),
        "before_quantity": int,
        "after_quantity": int,
        "notes": str (optional),
        "created_by": str (optional)
    }

    Returns:
        201: Audit log created (PENDING)
        400: Invalid request
        404: Product or location not found
    """
    data = request.get_json(silent=True) or {}

    try:
        audit_log = audit_service.propose_audit(
            product_id=data["product_id"],
            location_id=data.get("location_id"),
            before_quantity=data["before_quantity"],
            after_quantity=data["after_quantity"],
            notes=data.get("notes"),
            created_by=data.get("created_by"),
        )

        commit_or_conflict()

        return jsonify(audit_log.to_dict()), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}", "kind": ValidationError.kind}), 400
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create audit log")
        return jsonify({"error": "Unexpected error"}), 500


@audit_logs_bp.route("", methods=["GET"])
def list_audit_logs():
    try:
        location_id = request.args.get("location_id")
        logs = audit_service.list_audit_logs(
            status=request.args.get("status"),
            location_id=coerce_int(location_id, "location_id") if location_id else None,
        )
        return jsonify({"items": [log.to_dict() for log in logs], "count": len(logs)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@audit_logs_bp.route("/<int:audit_log_id>", methods=["GET"])
def get_audit_log(audit_log_id: int):
    try:
        return jsonify(audit_service.get_audit_log(audit_log_id).to_dict()), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@audit_logs_bp.route("/<int:audit_log_id>/approve", methods=["POST"])
def approve_audit(audit_log_id: int):
    """
    Approve a pending audit; the target cell is set to after_quantity.

    Returns:
        200: Approved
        404: Audit log not found
        409: Audit log is not pending
    """
    data = request.get_json(silent=True) or {}

    try:
        audit_log = audit_service.approve_audit(
            audit_log_id,
            approved_by=data.get("approved_by"),
            notes=data.get("notes"),
        )

        commit_or_conflict()

        return jsonify(audit_log.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve audit log %s", audit_log_id)
        return jsonify({"error": "Unexpected error"}), 500


@audit_logs_bp.route("/<int:audit_log_id>/reject", methods=["POST"])
def reject_audit(audit_log_id: int):
    data = request.get_json(silent=True) or {}

    try:
        audit_log = audit_service.reject_audit(audit_log_id, notes=data.get("notes"))

        commit_or_conflict()

        return jsonify(audit_log.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject audit log %s", audit_log_id)
        return jsonify({"error": "Unexpected error"}), 500
