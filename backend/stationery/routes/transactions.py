# backend/stationery/routes/transactions.py
"""
Purchase transaction API routes.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import transaction_service
from ..services.concurrency import commit_or_conflict
from ..time_utils import parse_iso_date
from ..validation import StockError, ValidationError, coerce_bool, coerce_int


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.route("", methods=["POST"])
def create_transaction():
    """
    Create a purchase.

    Request body:
    {
        "student_id": int,
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int}] | {...},
        "location_id": int (optional),
        "staff_id": int (optional),
        "is_paid": bool (optional, default false),
        "payment_method": "cash" | "online" | "transfer" (optional),
        "remarks": str (optional),
        "catalog": "STATIONERY" | "GENERAL" (optional)
    }

    Returns:
        201: Transaction created
        400: Invalid request, unknown product, broken set, no location
        404: Student/location/staff not found
        409: Stock changed concurrently
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = transaction_service.create_transaction(
            student_id=coerce_int(data["student_id"], "student_id"),
            items=data.get("items"),
            location_id=data.get("location_id"),
            staff_id=data.get("staff_id"),
            is_paid=data.get("is_paid", False),
            payment_method=data.get("payment_method"),
            remarks=data.get("remarks"),
            catalog=data.get("catalog"),
        )

        commit_or_conflict()

        return jsonify(txn.to_dict()), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}", "kind": ValidationError.kind}), 400
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("", methods=["GET"])
def list_transactions():
    """
    List transactions.

    Query params:
    - kind: PURCHASE | TRANSFER (optional)
    - location_id, student_id: int (optional)
    - is_paid: bool (optional)
    - start, end: ISO date or datetime (optional)
    """
    try:
        is_paid = request.args.get("is_paid")
        location_id = request.args.get("location_id")
        student_id = request.args.get("student_id")
        txns = transaction_service.list_transactions(
            kind=request.args.get("kind"),
            location_id=coerce_int(location_id, "location_id") if location_id else None,
            student_id=coerce_int(student_id, "student_id") if student_id else None,
            is_paid=coerce_bool(is_paid, "is_paid") if is_paid else None,
            start=parse_iso_date(request.args.get("start")),
            end=parse_iso_date(request.args.get("end"), end_of_day=True),
        )
        return jsonify({"items": [t.to_dict() for t in txns], "count": len(txns)}), 200

    except ValueError:
        return jsonify({"error": "Invalid date filter", "kind": ValidationError.kind}), 400
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@transactions_bp.route("/<int:transaction_id>", methods=["GET"])
def get_transaction(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        return jsonify(txn.to_dict()), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@transactions_bp.route("/<int:transaction_id>", methods=["PUT", "PATCH"])
def edit_transaction(transaction_id: int):
    """
    Edit items and/or payment state.

    Request body (all optional):
    {
        "items": [...],
        "is_paid": bool,
        "payment_method": str,
        "remarks": str
    }

    Returns:
        200: Transaction updated
        400: Invalid request
        404: Transaction not found
        409: Transfer-owned transaction, or stock changed concurrently
    """
    data = request.get_json(silent=True) or {}

    try:
        txn = transaction_service.edit_transaction(
            transaction_id,
            items=data.get("items"),
            is_paid=data.get("is_paid"),
            payment_method=data.get("payment_method"),
            remarks=data.get("remarks"),
        )

        commit_or_conflict()

        return jsonify(txn.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to edit transaction %s", transaction_id)
        return jsonify({"error": "Unexpected error"}), 500


@transactions_bp.route("/<int:transaction_id>", methods=["DELETE"])
def delete_transaction(transaction_id: int):
    try:
        transaction_service.delete_transaction(transaction_id)

        commit_or_conflict()

        return jsonify({"message": "Transaction deleted successfully"}), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete transaction %s", transaction_id)
        return jsonify({"error": "Unexpected error"}), 500
