# backend/stationery/routes/transfers.py
"""
Stock transfer API routes.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import transfer_service
from ..services.concurrency import commit_or_conflict
from ..validation import StockError, ValidationError, coerce_int


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _unexpected(action: str, transfer_id: int | None = None):
    db.session.rollback()
    current_app.logger.exception("Failed to %s transfer %s", action, transfer_id if transfer_id else "")
    return jsonify({"error": "Unexpected error"}), 500


@transfers_bp.route("", methods=["POST"])
def create_transfer():
    """
    Create a new transfer (status: PENDING).

    Request body:
    {
        "items": [{"product_id": int, "quantity": int}] | {...},
        "to_location_id": int,
        "from_location_id": int (optional; central stock when omitted),
        "deduct_from_central": bool (optional, default true),
        "include_in_revenue": bool (optional, default true),
        "is_paid": bool (optional),
        "remarks": str (optional),
        "created_by": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request or insufficient source stock
        404: Location or product not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.create_transfer(
            data.get("items"),
            data["to_location_id"],
            from_location_id=data.get("from_location_id"),
            deduct_from_central=data.get("deduct_from_central", True),
            include_in_revenue=data.get("include_in_revenue", True),
            is_paid=data.get("is_paid", False),
            remarks=data.get("remarks"),
            created_by=data.get("created_by"),
        )

        commit_or_conflict()

        return jsonify(transfer.to_dict()), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}", "kind": ValidationError.kind}), 400
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("create")


@transfers_bp.route("", methods=["GET"])
def list_transfers():
    """
    List transfers.

    Query params:
    - status: PENDING | COMPLETED | CANCELLED (optional)
    - location_id: int (optional; matches source or destination)
    """
    try:
        location_id = request.args.get("location_id")
        transfers = transfer_service.list_transfers(
            status=request.args.get("status"),
            location_id=coerce_int(location_id, "location_id") if location_id else None,
        )
        return jsonify({"items": [t.to_dict() for t in transfers], "count": len(transfers)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id)
        return jsonify(transfer.to_dict()), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.route("/<int:transfer_id>", methods=["PUT", "PATCH"])
def update_transfer(transfer_id: int):
    """
    Update a transfer.

    Request body (all optional):
    {
        "status": "COMPLETED" | "CANCELLED",
        "is_paid": bool,
        "remarks": str,
        "deduct_from_central": bool (pending only),
        "include_in_revenue": bool (pending only)
    }

    Returns:
        200: Transfer updated
        400: Invalid request or insufficient stock on completion
        404: Transfer not found
        409: Illegal status transition
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.update_transfer(
            transfer_id,
            status=data.get("status"),
            is_paid=data.get("is_paid"),
            remarks=data.get("remarks"),
            deduct_from_central=data.get("deduct_from_central"),
            include_in_revenue=data.get("include_in_revenue"),
        )

        commit_or_conflict()

        return jsonify(transfer.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("update", transfer_id)


@transfers_bp.route("/<int:transfer_id>/complete", methods=["POST"])
def complete_transfer(transfer_id: int):
    """
    Complete a pending transfer: move the stock and record the mirror
    transaction.

    Returns:
        200: Transfer completed
        400: Insufficient stock at the source
        404: Transfer not found
        409: Transfer is not pending
    """
    try:
        transfer = transfer_service.complete_transfer(transfer_id)

        commit_or_conflict()

        return jsonify(transfer.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("complete", transfer_id)


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
def cancel_transfer(transfer_id: int):
    try:
        transfer = transfer_service.cancel_transfer(transfer_id)

        commit_or_conflict()

        return jsonify(transfer.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("cancel", transfer_id)


@transfers_bp.route("/<int:transfer_id>", methods=["DELETE"])
def delete_transfer(transfer_id: int):
    """
    Delete a transfer; a completed transfer's stock movement is reversed
    and its mirror transaction removed.
    """
    try:
        transfer_service.delete_transfer(transfer_id)

        commit_or_conflict()

        return jsonify({"message": "Transfer deleted successfully"}), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("delete", transfer_id)
