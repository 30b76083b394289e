# backend/stationery/routes/locations.py
"""
Location management routes.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import location_service
from ..services.concurrency import commit_or_conflict
from ..validation import StockError, coerce_bool


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
def list_locations():
    """
    List locations.

    Query params:
    - active: bool (optional) - only active locations when true
    """
    try:
        active_only = coerce_bool(request.args.get("active"), "active", default=False)
        locations = location_service.list_locations(active_only=active_only)
        return jsonify({"items": [loc.to_dict() for loc in locations], "count": len(locations)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@locations_bp.post("")
def create_location():
    data = request.get_json(silent=True) or {}

    try:
        location = location_service.create_location(
            data.get("name"),
            address=data.get("address"),
            description=data.get("description"),
            courses=data.get("courses"),
        )
        commit_or_conflict()
        return jsonify(location.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Unexpected error"}), 500


@locations_bp.get("/<int:location_id>")
def get_location(location_id: int):
    try:
        return jsonify(location_service.get_location(location_id).to_dict()), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@locations_bp.route("/<int:location_id>", methods=["PUT", "PATCH"])
def update_location(location_id: int):
    data = request.get_json(silent=True) or {}

    try:
        location = location_service.update_location(
            location_id,
            name=data.get("name"),
            address=data.get("address"),
            description=data.get("description"),
            is_active=data.get("is_active"),
            courses=data.get("courses"),
        )
        commit_or_conflict()
        return jsonify(location.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update location %s", location_id)
        return jsonify({"error": "Unexpected error"}), 500


@locations_bp.delete("/<int:location_id>")
def delete_location(location_id: int):
    """
    Delete a location.

    Returns:
        200: Deleted
        404: Location not found
        409: Location still holds stock or is used by a transfer or transaction
    """
    try:
        location_service.delete_location(location_id)
        commit_or_conflict()
        return jsonify({"message": "Location deleted successfully"}), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete location %s", location_id)
        return jsonify({"error": "Unexpected error"}), 500


@locations_bp.get("/<int:location_id>/stock")
def get_location_stock(location_id: int):
    """
    Ledger view of one location.

    Query params:
    - catalog: STATIONERY | GENERAL (optional, default STATIONERY)
    """
    try:
        return jsonify(location_service.get_location_stock(location_id, request.args.get("catalog"))), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code
