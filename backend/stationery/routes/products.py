# backend/stationery/routes/products.py
"""
Catalog routes: stationery and general products, including set
configuration.
"""
from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import catalog_service
from ..services.concurrency import commit_or_conflict
from ..validation import StockError, coerce_bool


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products.

    Query params:
    - catalog: STATIONERY | GENERAL (optional)
    - include_inactive: bool (optional)
    """
    try:
        products = catalog_service.list_products(
            catalog=request.args.get("catalog"),
            include_inactive=coerce_bool(request.args.get("include_inactive"), "include_inactive", default=False),
        )
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
def create_product():
    """
    Create a product.

    Request body:
    {
        "name": str,
        "price_cents": int,
        "catalog": "STATIONERY" | "GENERAL" (optional),
        "central_stock": int (optional),
        "is_set": bool (optional),
        "set_items": [{"component_product_id": int, "quantity": int}] (sets only),
        "description": str (optional),
        "category": str (optional),
        "low_stock_threshold": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        product = catalog_service.create_product(
            name=data.get("name"),
            price_cents=data.get("price_cents"),
            catalog=data.get("catalog"),
            central_stock=data.get("central_stock", 0),
            is_set=data.get("is_set", False),
            set_items=data.get("set_items"),
            description=data.get("description"),
            category=data.get("category"),
            low_stock_threshold=data.get("low_stock_threshold", 10),
        )
        commit_or_conflict()
        return jsonify(product.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Unexpected error"}), 500


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return jsonify(catalog_service.get_product(product_id).to_dict()), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
def update_product(product_id: int):
    data = request.get_json(silent=True) or {}

    try:
        set_items = data.pop("set_items", None)
        product = catalog_service.update_product(product_id, patch=data, set_items=set_items)
        commit_or_conflict()
        return jsonify(product.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Unexpected error"}), 500


@products_bp.delete("/<int:product_id>")
def delete_product(product_id: int):
    try:
        catalog_service.delete_product(product_id)
        commit_or_conflict()
        return jsonify({"message": "Product deleted successfully"}), 200

    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product %s", product_id)
        return jsonify({"error": "Unexpected error"}), 500
