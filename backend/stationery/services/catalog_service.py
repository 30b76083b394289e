# backend/stationery/services/catalog_service.py
"""
Catalog Service

Products are read by the stock engines; this module is the only place
that writes them. Set configuration is validated here so the engines can
assume one level of bundling:
- a set has at least one component
- each component exists, is not itself a set, and shares the set's catalog
- each component quantity is >= 1 (duplicates are merged)
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import LocationStock, Product, SetItem
from ..validation import (
    CATALOG_STATIONERY,
    InvalidSetConfiguration,
    ProductNotFound,
    ValidationError,
    coerce_bool,
    coerce_int,
    coerce_price_cents,
    one_or_many,
    require_catalog,
)
from .concurrency import lock_for_update, run_with_retry

PRODUCT_MUTABLE_FIELDS = {"name", "description", "category", "price_cents", "low_stock_threshold", "is_active"}


def list_products(catalog: str | None = None, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if catalog:
        query = query.filter(Product.catalog == require_catalog(catalog))
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _build_set_items(set_product: Product, raw_items) -> list[SetItem]:
    if set_product.catalog != CATALOG_STATIONERY:
        raise InvalidSetConfiguration("Only stationery products can be sets")

    merged: dict[int, int] = {}
    for raw in one_or_many(raw_items, "set_items"):
        component_id = coerce_int(raw.get("component_product_id"), "component_product_id", minimum=1)
        quantity = coerce_int(raw.get("quantity", 1), "quantity", minimum=1)
        if set_product.id is not None and component_id == set_product.id:
            raise InvalidSetConfiguration("A set cannot contain itself")
        merged[component_id] = merged.get(component_id, 0) + quantity

    components = {
        p.id: p for p in db.session.query(Product).filter(Product.id.in_(list(merged))).all()
    }

    set_items = []
    for position, (component_id, quantity) in enumerate(merged.items()):
        component = components.get(component_id)
        if component is None:
            raise InvalidSetConfiguration(
                f"Set component {component_id} not found",
                details={"component_product_id": component_id},
            )
        if component.is_set:
            raise InvalidSetConfiguration(
                f"{component.name} is a set and cannot be a component of another set",
                details={"component_product_id": component_id},
            )
        if component.catalog != set_product.catalog:
            raise InvalidSetConfiguration(
                f"{component.name} belongs to the {component.catalog} catalog",
                details={"component_product_id": component_id},
            )
        set_items.append(SetItem(
            component_product_id=component_id,
            position=position,
            quantity=quantity,
            name_snapshot=component.name,
            price_snapshot_cents=component.price_cents,
        ))
    return set_items


def create_product(
    *,
    name: str,
    price_cents,
    catalog: str = CATALOG_STATIONERY,
    central_stock=0,
    is_set: bool = False,
    set_items=None,
    description: str | None = None,
    category: str | None = None,
    low_stock_threshold=10,
) -> Product:
    """Create a product; set products are validated and snapshotted."""
    def _op():
        if not name or not name.strip():
            raise ValidationError("Product name is required")

        product = Product(
            catalog=require_catalog(catalog),
            name=name.strip(),
            description=description,
            category=category,
            price_cents=coerce_price_cents(price_cents),
            central_stock=coerce_int(central_stock, "central_stock", minimum=0),
            low_stock_threshold=coerce_int(low_stock_threshold, "low_stock_threshold", minimum=0),
            is_set=coerce_bool(is_set, "is_set", default=False),
        )
        if product.is_set:
            product.set_items = _build_set_items(product, set_items)

        db.session.add(product)
        db.session.flush()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, *, patch: dict, set_items=None) -> Product:
    """
    Apply a field patch; when set_items is given the set configuration is
    replaced (and re-validated) as a whole.
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

        for key, value in patch.items():
            if key not in PRODUCT_MUTABLE_FIELDS:
                continue
            if key == "price_cents":
                value = coerce_price_cents(value)
            elif key == "low_stock_threshold":
                value = coerce_int(value, key, minimum=0)
            elif key == "is_active":
                value = coerce_bool(value, key)
            elif key == "name":
                if not value or not str(value).strip():
                    raise ValidationError("Product name is required")
                value = str(value).strip()
            setattr(product, key, value)

        if set_items is not None:
            if not product.is_set:
                raise InvalidSetConfiguration(f"{product.name} is not a set")
            new_items = _build_set_items(product, set_items)
            # Old rows must be gone before the replacements hit the unique constraint
            product.set_items = []
            db.session.flush()
            product.set_items = new_items

        db.session.flush()
        return product

    return run_with_retry(_op)


def delete_product(product_id: int) -> None:
    """
    Delete a product and its location cells.

    Transactions keep their name/price snapshots; sets that still reference
    the product report InvalidSetConfiguration when sold.
    """
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

    db.session.query(LocationStock).filter_by(product_id=product_id).delete(synchronize_session="fetch")
    db.session.delete(product)
    db.session.flush()
    current_app.logger.info("Deleted product %s (%s)", product_id, product.name)
