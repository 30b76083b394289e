# Overview: Set resolver: expands sellable products into component deductions.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from ..extensions import db
from ..models import Product
from ..validation import InvalidSetConfiguration, ProductNotFound


@dataclass(frozen=True)
class ComponentRequirement:
    """One ledger deduction a sold product requires."""
    product_id: int
    name: str
    multiplier: int
    required: int


def load_products(
    product_ids: Iterable[int],
    *,
    catalog: str | None = None,
    strict: bool = True,
) -> dict[int, Product]:
    """
    Load the requested products and every set component they reference
    in two queries.

    Raises ProductNotFound naming the requested ids that do not exist (or
    belong to another catalog) unless strict=False, in which case they are
    simply absent from the result. Missing components are left out of the
    result; expand() reports them as InvalidSetConfiguration.
    """
    ids = {int(pid) for pid in product_ids}
    if not ids:
        return {}

    query = db.session.query(Product).filter(Product.id.in_(ids))
    if catalog is not None:
        query = query.filter(Product.catalog == catalog)
    products = {p.id: p for p in query.all()}

    missing = sorted(ids - set(products))
    if missing and strict:
        raise ProductNotFound(
            f"Product not found: {', '.join(str(pid) for pid in missing)}",
            details={"product_ids": missing},
        )

    component_ids = {
        item.component_product_id
        for p in products.values()
        if p.is_set
        for item in p.set_items
    } - set(products)
    if component_ids:
        for component in db.session.query(Product).filter(Product.id.in_(component_ids)).all():
            products[component.id] = component

    return products


def expand(product: Product, quantity: int, products: Mapping[int, Product]) -> list[ComponentRequirement]:
    """
    Expand a sold product into its ledger deductions.

    Non-set products resolve to themselves with multiplier 1, so callers
    handle both shapes with the same loop. Sets resolve to one requirement
    per component: quantity x component multiplier.
    """
    if not product.is_set:
        return [ComponentRequirement(product.id, product.name, 1, quantity)]

    if not product.set_items:
        raise InvalidSetConfiguration(
            f"Set {product.name} has no component items configured.",
            details={"product_id": product.id},
        )

    requirements = []
    for set_item in product.set_items:
        component = products.get(set_item.component_product_id)
        if component is None:
            raise InvalidSetConfiguration(
                f"Set {product.name} contains an invalid item reference "
                f"(component {set_item.component_product_id} no longer exists).",
                details={"product_id": product.id, "component_product_id": set_item.component_product_id},
            )
        if component.is_set:
            raise InvalidSetConfiguration(
                f"Set {product.name} contains another set ({component.name}); only one level of bundling is supported.",
                details={"product_id": product.id, "component_product_id": component.id},
            )
        multiplier = set_item.quantity or 1
        requirements.append(ComponentRequirement(
            product_id=component.id,
            name=component.name,
            multiplier=multiplier,
            required=quantity * multiplier,
        ))
    return requirements
