"""
Set resolver and catalog maintenance tests.
"""

import pytest

from stationery.models import Product, SetItem
from stationery.services import catalog_service
from stationery.services.set_service import expand, load_products
from stationery.validation import InvalidSetConfiguration, ProductNotFound


class TestExpand:

    def test_non_set_expands_to_itself(self, pen):
        requirements = expand(pen, 4, {pen.id: pen})
        assert [(r.product_id, r.multiplier, r.required) for r in requirements] == [(pen.id, 1, 4)]

    def test_set_multiplies_component_quantities(self, starter_kit, pen, notebook):
        products = load_products([starter_kit.id])
        requirements = expand(starter_kit, 3, products)
        assert {r.product_id: r.required for r in requirements} == {pen.id: 6, notebook.id: 3}

    def test_empty_set_is_invalid(self, db_session):
        empty = Product(name="Empty Kit", price_cents=100, is_set=True)
        db_session.add(empty)
        db_session.commit()
        with pytest.raises(InvalidSetConfiguration):
            expand(empty, 1, load_products([empty.id]))

    def test_missing_component_is_invalid(self, db_session, pen):
        broken = Product(name="Broken Kit", price_cents=100, is_set=True)
        broken.set_items = [SetItem(component_product_id=9999, quantity=1, position=0)]
        db_session.add(broken)
        db_session.commit()
        with pytest.raises(InvalidSetConfiguration) as exc:
            expand(broken, 1, load_products([broken.id]))
        assert "9999" in str(exc.value)

    def test_load_products_names_missing_ids(self, pen):
        with pytest.raises(ProductNotFound) as exc:
            load_products([pen.id, 424242])
        assert exc.value.details["product_ids"] == [424242]

    def test_load_products_lenient(self, pen):
        assert set(load_products([pen.id, 424242], strict=False)) == {pen.id}


class TestCatalogService:

    def test_create_set_merges_duplicate_components(self, db_session, pen, notebook):
        kit = catalog_service.create_product(
            name="Exam Kit",
            price_cents=2000,
            is_set=True,
            set_items=[
                {"component_product_id": pen.id, "quantity": 1},
                {"component_product_id": pen.id, "quantity": 2},
                {"component_product_id": notebook.id},
            ],
        )
        db_session.commit()
        assert [(si.component_product_id, si.quantity) for si in kit.set_items] == [(pen.id, 3), (notebook.id, 1)]
        assert kit.set_items[0].name_snapshot == "Blue Pen"

    def test_set_cannot_nest_sets(self, db_session, starter_kit):
        with pytest.raises(InvalidSetConfiguration):
            catalog_service.create_product(
                name="Mega Kit",
                price_cents=1,
                is_set=True,
                set_items=[{"component_product_id": starter_kit.id, "quantity": 1}],
            )

    def test_general_catalog_cannot_hold_sets(self, db_session, pen):
        with pytest.raises(InvalidSetConfiguration):
            catalog_service.create_product(
                name="Uniform Bundle",
                price_cents=1,
                catalog="GENERAL",
                is_set=True,
                set_items=[{"component_product_id": pen.id}],
            )

    def test_replace_set_items(self, db_session, starter_kit, pen):
        catalog_service.update_product(
            starter_kit.id,
            patch={"price_cents": 7000},
            set_items=[{"component_product_id": pen.id, "quantity": 5}],
        )
        db_session.commit()
        assert starter_kit.price_cents == 7000
        assert [(si.component_product_id, si.quantity) for si in starter_kit.set_items] == [(pen.id, 5)]

    def test_delete_product(self, db_session, stock, campus, pen):
        stock(campus, pen, 4)
        catalog_service.delete_product(pen.id)
        db_session.commit()
        with pytest.raises(ProductNotFound):
            catalog_service.get_product(pen.id)
