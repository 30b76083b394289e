"""
Pytest fixtures for stationery backend tests.

Provides test database setup, catalog/location fixtures, and test client.
"""

import pytest

from stationery import create_app
from stationery.extensions import db
from stationery.models import Location, LocationCourse, Product, SetItem, StaffMember, Student
from stationery.services.ledger_service import StockLedger


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def campus(db_session):
    """Main location serving the BCA course."""
    location = Location(name="Main Campus", address="1 College Road")
    location.courses = [LocationCourse(course="BCA")]
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def annex(db_session):
    """Second location with no courses."""
    location = Location(name="City Annex", address="22 Market Street")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def pen(db_session):
    product = Product(name="Blue Pen", price_cents=1000, central_stock=100)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def notebook(db_session):
    product = Product(name="Ruled Notebook", price_cents=5000, central_stock=50)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def starter_kit(db_session, pen, notebook):
    """Set product: 2 pens + 1 notebook."""
    kit = Product(name="Starter Kit", price_cents=6500, is_set=True)
    kit.set_items = [
        SetItem(component_product_id=pen.id, position=0, quantity=2,
                name_snapshot=pen.name, price_snapshot_cents=pen.price_cents),
        SetItem(component_product_id=notebook.id, position=1, quantity=1,
                name_snapshot=notebook.name, price_snapshot_cents=notebook.price_cents),
    ]
    db_session.add(kit)
    db_session.commit()
    return kit


@pytest.fixture(scope='function')
def student(db_session):
    student = Student(student_code="BCA-2026-001", name="Asha Rao", course="BCA", year=1)
    db_session.add(student)
    db_session.commit()
    return student


@pytest.fixture(scope='function')
def staff(db_session, annex):
    """Staff member assigned to the annex."""
    member = StaffMember(name="Front Desk", assigned_location_id=annex.id)
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture(scope='function')
def stock(db_session):
    """Seed a location ledger cell: stock(location, product, quantity)."""
    def _stock(location, product, quantity, catalog="STATIONERY"):
        StockLedger(catalog).set_quantity(location.id, product.id, quantity)
        db_session.commit()
    return _stock


@pytest.fixture(scope='function')
def ledger(db_session):
    return StockLedger()
