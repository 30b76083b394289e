"""
Stock ledger tests.

Verifies:
- Absent cells read as 0; snapshots cover exactly the requested products
- Deltas clamp at 0 and drop emptied location rows
- Guarded batches use conditional decrements and compensate on conflict
- set_quantity is absolute
- Catalog kinds keep independent ledgers
"""

import pytest

from stationery.models import LocationStock
from stationery.services.ledger_service import CENTRAL, StockLedger
from stationery.services.projection import StockProjection
from stationery.validation import StockConflictError


# =============================================================================
# READS
# =============================================================================


class TestReads:

    def test_missing_cell_reads_zero(self, ledger, campus, pen):
        assert ledger.get(campus.id, pen.id) == 0

    def test_central_cell_is_product_stock(self, ledger, pen):
        assert ledger.get(CENTRAL, pen.id) == 100

    def test_snapshot_reports_requested_products_only(self, ledger, stock, campus, pen, notebook):
        stock(campus, pen, 7)
        snap = ledger.snapshot(campus.id, [pen.id, notebook.id])
        assert snap == {pen.id: 7, notebook.id: 0}


# =============================================================================
# DELTAS
# =============================================================================


class TestDeltas:

    def test_apply_delta_creates_cell(self, db_session, ledger, campus, pen):
        assert ledger.apply_delta(campus.id, pen.id, 5) == 5
        assert ledger.get(campus.id, pen.id) == 5

    def test_underflow_clamps_at_zero_and_removes_row(self, db_session, ledger, stock, campus, pen):
        stock(campus, pen, 3)
        assert ledger.apply_delta(campus.id, pen.id, -10) == 0
        assert db_session.query(LocationStock).filter_by(location_id=campus.id).count() == 0

    def test_central_underflow_clamps(self, db_session, ledger, pen):
        assert ledger.apply_delta(CENTRAL, pen.id, -500) == 0
        assert ledger.get(CENTRAL, pen.id) == 0

    def test_unguarded_batch(self, ledger, stock, campus, pen, notebook):
        stock(campus, pen, 10)
        written = ledger.apply_batch({pen.id: -4, notebook.id: 2}, campus.id)
        assert written == {pen.id: 6, notebook.id: 2}


# =============================================================================
# GUARDED BATCHES
# =============================================================================


class TestGuardedBatch:

    def test_conditional_decrement_requires_stock(self, ledger, stock, campus, pen):
        stock(campus, pen, 2)
        assert ledger.conditional_decrement(campus.id, pen.id, 3) is False
        assert ledger.get(campus.id, pen.id) == 2
        assert ledger.conditional_decrement(campus.id, pen.id, 2) is True
        assert ledger.get(campus.id, pen.id) == 0

    def test_conditional_decrement_central(self, ledger, pen):
        assert ledger.conditional_decrement(CENTRAL, pen.id, 101) is False
        assert ledger.conditional_decrement(CENTRAL, pen.id, 40) is True
        assert ledger.get(CENTRAL, pen.id) == 60

    def test_conflict_compensates_applied_cells(self, ledger, stock, campus, pen, notebook):
        stock(campus, pen, 10)
        stock(campus, notebook, 1)

        with pytest.raises(StockConflictError) as exc:
            # pen (lower id) succeeds first, notebook then fails
            ledger.apply_batch({pen.id: -4, notebook.id: -2}, campus.id, guard=True)

        assert exc.value.details["product_id"] == notebook.id
        assert ledger.get(campus.id, pen.id) == 10
        assert ledger.get(campus.id, notebook.id) == 1

    def test_guarded_batch_applies_all(self, ledger, stock, campus, pen, notebook):
        stock(campus, pen, 10)
        stock(campus, notebook, 5)
        ledger.apply_batch({pen.id: -10, notebook.id: -1}, campus.id, guard=True)
        assert ledger.snapshot(campus.id, [pen.id, notebook.id]) == {pen.id: 0, notebook.id: 4}


# =============================================================================
# ABSOLUTE WRITES AND CATALOGS
# =============================================================================


class TestAbsoluteAndCatalogs:

    def test_set_quantity_is_absolute(self, ledger, stock, campus, pen):
        stock(campus, pen, 12)
        ledger.set_quantity(campus.id, pen.id, 50)
        ledger.set_quantity(campus.id, pen.id, 50)
        assert ledger.get(campus.id, pen.id) == 50

    def test_set_quantity_rejects_negative(self, ledger, campus, pen):
        with pytest.raises(ValueError):
            ledger.set_quantity(campus.id, pen.id, -1)

    def test_catalog_ledgers_are_independent(self, db_session, campus, pen):
        stationery = StockLedger("STATIONERY")
        general = StockLedger("GENERAL")
        stationery.apply_delta(campus.id, pen.id, 4)
        general.apply_delta(campus.id, pen.id, 9)
        assert stationery.get(campus.id, pen.id) == 4
        assert general.get(campus.id, pen.id) == 9


# =============================================================================
# PROJECTION
# =============================================================================


class TestProjection:

    def test_reserve_sees_earlier_reservations(self):
        projection = StockProjection({1: 5})
        assert projection.reserve(1, 3) is True
        assert projection.reserve(1, 3) is False
        assert projection.available(1) == 2
        assert projection.deltas == {1: -3}

    def test_reserve_up_to_grants_what_is_left(self):
        projection = StockProjection({1: 3})
        assert projection.reserve_up_to(1, 5) == 3
        assert projection.reserve_up_to(1, 5) == 0
        assert projection.deltas == {1: -3}

    def test_no_deltas_when_nothing_available(self):
        projection = StockProjection({})
        assert projection.reserve_up_to(7, 2) == 0
        assert projection.has_deltas() is False
