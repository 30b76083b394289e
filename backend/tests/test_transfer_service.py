"""
Stock transfer tests.

Verifies:
- Round trip: complete moves central -> location, delete restores both
- Illegal transitions are rejected without side effects
- Completion re-checks stock and compensates partial decrements
- Mirror transaction is created, owned by the transfer, and removed with it
"""

import pytest

from stationery.models import StockTransfer, Transaction
from stationery.services import transaction_service, transfer_service
from stationery.services.ledger_service import CENTRAL
from stationery.validation import (
    InsufficientStock,
    InvalidState,
    InvalidStateTransition,
    ValidationError,
)


def _transfer(location, *lines, **kwargs):
    items = [{"product_id": p.id, "quantity": q} for p, q in lines]
    return transfer_service.create_transfer(items, location.id, **kwargs)


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    def test_create_checks_but_does_not_deduct(self, db_session, ledger, campus, pen):
        transfer = _transfer(campus, (pen, 10))
        db_session.commit()

        assert transfer.status == "PENDING"
        assert transfer.document_number == "TRF-000001"
        assert ledger.get(CENTRAL, pen.id) == 100
        assert ledger.get(campus.id, pen.id) == 0

    def test_create_rejects_more_than_central(self, db_session, campus, pen):
        with pytest.raises(InsufficientStock) as exc:
            _transfer(campus, (pen, 101))
        assert str(exc.value) == "Insufficient stock for Blue Pen. Available: 100, Requested: 101"

    def test_round_trip(self, db_session, ledger, campus, pen):
        transfer = _transfer(campus, (pen, 10))
        db_session.commit()

        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        assert transfer.status == "COMPLETED"
        assert transfer.completed_at is not None
        assert ledger.get(CENTRAL, pen.id) == 90
        assert ledger.get(campus.id, pen.id) == 10

        mirror = db_session.get(Transaction, transfer.linked_transaction_id)
        assert mirror.kind == "TRANSFER"
        assert mirror.stock_deducted is False
        assert mirror.total_amount_cents == 10 * pen.price_cents
        assert mirror.payment_method == "transfer"

        transfer_service.delete_transfer(transfer.id)
        db_session.commit()

        assert ledger.get(CENTRAL, pen.id) == 100
        assert ledger.get(campus.id, pen.id) == 0
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(StockTransfer).count() == 0

    def test_destination_receives_without_central_deduction(self, db_session, ledger, campus, pen):
        transfer = _transfer(campus, (pen, 500), deduct_from_central=False)
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        assert ledger.get(CENTRAL, pen.id) == 100
        assert ledger.get(campus.id, pen.id) == 500

    def test_revenue_exclusion_is_noted_on_mirror(self, db_session, campus, pen):
        transfer = _transfer(campus, (pen, 1), include_in_revenue=False)
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        mirror = transfer.linked_transaction
        assert mirror.include_in_revenue is False
        assert mirror.remarks == "Stock transfer to Main Campus (Not included in revenue)"

    def test_cancel_has_no_ledger_effect(self, db_session, ledger, campus, pen):
        transfer = _transfer(campus, (pen, 10))
        transfer_service.cancel_transfer(transfer.id)
        db_session.commit()

        assert transfer.status == "CANCELLED"
        assert ledger.get(CENTRAL, pen.id) == 100

        transfer_service.delete_transfer(transfer.id)
        db_session.commit()
        assert ledger.get(CENTRAL, pen.id) == 100

    def test_delete_floors_destination_at_zero(self, db_session, ledger, campus, pen):
        transfer = _transfer(campus, (pen, 10))
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        # Part of the delivered stock has been handed out since
        ledger.apply_delta(campus.id, pen.id, -7)
        db_session.commit()

        transfer_service.delete_transfer(transfer.id)
        db_session.commit()

        assert ledger.get(campus.id, pen.id) == 0
        assert ledger.get(CENTRAL, pen.id) == 100


# =============================================================================
# TRANSITIONS
# =============================================================================


class TestTransitions:

    def _completed(self, db_session, campus, pen):
        transfer = _transfer(campus, (pen, 5))
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()
        return transfer

    def test_completed_to_pending_rejected(self, db_session, ledger, campus, pen):
        transfer = self._completed(db_session, campus, pen)
        with pytest.raises(InvalidStateTransition):
            transfer_service.update_transfer(transfer.id, status="PENDING")
        db_session.rollback()
        assert transfer.status == "COMPLETED"

    def test_completed_to_cancelled_rejected(self, db_session, ledger, campus, pen):
        transfer = self._completed(db_session, campus, pen)
        with pytest.raises(InvalidStateTransition):
            transfer_service.cancel_transfer(transfer.id)
        db_session.rollback()
        assert transfer.status == "COMPLETED"
        assert ledger.get(campus.id, pen.id) == 5

    def test_completing_twice_rejected(self, db_session, ledger, campus, pen):
        transfer = self._completed(db_session, campus, pen)
        with pytest.raises(InvalidStateTransition):
            transfer_service.complete_transfer(transfer.id)
        db_session.rollback()
        assert ledger.get(CENTRAL, pen.id) == 95

    def test_cancelled_to_pending_rejected(self, db_session, campus, pen):
        transfer = _transfer(campus, (pen, 5))
        transfer_service.cancel_transfer(transfer.id)
        db_session.commit()
        with pytest.raises(InvalidStateTransition):
            transfer_service.update_transfer(transfer.id, status="PENDING")

    def test_update_status_completes(self, db_session, ledger, campus, pen):
        transfer = _transfer(campus, (pen, 5))
        transfer_service.update_transfer(transfer.id, status="completed")
        db_session.commit()
        assert transfer.status == "COMPLETED"
        assert ledger.get(campus.id, pen.id) == 5

    def test_flags_frozen_after_pending(self, db_session, campus, pen):
        transfer = self._completed(db_session, campus, pen)
        with pytest.raises(InvalidState):
            transfer_service.update_transfer(transfer.id, include_in_revenue=False)

    def test_is_paid_follows_to_mirror(self, db_session, campus, pen):
        transfer = self._completed(db_session, campus, pen)
        transfer_service.update_transfer(transfer.id, is_paid=True)
        db_session.commit()
        assert transfer.linked_transaction.is_paid is True

    def test_mirror_cannot_be_edited_directly(self, db_session, campus, pen):
        transfer = self._completed(db_session, campus, pen)
        with pytest.raises(InvalidState):
            transaction_service.edit_transaction(transfer.linked_transaction_id, is_paid=True)
        with pytest.raises(InvalidState):
            transaction_service.delete_transaction(transfer.linked_transaction_id)


# =============================================================================
# COMPLETION RACES AND SOURCES
# =============================================================================


class TestCompletion:

    def test_recheck_at_completion(self, db_session, ledger, campus, pen, notebook):
        transfer = _transfer(campus, (pen, 10), (notebook, 40))
        db_session.commit()

        # Central stock moved after the transfer was created
        ledger.apply_delta(CENTRAL, notebook.id, -20)
        db_session.commit()

        with pytest.raises(InsufficientStock) as exc:
            transfer_service.complete_transfer(transfer.id)
        db_session.rollback()

        assert "Ruled Notebook" in str(exc.value)
        assert ledger.get(CENTRAL, pen.id) == 100
        assert transfer.status == "PENDING"

    def test_lost_race_compensates_earlier_decrements(self, db_session, ledger, campus, pen, notebook, monkeypatch):
        transfer = _transfer(campus, (pen, 10), (notebook, 5))
        db_session.commit()

        from stationery.services.ledger_service import StockLedger

        original = StockLedger.conditional_decrement

        def lose_on_notebook(self, location_id, product_id, quantity):
            if product_id == notebook.id:
                return False
            return original(self, location_id, product_id, quantity)

        monkeypatch.setattr(StockLedger, "conditional_decrement", lose_on_notebook)

        with pytest.raises(InsufficientStock):
            transfer_service.complete_transfer(transfer.id)

        # Compensation runs inside the same unit of work, before any rollback
        assert ledger.get(CENTRAL, pen.id) == 100
        assert ledger.get(campus.id, pen.id) == 0

    def test_transfer_between_locations(self, db_session, ledger, stock, campus, annex, pen):
        stock(annex, pen, 8)
        transfer = _transfer(campus, (pen, 6), from_location_id=annex.id)
        transfer_service.complete_transfer(transfer.id)
        db_session.commit()

        assert ledger.get(annex.id, pen.id) == 2
        assert ledger.get(campus.id, pen.id) == 6
        assert ledger.get(CENTRAL, pen.id) == 100
        assert transfer.linked_transaction.location_id == annex.id

        transfer_service.delete_transfer(transfer.id)
        db_session.commit()
        assert ledger.get(annex.id, pen.id) == 8
        assert ledger.get(campus.id, pen.id) == 0

    def test_same_source_and_destination_rejected(self, db_session, campus, pen):
        with pytest.raises(ValidationError):
            _transfer(campus, (pen, 1), from_location_id=campus.id)

    def test_duplicate_lines_are_merged(self, db_session, campus, pen):
        transfer = _transfer(campus, (pen, 3), (pen, 4))
        assert [(i.product_id, i.quantity) for i in transfer.items] == [(pen.id, 7)]

    def test_list_by_status(self, db_session, campus, pen):
        first = _transfer(campus, (pen, 1))
        _transfer(campus, (pen, 1))
        transfer_service.cancel_transfer(first.id)
        db_session.commit()

        assert len(transfer_service.list_transfers(status="pending")) == 1
        assert len(transfer_service.list_transfers(location_id=campus.id)) == 2
