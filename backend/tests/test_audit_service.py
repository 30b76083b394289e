"""
Audit approval workflow tests.
"""

import pytest

from stationery.services import audit_service
from stationery.services.ledger_service import CENTRAL
from stationery.validation import InvalidState, NotFoundError, ValidationError


def _propose(product, after, location=None, before=0, **kwargs):
    return audit_service.propose_audit(
        product_id=product.id,
        location_id=location.id if location else None,
        before_quantity=before,
        after_quantity=after,
        **kwargs,
    )


class TestPropose:

    def test_propose_has_no_ledger_effect(self, db_session, ledger, stock, campus, pen):
        stock(campus, pen, 12)
        log = _propose(pen, 50, campus, before=12, created_by="Auditor")
        db_session.commit()

        assert log.status == "PENDING"
        assert log.catalog == "STATIONERY"
        assert ledger.get(campus.id, pen.id) == 12

    def test_negative_quantity_rejected(self, db_session, pen):
        with pytest.raises(ValidationError):
            _propose(pen, -1)

    def test_unknown_location_rejected(self, db_session, pen):
        with pytest.raises(NotFoundError):
            audit_service.propose_audit(product_id=pen.id, location_id=999, before_quantity=0, after_quantity=1)


class TestApprove:

    def test_approval_is_absolute(self, db_session, ledger, stock, campus, pen):
        stock(campus, pen, 12)
        log = _propose(pen, 50, campus, before=12)
        audit_service.approve_audit(log.id, approved_by="Manager")
        db_session.commit()

        assert ledger.get(campus.id, pen.id) == 50
        assert log.status == "APPROVED"
        assert log.approved_by == "Manager"
        assert log.approved_at is not None

    def test_approval_when_value_already_matches(self, db_session, ledger, stock, campus, pen):
        stock(campus, pen, 50)
        log = _propose(pen, 50, campus, before=50)
        audit_service.approve_audit(log.id)
        db_session.commit()
        assert ledger.get(campus.id, pen.id) == 50

    def test_approval_creates_missing_cell(self, db_session, ledger, campus, pen):
        log = _propose(pen, 7, campus)
        audit_service.approve_audit(log.id)
        db_session.commit()
        assert ledger.get(campus.id, pen.id) == 7

    def test_central_audit(self, db_session, ledger, pen):
        log = _propose(pen, 80, before=100)
        audit_service.approve_audit(log.id)
        db_session.commit()
        assert ledger.get(CENTRAL, pen.id) == 80

    def test_approve_twice_rejected(self, db_session, ledger, campus, pen):
        log = _propose(pen, 5, campus)
        audit_service.approve_audit(log.id)
        db_session.commit()

        with pytest.raises(InvalidState):
            audit_service.approve_audit(log.id)


class TestReject:

    def test_reject_appends_note(self, db_session, ledger, stock, campus, pen):
        stock(campus, pen, 12)
        log = _propose(pen, 50, campus, before=12, notes="Shelf count")
        audit_service.reject_audit(log.id, notes="Recount needed")
        db_session.commit()

        assert log.status == "REJECTED"
        assert log.notes == "Shelf count\nRejected: Recount needed"
        assert ledger.get(campus.id, pen.id) == 12

    def test_reject_is_not_repeatable(self, db_session, campus, pen):
        log = _propose(pen, 50, campus)
        audit_service.reject_audit(log.id, notes="Wrong shelf")
        db_session.commit()

        with pytest.raises(InvalidState):
            audit_service.reject_audit(log.id, notes="Again")
        db_session.rollback()
        assert log.notes == "Rejected: Wrong shelf"

    def test_cannot_reject_approved(self, db_session, ledger, campus, pen):
        log = _propose(pen, 9, campus)
        audit_service.approve_audit(log.id)
        db_session.commit()

        with pytest.raises(InvalidState):
            audit_service.reject_audit(log.id)
        db_session.rollback()
        assert ledger.get(campus.id, pen.id) == 9

    def test_list_by_status(self, db_session, campus, pen):
        first = _propose(pen, 1, campus)
        _propose(pen, 2)
        audit_service.reject_audit(first.id)
        db_session.commit()

        assert len(audit_service.list_audit_logs(status="pending")) == 1
        assert len(audit_service.list_audit_logs(location_id=campus.id)) == 1
