# Overview: Pytest coverage for the trip status state machine.

"""
Trip Status Tests

Covers the guard (no memo, no dispatch), stage stamps, reverts, and the
memo and ledger effects that follow each committed change.
"""

import pytest
from conftest import ACTOR, ACTOR_ROLE, CLIENT_ID, TRIP_TOTAL_CENTS
from tripflow.models import DeliveryMemo, FiscalCounter, LedgerEntry
from tripflow.services import ledger_service, memo_service, trip_status_service
from tripflow.services.cascade_service import run_cascades
from tripflow.services.memo_projector import (
    MEMO_STATUS_ACTIVE,
    MEMO_STATUS_CANCELLED,
    MEMO_STATUS_DELIVERED,
    MEMO_STATUS_RETURNED,
    SOURCE_DISPATCH,
    SOURCE_RETURN,
)
from tripflow.services.notification_service import register_notifier
from tripflow.services.trip_status_service import TripStatusError
from tripflow.validation import NotFoundError, ValidationError


def move(trip_id, status, details=None):
    return trip_status_service.update_trip_status(
        trip_id, status, actor_id=ACTOR, actor_role=ACTOR_ROLE, details=details
    )


def client_balance(org_id):
    return ledger_service.get_balance(
        organization_id=org_id, ledger_type=ledger_service.LEDGER_CLIENT, party_id=CLIENT_ID
    )


class TestDispatchGuard:
    def test_dispatch_without_memo_is_rejected(self, db_session, trip):
        with pytest.raises(TripStatusError, match="DM must be generated before dispatching trip"):
            move(trip.id, "DISPATCHED")

        assert trip_status_service.get_trip(trip.id).status == "SCHEDULED"
        assert trip.dispatched_at is None
        assert db_session.query(LedgerEntry).count() == 0

    def test_every_later_status_needs_a_memo(self, db_session, trip):
        for status in ("DELIVERED", "RETURNED"):
            with pytest.raises(TripStatusError):
                move(trip.id, status)
        assert trip_status_service.get_trip(trip.id).status == "SCHEDULED"

    def test_cancelled_memo_blocks_dispatch_again(self, db_session, trip, memo):
        memo_service.cancel_memo(trip.id, reason=None, actor_id=ACTOR)

        with pytest.raises(TripStatusError):
            move(trip.id, "DISPATCHED")

    def test_unknown_status(self, db_session, trip, memo):
        with pytest.raises(ValidationError):
            move(trip.id, "IN_TRANSIT")

    def test_unknown_trip(self, db_session, org):
        with pytest.raises(NotFoundError):
            move(99999, "DISPATCHED")

    def test_bad_details(self, db_session, trip, memo):
        with pytest.raises(ValidationError):
            move(trip.id, "DISPATCHED", details={"initial_reading": "far"})
        assert trip_status_service.get_trip(trip.id).status == "SCHEDULED"


class TestTransitions:
    def test_same_status_is_a_no_op(self, db_session, trip):
        result = move(trip.id, "SCHEDULED")

        assert result.changed is False
        assert result.cascades == {}
        assert trip.status_updated_at is None

    def test_status_is_normalized(self, db_session, trip, memo):
        result = move(trip.id, "  dispatched ")

        assert result.after == "DISPATCHED"
        assert trip.status == "DISPATCHED"

    def test_dispatch_stamps_actor_and_details(self, db_session, trip, memo):
        result = move(trip.id, "DISPATCHED", details={"initial_reading": 1200.5})

        assert result.before == "SCHEDULED"
        assert result.changed is True
        assert trip.dispatched_at is not None
        assert trip.dispatched_by == ACTOR
        assert trip.dispatched_by_role == ACTOR_ROLE
        assert trip.initial_reading == 1200.5
        assert trip.status_updated_by == ACTOR

    def test_dispatch_credits_pay_later_client(self, db_session, org, trip, memo):
        result = move(trip.id, "DISPATCHED")

        assert result.cascades["dispatch-credit"] == "applied"
        entry = db_session.query(LedgerEntry).filter_by(id=trip.credit_entry_id).first()
        assert entry.category == ledger_service.CATEGORY_CLIENT_CREDIT
        assert entry.amount_cents == TRIP_TOTAL_CENTS
        assert entry.dm_id == "DM/FY2425/1"
        assert entry.financial_year == "FY2425"
        assert client_balance(org.id) == TRIP_TOTAL_CENTS

    def test_delivery_marks_dispatch_memo(self, db_session, trip, memo):
        move(trip.id, "DISPATCHED")
        move(trip.id, "DELIVERED", details={"delivery_photo_url": "https://img.example/pod.jpg"})

        memo = memo_service.get_memo(memo.id)
        assert memo.status == MEMO_STATUS_DELIVERED
        assert memo.trip_status == "DELIVERED"
        assert memo.delivered_by == ACTOR
        assert memo.delivery_photo_url == "https://img.example/pod.jpg"

    def test_dispatch_can_be_skipped(self, db_session, trip, memo):
        result = move(trip.id, "DELIVERED")

        assert result.cascades["memo-delivered"] == "applied"
        assert trip.dispatched_at is None
        assert trip.delivered_at is not None
        assert "dispatch-credit" not in result.cascades


class TestReverts:
    def test_delivered_back_to_dispatched_reactivates_memo(self, db_session, trip, memo):
        move(trip.id, "DISPATCHED")
        move(trip.id, "DELIVERED", details={"delivery_photo_url": "https://img.example/pod.jpg"})

        result = move(trip.id, "DISPATCHED")

        assert result.cascades["revert-delivery"] == "applied"
        memo = memo_service.get_memo(memo.id)
        assert memo.status == MEMO_STATUS_ACTIVE
        assert memo.trip_status == "DISPATCHED"
        assert memo.delivered_at is None
        assert memo.delivery_photo_url is None
        assert trip.delivered_at is None
        assert trip.delivery_photo_url is None
        # Reverting into a stage keeps its first stamp
        assert trip.dispatched_at is not None

    def test_revert_to_scheduled_cancels_client_credit(self, db_session, org, trip, memo):
        move(trip.id, "DISPATCHED")
        entry_id = trip.credit_entry_id

        result = move(trip.id, "SCHEDULED")

        assert result.cascades["revert-dispatch"] == "applied"
        entry = db_session.query(LedgerEntry).filter_by(id=entry_id).first()
        assert entry.status == ledger_service.ENTRY_STATUS_CANCELLED
        assert trip.credit_entry_id is None
        assert trip.dispatched_at is None
        assert client_balance(org.id) == 0
        # Memo reference survives the revert
        assert trip.dm_number == 1

    def test_redispatch_after_revert_credits_again(self, db_session, org, trip, memo):
        move(trip.id, "DISPATCHED")
        first_entry = trip.credit_entry_id
        move(trip.id, "SCHEDULED")

        move(trip.id, "DISPATCHED")

        assert trip.credit_entry_id != first_entry
        assert client_balance(org.id) == TRIP_TOTAL_CENTS

    def test_backward_moves_do_not_notify(self, app, db_session, trip, memo):
        events = []
        register_notifier(app, lambda t, event: events.append(event))

        move(trip.id, "DISPATCHED")
        move(trip.id, "DELIVERED")
        move(trip.id, "DISPATCHED")

        assert events == ["DISPATCHED", "DELIVERED"]


class TestReturn:
    def _returned(self, trip, paid=None):
        move(trip.id, "DISPATCHED", details={"initial_reading": 1000})
        move(trip.id, "DELIVERED")
        details = {"final_reading": 1062.5}
        if paid is not None:
            details["paid_on_return_cents"] = paid
        return move(trip.id, "RETURNED", details=details)

    def test_return_mints_return_memo(self, db_session, trip, memo):
        result = self._returned(trip)

        assert result.cascades["return-memo"] == "applied"
        assert trip.dm_id == "DM/FY2425/2"
        assert trip.dm_source == SOURCE_RETURN
        assert trip.return_dm_id == "DM/FY2425/2"
        assert trip.dispatch_dm_id == "DM/FY2425/1"
        assert trip.dispatch_dm_number == 1

        return_memo = db_session.query(DeliveryMemo).filter_by(trip_id=trip.id, source=SOURCE_RETURN).one()
        assert return_memo.status == MEMO_STATUS_RETURNED
        assert return_memo.distance_travelled == 62.5

    def test_return_stamps_dispatch_memo(self, db_session, trip, memo):
        self._returned(trip)

        memo = memo_service.get_memo(memo.id)
        assert memo.status == MEMO_STATUS_RETURNED
        assert memo.returned_by == ACTOR
        assert memo.initial_reading == 1000
        assert memo.final_reading == 1062.5
        assert memo.distance_travelled == 62.5

    def test_duplicate_return_mints_one_memo(self, db_session, org, trip, memo):
        self._returned(trip)

        assert move(trip.id, "RETURNED").changed is False
        outcomes = run_cascades(trip.id, "DELIVERED", "RETURNED")

        assert outcomes["return-memo"] == "skipped"
        assert db_session.query(DeliveryMemo).filter_by(trip_id=trip.id, source=SOURCE_RETURN).count() == 1
        counter = db_session.query(FiscalCounter).filter_by(organization_id=org.id).one()
        assert counter.current_number == 2
        assert trip.dispatch_dm_id == "DM/FY2425/1"

    def test_leaving_returned_restores_dispatch_memo(self, db_session, trip, memo):
        self._returned(trip)

        result = move(trip.id, "DISPATCHED")

        assert result.cascades["revert-return"] == "applied"
        assert result.cascades["revert-delivery"] == "applied"
        assert trip.dm_id == "DM/FY2425/1"
        assert trip.dm_number == 1
        assert trip.dm_source == SOURCE_DISPATCH
        assert trip.return_dm_id is None
        assert trip.returned_at is None
        assert trip.final_reading is None

        assert memo_service.get_memo(memo.id).status == MEMO_STATUS_ACTIVE
        return_memo = db_session.query(DeliveryMemo).filter_by(trip_id=trip.id, source=SOURCE_RETURN).one()
        assert return_memo.status == MEMO_STATUS_CANCELLED

    def test_returned_back_to_delivered(self, db_session, trip, memo):
        self._returned(trip)

        move(trip.id, "DELIVERED")

        memo = memo_service.get_memo(memo.id)
        assert memo.status == MEMO_STATUS_DELIVERED
        assert memo.returned_at is None
        assert memo.final_reading is None

    def test_second_return_gets_a_new_number(self, db_session, trip, memo):
        self._returned(trip)
        move(trip.id, "DELIVERED")

        move(trip.id, "RETURNED")

        assert trip.dm_id == "DM/FY2425/3"
        assert trip.dispatch_dm_id == "DM/FY2425/1"

    def test_pay_on_delivery_remainder_is_recorded(self, db_session, org, cod_trip):
        memo_service.generate_dispatch_memo(cod_trip.id, ACTOR)

        result = self._returned(cod_trip, paid=300000)

        assert result.cascades["return-credit"] == "applied"
        entry = db_session.query(LedgerEntry).filter_by(id=cod_trip.return_entry_id).first()
        assert entry.category == ledger_service.CATEGORY_PENDING_PAYMENT
        assert entry.amount_cents == TRIP_TOTAL_CENTS - 300000
        assert entry.party_id == 502
        # Pay-on-delivery trips are not credited at dispatch
        assert cod_trip.credit_entry_id is None

    def test_fully_paid_return_records_nothing(self, db_session, cod_trip):
        memo_service.generate_dispatch_memo(cod_trip.id, ACTOR)

        result = self._returned(cod_trip, paid=TRIP_TOTAL_CENTS)

        assert result.cascades["return-credit"] == "skipped"
        assert cod_trip.return_entry_id is None
        assert db_session.query(LedgerEntry).count() == 0

    def test_revert_return_cancels_pending_payment(self, db_session, cod_trip):
        memo_service.generate_dispatch_memo(cod_trip.id, ACTOR)
        self._returned(cod_trip, paid=0)
        entry_id = cod_trip.return_entry_id

        move(cod_trip.id, "DELIVERED")

        entry = db_session.query(LedgerEntry).filter_by(id=entry_id).first()
        assert entry.status == ledger_service.ENTRY_STATUS_CANCELLED
        assert cod_trip.return_entry_id is None
