# Overview: Pytest coverage for orders and trip scheduling.

from datetime import datetime

import pytest
from conftest import ACTOR, BRICK_ITEMS, TRIP_TOTAL_CENTS
from tripflow.models import Order, Trip
from tripflow.services import order_service, trip_status_service
from tripflow.services.cascade_service import OUTCOME_APPLIED, OUTCOME_SKIPPED
from tripflow.validation import ConflictError, NotFoundError, ValidationError


class TestCreateOrder:
    def test_create_order(self, db_session, org):
        order = order_service.create_order(
            organization_id=org.id, client_name="  Ravi Traders ", items=BRICK_ITEMS, estimated_trips=2,
        )

        assert order.client_name == "Ravi Traders"
        assert order.status == order_service.ORDER_STATUS_PENDING
        assert order.payment_type == order_service.PAYMENT_PAY_LATER
        assert order.scheduled_trips == []

    def test_rejects_unknown_payment_type(self, db_session, org):
        with pytest.raises(ValidationError):
            order_service.create_order(organization_id=org.id, client_name="X", payment_type="BARTER")

    def test_unknown_organization(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.create_order(organization_id=99999, client_name="X")


class TestScheduleTrip:
    def test_schedule_copies_order_and_prices_items(self, db_session, order, trip):
        assert trip.status == "SCHEDULED"
        assert trip.order_id == order.id
        assert trip.client_id == order.client_id
        assert trip.payment_type == order_service.PAYMENT_PAY_LATER
        assert trip.subtotal_cents == 800000
        assert trip.total_cents == TRIP_TOTAL_CENTS

        assert order.estimated_trips == 2
        assert order.total_scheduled_trips == 1
        summary = order.scheduled_trips[0]
        assert summary["trip_id"] == trip.id
        assert summary["trip_status"] == "SCHEDULED"
        assert summary["vehicle_number"] == "KA-01-1234"

    def test_slot_clash_on_same_day(self, db_session, order, trip):
        with pytest.raises(ConflictError):
            order_service.schedule_trip(
                order.id, scheduled_date=datetime(2024, 5, 10, 17, 30), vehicle_id=11, slot=1,
            )

    def test_other_slot_or_day_is_free(self, db_session, order, trip):
        order_service.schedule_trip(order.id, scheduled_date=datetime(2024, 5, 10, 9, 0), vehicle_id=11, slot=2)
        order_service.schedule_trip(order.id, scheduled_date=datetime(2024, 5, 11, 9, 0), vehicle_id=11, slot=1)

        assert db_session.query(Trip).filter_by(order_id=order.id).count() == 3

    def test_last_trip_marks_order_fully_scheduled(self, db_session, org):
        order = order_service.create_order(organization_id=org.id, client_name="One Trip Co", estimated_trips=1)

        order_service.schedule_trip(order.id, scheduled_date=datetime(2024, 5, 10), vehicle_id=3, slot=1)

        order = db_session.query(Order).filter_by(id=order.id).first()
        assert order.estimated_trips == 0
        assert order.status == order_service.ORDER_STATUS_FULLY_SCHEDULED

        with pytest.raises(ConflictError):
            order_service.schedule_trip(order.id, scheduled_date=datetime(2024, 5, 11), vehicle_id=3, slot=1)

    def test_cancelled_order_cannot_schedule(self, db_session, order):
        order.status = order_service.ORDER_STATUS_CANCELLED
        db_session.commit()

        with pytest.raises(ConflictError):
            order_service.schedule_trip(order.id, scheduled_date=datetime(2024, 5, 10), vehicle_id=3, slot=1)


class TestMirrorFields:
    def test_other_stages_are_null(self, db_session, trip):
        trip.status = "DELIVERED"
        trip.dispatched_by = ACTOR
        trip.delivered_by = ACTOR

        fields = order_service.trip_mirror_fields(trip)

        assert fields["trip_status"] == "DELIVERED"
        assert fields["delivered_by"] == ACTOR
        assert fields["dispatched_by"] is None
        assert fields["returned_at"] is None
        db_session.rollback()

    def test_unlisted_trip_is_not_mirrored(self, db_session, order):
        assert order_service.mirror_trip_status(order.id, 424242, {"trip_status": "DISPATCHED"}) is False

    def test_missing_order_is_not_mirrored(self, db_session, org):
        assert order_service.mirror_trip_status(99999, 1, {"trip_status": "DISPATCHED"}) is False


class TestDeleteOrder:
    def test_delete_flags_trips(self, db_session, order, trip):
        flagged = order_service.delete_order(order.id, deleted_by=ACTOR)

        assert flagged == 1
        assert db_session.query(Order).filter_by(id=order.id).first() is None
        trip = db_session.query(Trip).filter_by(id=trip.id).first()
        assert trip.order_deleted is True
        assert trip.order_deleted_by == ACTOR
        assert trip.status == "SCHEDULED"

    def test_deleted_order_does_not_block_transitions(self, db_session, order, trip, memo):
        order_service.delete_order(order.id, deleted_by=ACTOR)

        result = trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)

        assert result.after == "DISPATCHED"
        assert result.cascades["order-mirror"] == OUTCOME_SKIPPED
        assert result.cascades["dispatch-credit"] == OUTCOME_APPLIED

    def test_delete_unknown_order(self, db_session, org):
        with pytest.raises(NotFoundError):
            order_service.delete_order(99999, deleted_by=ACTOR)
