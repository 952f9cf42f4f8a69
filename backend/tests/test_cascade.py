# Overview: Pytest coverage for trip status cascades.

"""
Cascade Router Tests

Every matching rule runs in its own transaction; one failing effect is
logged and never blocks the others or the committed status change.
"""

import pytest
from conftest import ACTOR
from tripflow.models import LedgerEntry, Order
from tripflow.services import cascade_service, ledger_service, trip_status_service
from tripflow.services.cascade_service import (
    OUTCOME_APPLIED,
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    matching_rules,
    run_cascades,
)
from tripflow.services.notification_service import register_notifier
from tripflow.services.order_service import ORDER_STATUS_CANCELLED


def names(before, after):
    return [rule.name for rule in matching_rules(before, after)]


class TestRuleTable:
    @pytest.mark.parametrize("before, after, expected", [
        ("SCHEDULED", "DISPATCHED", ["order-mirror", "dispatch-credit", "notify"]),
        ("DISPATCHED", "DELIVERED", ["order-mirror", "memo-delivered", "notify"]),
        ("DELIVERED", "RETURNED", ["return-memo", "order-mirror", "memo-return-stamp", "return-credit"]),
        ("DELIVERED", "DISPATCHED", ["order-mirror", "dispatch-credit", "revert-delivery"]),
        ("RETURNED", "DELIVERED", ["order-mirror", "revert-return"]),
        ("RETURNED", "DISPATCHED", ["order-mirror", "dispatch-credit", "revert-return", "revert-delivery"]),
        ("RETURNED", "SCHEDULED", ["order-mirror", "revert-return", "revert-delivery", "revert-dispatch"]),
        ("DISPATCHED", "SCHEDULED", ["order-mirror", "revert-dispatch"]),
    ])
    def test_matching_rules(self, before, after, expected):
        assert names(before, after) == expected

    def test_no_rules_without_a_change(self):
        assert names("DELIVERED", "DELIVERED") == []

    def test_return_effects_run_before_reversals(self):
        rule_names = [rule.name for rule in cascade_service.CASCADE_RULES]
        assert rule_names.index("revert-return") < rule_names.index("revert-delivery")
        assert rule_names.index("return-memo") < rule_names.index("order-mirror")


class TestIsolation:
    def test_failing_effect_does_not_block_others(self, db_session, monkeypatch, trip, memo):
        def broken_mirror(*args, **kwargs):
            raise RuntimeError("order store unavailable")

        monkeypatch.setattr(cascade_service, "mirror_trip_status", broken_mirror)

        result = trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)

        assert result.cascades["order-mirror"] == OUTCOME_FAILED
        assert result.cascades["dispatch-credit"] == OUTCOME_APPLIED
        assert trip_status_service.get_trip(trip.id).status == "DISPATCHED"
        assert trip.credit_entry_id is not None

    def test_failing_notifier_is_contained(self, app, db_session, trip, memo):
        def broken_hook(t, event):
            raise RuntimeError("sms gateway down")

        register_notifier(app, broken_hook)

        result = trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)

        assert result.cascades["notify"] == OUTCOME_SKIPPED
        assert trip.status == "DISPATCHED"

    def test_working_notifier_receives_event(self, app, db_session, trip, memo):
        received = []
        register_notifier(app, lambda t, event: received.append((t.id, event)))

        result = trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)

        assert result.cascades["notify"] == OUTCOME_APPLIED
        assert received == [(trip.id, "DISPATCHED")]

    def test_missing_trip_is_skipped(self, db_session, org):
        outcomes = run_cascades(99999, "SCHEDULED", "DISPATCHED")
        assert set(outcomes.values()) == {OUTCOME_SKIPPED}


class TestIdempotence:
    def test_rerunning_dispatch_credit_reuses_entry(self, db_session, org, trip, memo):
        trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)
        entry_id = trip.credit_entry_id

        outcomes = run_cascades(trip.id, "SCHEDULED", "DISPATCHED")

        assert outcomes["dispatch-credit"] == OUTCOME_SKIPPED
        assert trip.credit_entry_id == entry_id
        live = db_session.query(LedgerEntry).filter(
            LedgerEntry.trip_id == trip.id,
            LedgerEntry.status == ledger_service.ENTRY_STATUS_COMPLETED,
        ).count()
        assert live == 1

    def test_rerunning_reversal_changes_nothing(self, db_session, trip, memo):
        trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)
        trip_status_service.update_trip_status(trip.id, "SCHEDULED", actor_id=ACTOR)

        outcomes = run_cascades(trip.id, "DISPATCHED", "SCHEDULED")

        assert outcomes["revert-dispatch"] == OUTCOME_SKIPPED


class TestOrderMirror:
    def test_mirror_carries_current_stage_only(self, db_session, order, trip, memo):
        trip_status_service.update_trip_status(
            trip.id, "DISPATCHED", actor_id=ACTOR, details={"initial_reading": 500}
        )
        summary = db_session.query(Order).filter_by(id=order.id).first().scheduled_trips[0]
        assert summary["trip_status"] == "DISPATCHED"
        assert summary["dispatched_by"] == ACTOR
        assert summary["initial_reading"] == 500
        assert summary["delivered_at"] is None

        trip_status_service.update_trip_status(trip.id, "DELIVERED", actor_id=ACTOR)
        db_session.expire_all()
        summary = db_session.query(Order).filter_by(id=order.id).first().scheduled_trips[0]
        assert summary["trip_status"] == "DELIVERED"
        assert summary["delivered_by"] == ACTOR
        assert summary["dispatched_at"] is None
        assert summary["initial_reading"] is None

    def test_cancelled_order_is_not_mirrored(self, db_session, order, trip, memo):
        order.status = ORDER_STATUS_CANCELLED
        db_session.commit()

        result = trip_status_service.update_trip_status(trip.id, "DISPATCHED", actor_id=ACTOR)

        assert result.cascades["order-mirror"] == OUTCOME_SKIPPED
        assert trip.status == "DISPATCHED"
        summary = db_session.query(Order).filter_by(id=order.id).first().scheduled_trips[0]
        assert summary["trip_status"] == "SCHEDULED"
