# Overview: Service-layer operations for the trip status state machine; encapsulates business logic and database work.

"""
Trip status state machine.

LIFECYCLE:
    SCHEDULED -> DISPATCHED -> DELIVERED -> RETURNED

Any status may be set from any other; a move to an earlier status is a
revert. Every target other than SCHEDULED requires a generated memo.

One transaction records the new status, the actor stamp and the stage
fields. Cascading effects (memos, ledger, order mirror, notifications) run
only after that commit, each in its own transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import Trip
from ..validation import NotFoundError, ValidationError, coerce_amount_cents, coerce_float
from tripflow.time_utils import utcnow
from .cascade_service import run_cascades
from .concurrency import lock_for_update, run_with_retry
from .memo_projector import SOURCE_DISPATCH, SOURCE_RETURN
from .trip_states import (
    STATUS_DELIVERED,
    STATUS_DISPATCHED,
    STATUS_RANK,
    STATUS_RETURNED,
    STATUS_SCHEDULED,
    VALID_TRIP_STATUSES,
    is_forward,
    normalize_status,
)


class TripStatusError(ValidationError):
    """Raised when a transition is rejected by the state machine."""
    pass


@dataclass
class TripStatusResult:
    trip: Trip
    before: str
    after: str
    changed: bool
    cascades: dict = field(default_factory=dict)


# Stage stamps owned by each status: (at, by, role) plus the stage's details
_STAGES = {
    STATUS_DISPATCHED: (
        ("dispatched_at", "dispatched_by", "dispatched_by_role"),
        ("initial_reading",),
    ),
    STATUS_DELIVERED: (
        ("delivered_at", "delivered_by", "delivered_by_role"),
        ("delivery_photo_url",),
    ),
    STATUS_RETURNED: (
        ("returned_at", "returned_by", "returned_by_role"),
        ("final_reading", "paid_on_return_cents"),
    ),
}


def _parse_details(details: dict | None) -> dict:
    if details is None:
        return {}
    if not isinstance(details, dict):
        raise ValidationError("details must be an object")

    parsed = {}
    if "initial_reading" in details:
        parsed["initial_reading"] = coerce_float(details["initial_reading"], "initial_reading")
    if "final_reading" in details:
        parsed["final_reading"] = coerce_float(details["final_reading"], "final_reading")
    if "paid_on_return_cents" in details:
        parsed["paid_on_return_cents"] = coerce_amount_cents(details["paid_on_return_cents"], "paid_on_return_cents")
    if "delivery_photo_url" in details:
        url = details["delivery_photo_url"]
        if url is not None and not isinstance(url, str):
            raise ValidationError("delivery_photo_url must be a string")
        parsed["delivery_photo_url"] = url or None
    return parsed


def _stamp_stage(trip: Trip, status: str, *, forward: bool, actor_id: str, actor_role: str | None, now, details: dict) -> None:
    stage = _STAGES.get(status)
    if not stage:
        return
    (at_field, by_field, role_field), detail_fields = stage
    # A revert into a stage keeps the stamps it already carries
    if forward or getattr(trip, at_field) is None:
        setattr(trip, at_field, now)
        setattr(trip, by_field, actor_id)
        setattr(trip, role_field, actor_role)
    for name in detail_fields:
        if name in details:
            setattr(trip, name, details[name])


def _clear_later_stages(trip: Trip, status: str) -> None:
    for stage_status, (stamps, detail_fields) in _STAGES.items():
        if STATUS_RANK[stage_status] <= STATUS_RANK[status]:
            continue
        for name in stamps + detail_fields:
            setattr(trip, name, None)


def _restore_dispatch_reference(trip: Trip) -> None:
    """Point a trip leaving RETURNED back at its dispatch memo."""
    if trip.dm_source == SOURCE_RETURN:
        trip.dm_id = trip.dispatch_dm_id
        trip.dm_number = trip.dispatch_dm_number
        trip.dm_source = SOURCE_DISPATCH if trip.dispatch_dm_number is not None else None
    trip.return_dm_id = None
    trip.return_dm_number = None


def get_trip(trip_id: int) -> Trip:
    trip = db.session.query(Trip).filter_by(id=trip_id).first()
    if not trip:
        raise NotFoundError(f"Trip {trip_id} not found")
    return trip


def update_trip_status(
    trip_id: int,
    new_status: str,
    *,
    actor_id: str,
    actor_role: str | None = None,
    details: dict | None = None,
) -> TripStatusResult:
    """
    UpdateTripStatus: move a trip to new_status.

    Raises:
        ValidationError: unknown status, bad details or missing actor
        NotFoundError: no such trip
        TripStatusError: transition rejected (no memo for a non-SCHEDULED
            target); nothing is written
    """
    after = normalize_status(new_status)
    if after is None:
        raise ValidationError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(sorted(VALID_TRIP_STATUSES))}"
        )
    if not actor_id:
        raise ValidationError("actor_id is required")
    parsed = _parse_details(details)

    def _op():
        trip = lock_for_update(db.session.query(Trip).filter_by(id=trip_id)).first()
        if not trip:
            raise NotFoundError(f"Trip {trip_id} not found")

        before = trip.status
        if before == after:
            return trip, before, False

        if after != STATUS_SCHEDULED and trip.dm_number is None:
            raise TripStatusError("DM must be generated before dispatching trip")

        now = utcnow()
        forward = is_forward(before, after)
        if before == STATUS_RETURNED:
            _restore_dispatch_reference(trip)
        _clear_later_stages(trip, after)
        _stamp_stage(trip, after, forward=forward, actor_id=actor_id, actor_role=actor_role, now=now, details=parsed)

        trip.status = after
        trip.status_updated_at = now
        trip.status_updated_by = actor_id
        trip.status_updated_by_role = actor_role

        db.session.commit()
        return trip, before, True

    try:
        trip, before, changed = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    if not changed:
        return TripStatusResult(trip=trip, before=before, after=after, changed=False)

    current_app.logger.info("Trip %s status %s -> %s by %s", trip_id, before, after, actor_id)
    cascades = run_cascades(trip_id, before, after)
    return TripStatusResult(trip=trip, before=before, after=after, changed=True, cascades=cascades)
