# Overview: Service-layer operations for delivery memos; encapsulates business logic and database work.

"""
Delivery memo generation and cancellation.

INVARIANTS:
- A trip gets at most one dispatch memo number; asking again is rejected
  with MemoAlreadyExistsError carrying the existing reference.
- The counter increment, the memo insert and the trip update commit
  together or not at all, so a committed number always has a memo.
- A cancelled memo keeps its number; the number is never re-issued.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import DeliveryMemo, Trip
from ..validation import ConflictError, NotFoundError, ValidationError
from tripflow.time_utils import utcnow
from . import ledger_service
from .concurrency import lock_for_update, run_with_retry
from .financial_year import get_financial_context
from .memo_projector import (
    MEMO_STATUS_ACTIVE,
    MEMO_STATUS_CANCELLED,
    SOURCE_DISPATCH,
    SOURCE_RETURN,
    project_memo,
)
from .sequence_service import next_number


class MemoAlreadyExistsError(ConflictError):
    """Raised when a trip already carries a memo number."""

    def __init__(self, trip_id: int, dm_id: str | None, dm_number: int | None):
        super().__init__(f"DM already exists for trip {trip_id}")
        self.trip_id = trip_id
        self.dm_id = dm_id
        self.dm_number = dm_number


def get_memo(memo_id: int) -> DeliveryMemo:
    memo = db.session.query(DeliveryMemo).filter_by(id=memo_id).first()
    if not memo:
        raise NotFoundError(f"Delivery memo {memo_id} not found")
    return memo


def find_memo(trip_id: int, *, source: str, status: str | None = None, exclude_cancelled: bool = False):
    """Latest memo of a trip for source (optionally in status)."""
    query = db.session.query(DeliveryMemo).filter(
        DeliveryMemo.trip_id == trip_id,
        DeliveryMemo.source == source,
    )
    if status is not None:
        query = query.filter(DeliveryMemo.status == status)
    if exclude_cancelled:
        query = query.filter(DeliveryMemo.status != MEMO_STATUS_CANCELLED)
    return lock_for_update(query.order_by(DeliveryMemo.id.desc())).first()


def generate_dispatch_memo(trip_id: int, actor_id: str) -> dict:
    """
    GenerateDM: mint the dispatch memo for a trip.

    The fiscal year comes from the trip's scheduled date. No ledger entry is
    written here; client credit is recorded when the trip is dispatched.
    """
    if not actor_id:
        raise ValidationError("actor_id is required")

    def _op() -> dict:
        trip = lock_for_update(db.session.query(Trip).filter_by(id=trip_id)).first()
        if not trip:
            raise NotFoundError(f"Trip {trip_id} not found")
        if trip.dm_number is not None:
            raise MemoAlreadyExistsError(trip.id, trip.dm_id, trip.dm_number)
        if trip.scheduled_date is None:
            raise ValidationError(f"Trip {trip_id} has no scheduled date")

        fy = get_financial_context(trip.scheduled_date).fy_label
        number = next_number(trip.organization_id, fy)
        memo = project_memo(
            trip,
            dm_number=number,
            financial_year=fy,
            source=SOURCE_DISPATCH,
            generated_by=actor_id,
        )
        db.session.add(memo)

        trip.dm_id = memo.dm_id
        trip.dm_number = number
        trip.dm_source = SOURCE_DISPATCH
        db.session.flush()

        result = {
            "memo_id": memo.id,
            "dm_id": memo.dm_id,
            "dm_number": number,
            "financial_year": fy,
        }
        db.session.commit()
        return result

    try:
        result = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Generated %s for trip %s", result["dm_id"], trip_id)
    return result


def cancel_memo(trip_id: int, *, reason: str | None, actor_id: str) -> DeliveryMemo:
    """
    CancelDM: cancel a trip's dispatch memo before dispatch.

    The trip's memo reference is cleared so a new memo can be generated;
    the trip's client credit, if still live, is cancelled with it.
    """
    if not actor_id:
        raise ValidationError("actor_id is required")

    def _op() -> DeliveryMemo:
        trip = lock_for_update(db.session.query(Trip).filter_by(id=trip_id)).first()
        if not trip:
            raise NotFoundError(f"Trip {trip_id} not found")
        if trip.status != "SCHEDULED":
            raise ValidationError(f"Cannot cancel DM of trip {trip_id} in status {trip.status}")
        if trip.dm_source == SOURCE_RETURN:
            raise ValidationError(f"Trip {trip_id} is backed by a return memo")

        memo = find_memo(trip.id, source=SOURCE_DISPATCH, status=MEMO_STATUS_ACTIVE)
        if not memo:
            raise NotFoundError("DM must be generated before it can be cancelled")

        now = utcnow()
        memo.status = MEMO_STATUS_CANCELLED
        memo.cancelled_at = now
        memo.cancelled_by = actor_id
        memo.cancellation_reason = reason or "DM cancelled"

        trip.dm_id = None
        trip.dm_number = None
        trip.dm_source = None
        trip.dispatch_dm_id = None
        trip.dispatch_dm_number = None

        if trip.credit_entry_id:
            try:
                ledger_service.cancel_entry(
                    trip.credit_entry_id,
                    reason=f"{memo.dm_id} cancelled",
                    cancelled_by=actor_id,
                )
            except NotFoundError:
                current_app.logger.warning(
                    "Credit entry %s of trip %s not found", trip.credit_entry_id, trip.id
                )
            trip.credit_entry_id = None

        db.session.commit()
        return memo

    try:
        memo = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Cancelled %s for trip %s", memo.dm_id, trip_id)
    return memo
