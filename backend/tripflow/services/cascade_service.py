# Overview: Cascade router for trip status changes; encapsulates business logic and database work.

"""
Trip status cascades.

After a trip's status change commits, run_cascades(trip_id, before, after)
walks CASCADE_RULES in order and applies every rule whose matcher accepts
the (before, after) pair.

RULES:
- Each effect runs in its own transaction. A failing effect is rolled back
  and logged; it never stops the remaining effects and never reaches the
  caller of the status change.
- Every effect is safe to run twice for the same pair. The markers are the
  trip's dm_source, ledger entry status and memo status.
- revert-return runs before revert-delivery so a jump from RETURNED back to
  DISPATCHED or SCHEDULED leaves the dispatch memo ACTIVE.
- revert-delivery and revert-dispatch fire on backward moves only. Leaving
  DELIVERED forward to RETURNED keeps the delivery stamps, and leaving
  DISPATCHED forward keeps the client credit written at dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import DeliveryMemo, Trip
from ..validation import NotFoundError
from . import ledger_service
from .concurrency import lock_for_update, run_with_retry
from .financial_year import get_financial_context
from .memo_projector import (
    MEMO_STATUS_ACTIVE,
    MEMO_STATUS_CANCELLED,
    MEMO_STATUS_DELIVERED,
    MEMO_STATUS_RETURNED,
    SOURCE_DISPATCH,
    SOURCE_RETURN,
    preserve_dispatch_reference,
    project_memo,
)
from .memo_service import find_memo
from .notification_service import notify_trip_event
from .order_service import (
    PAYMENT_PAY_LATER,
    PAYMENT_PAY_ON_DELIVERY,
    mirror_trip_status,
    trip_mirror_fields,
)
from .sequence_service import next_number
from .trip_states import (
    STATUS_DELIVERED,
    STATUS_DISPATCHED,
    STATUS_RETURNED,
    STATUS_SCHEDULED,
    is_backward,
    is_forward,
)
from tripflow.time_utils import utcnow


OUTCOME_APPLIED = "applied"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"


@dataclass(frozen=True)
class CascadeRule:
    name: str
    matches: Callable[[str, str], bool]
    effect: Callable[[Trip, str, str], bool]  # returns False when there was nothing to do


# =============================================================================
# RETURN MEMO
# =============================================================================

def mint_return_memo(trip: Trip) -> DeliveryMemo | None:
    """
    Mint the RETURN memo for a returned trip and re-point the trip at it.

    Runs inside the caller's transaction so the counter increment, the memo
    insert and the trip update commit together. Returns None when the trip
    is already backed by a return memo.
    """
    if trip.dm_source == SOURCE_RETURN:
        return None

    existing = find_memo(trip.id, source=SOURCE_RETURN, exclude_cancelled=True)
    if existing:
        memo = existing
    else:
        fy = get_financial_context(trip.scheduled_date).fy_label
        number = next_number(trip.organization_id, fy)
        memo = project_memo(
            trip,
            dm_number=number,
            financial_year=fy,
            source=SOURCE_RETURN,
            generated_by=trip.returned_by or "system",
        )
        db.session.add(memo)

    preserve_dispatch_reference(trip)
    trip.dm_id = memo.dm_id
    trip.dm_number = memo.dm_number
    trip.dm_source = SOURCE_RETURN
    trip.return_dm_id = memo.dm_id
    trip.return_dm_number = memo.dm_number
    db.session.flush()
    return memo


def _return_memo(trip: Trip, before: str, after: str) -> bool:
    memo = mint_return_memo(trip)
    if memo is None:
        return False
    current_app.logger.info("Return memo %s minted for trip %s", memo.dm_id, trip.id)
    return True


# =============================================================================
# ORDER MIRROR
# =============================================================================

def _order_mirror(trip: Trip, before: str, after: str) -> bool:
    if trip.order_deleted:
        return False
    return mirror_trip_status(trip.order_id, trip.id, trip_mirror_fields(trip))


# =============================================================================
# LEDGER
# =============================================================================

def _client_entry(trip: Trip, *, category: str, amount_cents: int, description: str):
    fy = get_financial_context(trip.scheduled_date).fy_label
    return ledger_service.create_entry(
        organization_id=trip.organization_id,
        ledger_type=ledger_service.LEDGER_CLIENT,
        party_id=trip.client_id,
        entry_type=ledger_service.ENTRY_CREDIT,
        category=category,
        amount_cents=amount_cents,
        financial_year=fy,
        idempotency_key=ledger_service.trip_entry_key(trip.id, category),
        trip_id=trip.id,
        order_id=trip.order_id,
        dm_id=trip.dispatch_dm_id or trip.dm_id,
        description=description,
        created_by="system",
    )


def _dispatch_credit(trip: Trip, before: str, after: str) -> bool:
    if trip.payment_type != PAYMENT_PAY_LATER:
        return False
    if not trip.total_cents or trip.client_id is None:
        return False

    entry = _client_entry(
        trip,
        category=ledger_service.CATEGORY_CLIENT_CREDIT,
        amount_cents=trip.total_cents,
        description=f"Order credit - {trip.dm_id} (pay later)",
    )
    if trip.credit_entry_id == entry.id:
        return False
    trip.credit_entry_id = entry.id
    return True


def _return_credit(trip: Trip, before: str, after: str) -> bool:
    if trip.payment_type != PAYMENT_PAY_ON_DELIVERY:
        return False
    if trip.client_id is None:
        return False

    remaining = (trip.total_cents or 0) - (trip.paid_on_return_cents or 0)
    if remaining <= 0:
        return False

    entry = _client_entry(
        trip,
        category=ledger_service.CATEGORY_PENDING_PAYMENT,
        amount_cents=remaining,
        description=f"Pending payment - {trip.dispatch_dm_id or trip.dm_id}",
    )
    if trip.return_entry_id == entry.id:
        return False
    trip.return_entry_id = entry.id
    return True


def _cancel_trip_entry(trip: Trip, entry_id: int | None, reason: str) -> bool:
    if not entry_id:
        return False
    try:
        return ledger_service.cancel_entry(entry_id, reason=reason, cancelled_by="system")
    except NotFoundError:
        current_app.logger.warning("Ledger entry %s of trip %s not found", entry_id, trip.id)
        return False


# =============================================================================
# DISPATCH MEMO STAMPS
# =============================================================================

def _memo_delivered(trip: Trip, before: str, after: str) -> bool:
    memo = find_memo(trip.id, source=SOURCE_DISPATCH, status=MEMO_STATUS_ACTIVE)
    if not memo:
        current_app.logger.info("No active dispatch memo for trip %s", trip.id)
        return False
    memo.status = MEMO_STATUS_DELIVERED
    memo.trip_status = STATUS_DELIVERED
    memo.delivered_at = trip.delivered_at or utcnow()
    memo.delivered_by = trip.delivered_by
    memo.delivered_by_role = trip.delivered_by_role
    memo.delivery_photo_url = trip.delivery_photo_url
    return True


def _memo_return_stamp(trip: Trip, before: str, after: str) -> bool:
    memo = find_memo(trip.id, source=SOURCE_DISPATCH, exclude_cancelled=True)
    if not memo:
        current_app.logger.info("No dispatch memo to stamp for returned trip %s", trip.id)
        return False
    memo.status = MEMO_STATUS_RETURNED
    memo.trip_status = STATUS_RETURNED
    memo.returned_at = trip.returned_at or utcnow()
    memo.returned_by = trip.returned_by
    memo.returned_by_role = trip.returned_by_role
    memo.initial_reading = trip.initial_reading
    memo.final_reading = trip.final_reading
    memo.distance_travelled = trip.distance_travelled
    memo.paid_on_return_cents = trip.paid_on_return_cents
    return True


# =============================================================================
# REVERSALS
# =============================================================================

def _revert_return(trip: Trip, before: str, after: str) -> bool:
    changed = False

    memo = find_memo(trip.id, source=SOURCE_DISPATCH, status=MEMO_STATUS_RETURNED)
    if memo:
        memo.status = MEMO_STATUS_DELIVERED
        memo.trip_status = STATUS_DELIVERED
        memo.returned_at = None
        memo.returned_by = None
        memo.returned_by_role = None
        memo.final_reading = None
        memo.distance_travelled = None
        memo.paid_on_return_cents = None
        changed = True

    return_memo = find_memo(trip.id, source=SOURCE_RETURN, exclude_cancelled=True)
    if return_memo:
        return_memo.status = MEMO_STATUS_CANCELLED
        return_memo.cancelled_at = utcnow()
        return_memo.cancelled_by = trip.status_updated_by or "system"
        return_memo.cancellation_reason = f"Trip return reverted to {after}"
        changed = True

    if _cancel_trip_entry(trip, trip.return_entry_id, "Trip return reverted"):
        changed = True
    if trip.return_entry_id:
        trip.return_entry_id = None
        changed = True
    return changed


def _revert_delivery(trip: Trip, before: str, after: str) -> bool:
    memo = find_memo(trip.id, source=SOURCE_DISPATCH, status=MEMO_STATUS_DELIVERED)
    if not memo:
        return False
    memo.status = MEMO_STATUS_ACTIVE
    memo.trip_status = after
    memo.delivered_at = None
    memo.delivered_by = None
    memo.delivered_by_role = None
    memo.delivery_photo_url = None
    return True


def _revert_dispatch(trip: Trip, before: str, after: str) -> bool:
    changed = _cancel_trip_entry(trip, trip.credit_entry_id, "Trip dispatch reverted")
    if trip.credit_entry_id:
        trip.credit_entry_id = None
        changed = True
    return changed


# =============================================================================
# NOTIFICATION
# =============================================================================

def _notify(trip: Trip, before: str, after: str) -> bool:
    return notify_trip_event(trip, after) > 0


# =============================================================================
# RULE TABLE
# =============================================================================

CASCADE_RULES: tuple[CascadeRule, ...] = (
    CascadeRule(
        "return-memo",
        lambda before, after: after == STATUS_RETURNED,
        _return_memo,
    ),
    CascadeRule(
        "order-mirror",
        lambda before, after: before != after,
        _order_mirror,
    ),
    CascadeRule(
        "dispatch-credit",
        lambda before, after: after == STATUS_DISPATCHED,
        _dispatch_credit,
    ),
    CascadeRule(
        "memo-delivered",
        lambda before, after: after == STATUS_DELIVERED and is_forward(before, after),
        _memo_delivered,
    ),
    CascadeRule(
        "memo-return-stamp",
        lambda before, after: after == STATUS_RETURNED,
        _memo_return_stamp,
    ),
    CascadeRule(
        "return-credit",
        lambda before, after: after == STATUS_RETURNED,
        _return_credit,
    ),
    CascadeRule(
        "revert-return",
        lambda before, after: before == STATUS_RETURNED and after != STATUS_RETURNED,
        _revert_return,
    ),
    CascadeRule(
        "revert-delivery",
        lambda before, after: (
            before in (STATUS_DELIVERED, STATUS_RETURNED)
            and after in (STATUS_SCHEDULED, STATUS_DISPATCHED)
        ),
        _revert_delivery,
    ),
    CascadeRule(
        "revert-dispatch",
        lambda before, after: before != STATUS_SCHEDULED and after == STATUS_SCHEDULED,
        _revert_dispatch,
    ),
    CascadeRule(
        "notify",
        lambda before, after: after in (STATUS_DISPATCHED, STATUS_DELIVERED) and not is_backward(before, after),
        _notify,
    ),
)


def matching_rules(before: str, after: str) -> list[CascadeRule]:
    if before == after:
        return []
    return [rule for rule in CASCADE_RULES if rule.matches(before, after)]


def _run_rule(rule: CascadeRule, trip_id: int, before: str, after: str) -> str:
    def _op() -> bool:
        trip = lock_for_update(db.session.query(Trip).filter_by(id=trip_id)).first()
        if not trip:
            raise NotFoundError(f"Trip {trip_id} not found")
        applied = rule.effect(trip, before, after)
        db.session.commit()
        return applied

    try:
        applied = run_with_retry(_op)
    except NotFoundError as exc:
        db.session.rollback()
        current_app.logger.warning("Cascade %s skipped for trip %s: %s", rule.name, trip_id, exc)
        return OUTCOME_SKIPPED
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Cascade %s failed for trip %s (%s -> %s)", rule.name, trip_id, before, after
        )
        return OUTCOME_FAILED
    return OUTCOME_APPLIED if applied else OUTCOME_SKIPPED


def run_cascades(trip_id: int, before: str, after: str) -> dict[str, str]:
    """
    Apply every matching rule for a committed status change.

    Returns the outcome of each rule that matched, keyed by rule name.
    Never raises for a failing effect.
    """
    outcomes: dict[str, str] = {}
    for rule in matching_rules(before, after):
        outcomes[rule.name] = _run_rule(rule, trip_id, before, after)
    failed = [name for name, outcome in outcomes.items() if outcome == OUTCOME_FAILED]
    if failed:
        current_app.logger.warning("Trip %s cascades failed: %s", trip_id, ", ".join(failed))
    return outcomes
