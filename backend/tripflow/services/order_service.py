# Overview: Service-layer operations for orders and trip scheduling; encapsulates business logic and database work.

"""
Order collaborator.

WHY: Trips are scheduled against an order and the order keeps a summary of
each of them in scheduled_trips. The summary is a mirror that the trip
cascade keeps current; the trip row stays authoritative.

RULES:
- At most one trip per (scheduled day, vehicle, slot).
- Scheduling decrements estimated_trips; reaching 0 marks the order
  FULLY_SCHEDULED (the order is kept).
- A CANCELLED order is never mirrored into again; its trips carry on.
- Deleting an order flags its trips with order_deleted and leaves them
  otherwise untouched.
"""

from __future__ import annotations

import copy
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Order, Organization, Trip
from ..validation import ConflictError, NotFoundError, ValidationError
from tripflow.time_utils import normalize_date, to_utc_z, utcnow
from .concurrency import lock_for_update, run_with_retry


ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_FULLY_SCHEDULED = "FULLY_SCHEDULED"
ORDER_STATUS_CANCELLED = "CANCELLED"

PAYMENT_PAY_LATER = "PAY_LATER"
PAYMENT_PAY_ON_DELIVERY = "PAY_ON_DELIVERY"
PAYMENT_ADVANCE = "ADVANCE"
PAYMENT_CASH = "CASH"
VALID_PAYMENT_TYPES = {PAYMENT_PAY_LATER, PAYMENT_PAY_ON_DELIVERY, PAYMENT_ADVANCE, PAYMENT_CASH}

# Stage fields mirrored into order summaries, keyed by the status that owns them
STAGE_FIELDS = {
    "DISPATCHED": ("dispatched_at", "dispatched_by", "dispatched_by_role", "initial_reading"),
    "DELIVERED": ("delivered_at", "delivered_by", "delivered_by_role", "delivery_photo_url"),
    "RETURNED": ("returned_at", "returned_by", "returned_by_role", "final_reading", "paid_on_return_cents"),
}


def _serialize(value):
    if isinstance(value, datetime):
        return to_utc_z(value)
    return value


def _line_total_cents(items: list) -> int:
    total = 0
    for item in items or []:
        total += int(item.get("quantity") or 0) * int(item.get("unit_price_cents") or 0)
    return total


# =============================================================================
# ORDERS
# =============================================================================

def create_order(
    *,
    organization_id: int,
    client_name: str,
    payment_type: str = PAYMENT_PAY_LATER,
    client_id: int | None = None,
    client_phone: str | None = None,
    items: list | None = None,
    estimated_trips: int = 1,
    created_by: str | None = None,
) -> Order:
    if payment_type not in VALID_PAYMENT_TYPES:
        raise ValidationError(
            f"Invalid payment_type '{payment_type}'. Must be one of: {', '.join(sorted(VALID_PAYMENT_TYPES))}"
        )
    if not client_name or not client_name.strip():
        raise ValidationError("client_name is required")
    if estimated_trips is None or estimated_trips < 1:
        raise ValidationError("estimated_trips must be >= 1")
    if items is not None and not isinstance(items, list):
        raise ValidationError("items must be a list")

    org = db.session.query(Organization).filter_by(id=organization_id).first()
    if not org:
        raise NotFoundError(f"Organization {organization_id} not found")

    order = Order(
        organization_id=organization_id,
        client_id=client_id,
        client_name=client_name.strip(),
        client_phone=client_phone,
        payment_type=payment_type,
        status=ORDER_STATUS_PENDING,
        items=items or [],
        estimated_trips=estimated_trips,
        total_scheduled_trips=0,
        scheduled_trips=[],
        created_by=created_by,
    )
    db.session.add(order)
    db.session.commit()
    current_app.logger.info("Order %s created for organization %s", order.id, organization_id)
    return order


def _trip_summary(trip: Trip) -> dict:
    summary = {
        "trip_id": trip.id,
        "scheduled_date": to_utc_z(trip.scheduled_date),
        "vehicle_id": trip.vehicle_id,
        "vehicle_number": trip.vehicle_number,
        "driver_id": trip.driver_id,
        "driver_name": trip.driver_name,
        "slot": trip.slot,
        "slot_name": trip.slot_name or "",
        "total_cents": trip.total_cents,
    }
    summary.update(trip_mirror_fields(trip))
    return summary


def schedule_trip(
    order_id: int,
    *,
    scheduled_date: datetime,
    vehicle_id: int,
    slot: int,
    vehicle_number: str | None = None,
    slot_name: str | None = None,
    driver_id: int | None = None,
    driver_name: str | None = None,
    driver_phone: str | None = None,
    items: list | None = None,
    gst_cents: int = 0,
    created_by: str | None = None,
) -> Trip:
    """
    Create a SCHEDULED trip for an order and add it to the order summary.

    Raises ConflictError if another trip holds the same (day, vehicle, slot)
    or the order has no trips left to schedule.
    """
    if scheduled_date is None:
        raise ValidationError("scheduled_date is required")
    if vehicle_id is None:
        raise ValidationError("vehicle_id is required")
    if slot is None:
        raise ValidationError("slot is required")

    def _op() -> Trip:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status == ORDER_STATUS_CANCELLED:
            raise ConflictError(f"Order {order_id} is cancelled")
        if (order.estimated_trips or 0) <= 0:
            raise ConflictError(f"Order {order_id} has no trips left to schedule")

        day_start = datetime.combine(normalize_date(scheduled_date), datetime.min.time())
        clash = (
            db.session.query(Trip.id)
            .filter(
                Trip.organization_id == order.organization_id,
                Trip.vehicle_id == vehicle_id,
                Trip.slot == slot,
                Trip.scheduled_date >= day_start,
                Trip.scheduled_date < day_start + timedelta(days=1),
            )
            .first()
        )
        if clash:
            raise ConflictError(
                f"Vehicle {vehicle_id} already has trip {clash.id} in slot {slot} on {day_start.date().isoformat()}"
            )

        trip_items = copy.deepcopy(items if items is not None else (order.items or []))
        subtotal = _line_total_cents(trip_items)

        trip = Trip(
            organization_id=order.organization_id,
            order_id=order.id,
            client_id=order.client_id,
            client_name=order.client_name,
            client_phone=order.client_phone,
            vehicle_id=vehicle_id,
            vehicle_number=vehicle_number,
            driver_id=driver_id,
            driver_name=driver_name,
            driver_phone=driver_phone,
            scheduled_date=scheduled_date,
            slot=slot,
            slot_name=slot_name,
            items=trip_items,
            subtotal_cents=subtotal,
            gst_cents=gst_cents or 0,
            total_cents=subtotal + (gst_cents or 0),
            payment_type=order.payment_type,
            status="SCHEDULED",
            created_by=created_by,
        )
        db.session.add(trip)
        db.session.flush()

        order.scheduled_trips = list(order.scheduled_trips or []) + [_trip_summary(trip)]
        order.total_scheduled_trips = (order.total_scheduled_trips or 0) + 1
        order.estimated_trips = order.estimated_trips - 1
        order.status = ORDER_STATUS_FULLY_SCHEDULED if order.estimated_trips <= 0 else ORDER_STATUS_PENDING

        db.session.commit()
        return trip

    trip = run_with_retry(_op)
    current_app.logger.info("Trip %s scheduled for order %s", trip.id, order_id)
    return trip


# =============================================================================
# MIRRORING
# =============================================================================

def trip_mirror_fields(trip: Trip) -> dict:
    """
    Status plus stage fields for an order summary.

    Only the current stage's fields carry values; the fields of every other
    stage are explicitly null so stale stamps never linger in the summary.
    """
    fields = {"trip_status": trip.status}
    for stage, names in STAGE_FIELDS.items():
        for name in names:
            fields[name] = _serialize(getattr(trip, name)) if trip.status == stage else None
    return fields


def mirror_trip_status(order_id: int | None, trip_id: int, fields: dict) -> bool:
    """
    Merge fields into the order's summary for trip_id.

    Runs inside the caller's transaction. Returns False when there is
    nothing to mirror into (order missing or cancelled, trip not listed).
    """
    if order_id is None:
        return False
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        current_app.logger.info("Order %s not found; skipping mirror of trip %s", order_id, trip_id)
        return False
    if order.status == ORDER_STATUS_CANCELLED:
        current_app.logger.info("Order %s is cancelled; trip %s continues independently", order_id, trip_id)
        return False

    # Copy so the change is detected against the loaded value
    summaries = copy.deepcopy(order.scheduled_trips or [])
    found = False
    for summary in summaries:
        if summary.get("trip_id") == trip_id:
            summary.update(fields)
            found = True
    if not found:
        current_app.logger.warning("Trip %s not found in scheduled_trips of order %s", trip_id, order_id)
        return False

    order.scheduled_trips = summaries
    return True


# =============================================================================
# DELETION
# =============================================================================

def delete_order(order_id: int, *, deleted_by: str) -> int:
    """
    Delete an order. Its trips are flagged order_deleted and kept.

    Returns the number of trips flagged.
    """
    def _op() -> int:
        order = db.session.query(Order).filter_by(id=order_id).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")

        now = utcnow()
        trips = lock_for_update(db.session.query(Trip).filter_by(order_id=order_id)).all()
        for trip in trips:
            trip.order_deleted = True
            trip.order_deleted_at = now
            trip.order_deleted_by = deleted_by

        db.session.delete(order)
        db.session.commit()
        return len(trips)

    flagged = run_with_retry(_op)
    current_app.logger.info("Order %s deleted by %s; %d trip(s) flagged", order_id, deleted_by, flagged)
    return flagged
