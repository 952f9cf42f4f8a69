# Overview: Builds delivery memo snapshots from trips; no database access.

"""
Delivery memo projector.

project_memo copies a fixed field set from a trip into a new, unsaved
DeliveryMemo. Optional trip values that are null are replaced with neutral
defaults ("" / 0 / []) so a memo never carries a mix of missing and null
values. Driver fields stay nullable: a trip may run without an assigned
driver and the memo says so explicitly.
"""

from __future__ import annotations

import copy
from datetime import datetime

from ..models import DeliveryMemo, Trip
from tripflow.time_utils import utcnow
from .financial_year import format_dm_id


SOURCE_DISPATCH = "DISPATCH"
SOURCE_RETURN = "RETURN"
VALID_SOURCES = {SOURCE_DISPATCH, SOURCE_RETURN}

MEMO_STATUS_ACTIVE = "ACTIVE"
MEMO_STATUS_DELIVERED = "DELIVERED"
MEMO_STATUS_RETURNED = "RETURNED"
MEMO_STATUS_CANCELLED = "CANCELLED"


def _text(value) -> str:
    return value if value is not None else ""


# Neutral values for null item fields; other keys are kept as given
ITEM_DEFAULTS = {
    "product_name": "",
    "quantity": 0,
    "unit_price_cents": 0,
}


def _items(value) -> list:
    if not value:
        return []
    lines = []
    for item in value:
        if not isinstance(item, dict):
            continue
        line = copy.deepcopy(item)
        for key, default in ITEM_DEFAULTS.items():
            if line.get(key) is None:
                line[key] = default
        lines.append(line)
    return lines


def project_memo(
    trip: Trip,
    *,
    dm_number: int,
    financial_year: str,
    source: str,
    generated_by: str,
    generated_at: datetime | None = None,
) -> DeliveryMemo:
    """
    Build a memo snapshot for trip. Pure: the trip is not modified and the
    memo is not added to the session.
    """
    if source not in VALID_SOURCES:
        raise ValueError(f"Invalid memo source '{source}'. Must be one of: {', '.join(sorted(VALID_SOURCES))}")
    if dm_number is None or dm_number < 1:
        raise ValueError("dm_number must be a positive integer")

    generated_at = generated_at or utcnow()

    memo = DeliveryMemo(
        dm_id=format_dm_id(financial_year, dm_number),
        dm_number=dm_number,
        financial_year=financial_year,
        organization_id=trip.organization_id,
        trip_id=trip.id,
        order_id=trip.order_id,
        client_id=trip.client_id,
        client_name=_text(trip.client_name),
        customer_phone=_text(trip.client_phone),
        scheduled_date=trip.scheduled_date,
        vehicle_id=trip.vehicle_id,
        vehicle_number=_text(trip.vehicle_number),
        slot=trip.slot or 0,
        slot_name=_text(trip.slot_name),
        driver_id=trip.driver_id,
        driver_name=trip.driver_name,
        driver_phone=trip.driver_phone,
        items=_items(trip.items),
        subtotal_cents=trip.subtotal_cents or 0,
        gst_cents=trip.gst_cents or 0,
        total_cents=trip.total_cents or 0,
        payment_type=_text(trip.payment_type),
        source=source,
        trip_status=trip.status or "SCHEDULED",
        generated_at=generated_at,
        generated_by=generated_by or "system",
        delivered_at=None,
        delivered_by=None,
        delivered_by_role=None,
        delivery_photo_url=None,
        returned_at=None,
        returned_by=None,
        returned_by_role=None,
        initial_reading=None,
        final_reading=None,
        distance_travelled=None,
        paid_on_return_cents=None,
        cancelled_at=None,
        cancelled_by=None,
        cancellation_reason=None,
    )

    if source == SOURCE_DISPATCH:
        memo.status = MEMO_STATUS_ACTIVE
    else:
        memo.status = MEMO_STATUS_RETURNED
        memo.returned_at = trip.returned_at or generated_at
        memo.returned_by = trip.returned_by
        memo.returned_by_role = trip.returned_by_role
        memo.initial_reading = trip.initial_reading
        memo.final_reading = trip.final_reading
        memo.distance_travelled = trip.distance_travelled
        memo.paid_on_return_cents = trip.paid_on_return_cents
        memo.delivered_at = trip.delivered_at
        memo.delivered_by = trip.delivered_by
        memo.delivered_by_role = trip.delivered_by_role
        memo.delivery_photo_url = trip.delivery_photo_url

    return memo


def preserve_dispatch_reference(trip: Trip) -> None:
    """
    Keep the trip's dispatch memo reference under the dispatch aliases before
    the trip is re-pointed at a return memo. A return-sourced reference is
    never copied into the dispatch aliases.
    """
    if trip.dm_id and trip.dm_source != SOURCE_RETURN:
        trip.dispatch_dm_id = trip.dm_id
        trip.dispatch_dm_number = trip.dm_number
