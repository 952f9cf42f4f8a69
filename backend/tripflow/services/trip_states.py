# Overview: Trip status vocabulary shared by the state machine and its cascades.

from __future__ import annotations

STATUS_SCHEDULED = "SCHEDULED"
STATUS_DISPATCHED = "DISPATCHED"
STATUS_DELIVERED = "DELIVERED"
STATUS_RETURNED = "RETURNED"

# Lifecycle order; a move to a lower rank is a revert
STATUS_RANK = {
    STATUS_SCHEDULED: 0,
    STATUS_DISPATCHED: 1,
    STATUS_DELIVERED: 2,
    STATUS_RETURNED: 3,
}
VALID_TRIP_STATUSES = set(STATUS_RANK)


def normalize_status(value) -> str | None:
    if not isinstance(value, str):
        return None
    status = value.strip().upper()
    return status if status in VALID_TRIP_STATUSES else None


def is_forward(before: str, after: str) -> bool:
    return STATUS_RANK[after] > STATUS_RANK[before]


def is_backward(before: str, after: str) -> bool:
    return STATUS_RANK[after] < STATUS_RANK[before]
