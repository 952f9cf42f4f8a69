# Overview: Best-effort trip event notifications through pluggable hooks.

"""
Notification collaborator.

Delivery channels (SMS, chat) live outside this service. They register a
callable in app.extensions["trip_notifiers"]; each hook is called with
(trip, event). A failing hook is logged and never affects the trip or any
other hook.
"""

from __future__ import annotations

from typing import Callable

from flask import current_app

from ..models import Trip


EVENT_DISPATCHED = "DISPATCHED"
EVENT_DELIVERED = "DELIVERED"

NOTIFIERS_KEY = "trip_notifiers"


def register_notifier(app, hook: Callable[[Trip, str], None]) -> None:
    app.extensions.setdefault(NOTIFIERS_KEY, []).append(hook)


def notify_trip_event(trip: Trip, event: str) -> int:
    """Call every registered hook; returns how many succeeded."""
    hooks = current_app.extensions.get(NOTIFIERS_KEY, [])
    delivered = 0
    for hook in list(hooks):
        try:
            hook(trip, event)
            delivered += 1
        except Exception:
            current_app.logger.exception(
                "Trip notifier %r failed for trip %s (%s)", hook, trip.id, event
            )
    if hooks:
        current_app.logger.info("Trip %s %s notification sent to %d/%d hooks", trip.id, event, delivered, len(hooks))
    return delivered
