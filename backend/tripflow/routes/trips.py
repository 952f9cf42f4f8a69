# Overview: Flask API routes for trips; parses input and returns JSON responses.

"""
Trip Routes

DESIGN:
- Status changes go through the state machine only
- Cascade outcomes are reported but never turn a committed status change
  into an error response
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor
from ..services import trip_status_service
from ..services.trip_status_service import TripStatusError
from ..validation import NotFoundError, ValidationError, require_json_object


trips_bp = Blueprint("trips", __name__, url_prefix="/api/trips")


@trips_bp.get("/<int:trip_id>")
def get_trip_route(trip_id: int):
    try:
        trip = trip_status_service.get_trip(trip_id)
        return jsonify({"trip": trip.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@trips_bp.post("/<int:trip_id>/status")
@require_actor
def update_status_route(trip_id: int):
    """
    Move a trip to a new status.

    Request body:
    {
        "status": "DISPATCHED",
        "details": {  (optional)
            "initial_reading": 1200.5,
            "final_reading": 1260.0,
            "delivery_photo_url": "https://...",
            "paid_on_return_cents": 50000
        }
    }

    Returns:
        200: {"trip": {...}, "before": "...", "after": "...", "changed": bool, "cascades": {...}}
        400: Invalid status or details
        404: Trip not found
        409: Transition rejected (e.g. no delivery memo yet)
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        status = data.get("status")
        if not status:
            raise ValidationError("status is required")

        result = trip_status_service.update_trip_status(
            trip_id,
            status,
            actor_id=g.actor_id,
            actor_role=g.actor_role,
            details=data.get("details"),
        )
        return jsonify({
            "trip": result.trip.to_dict(),
            "before": result.before,
            "after": result.after,
            "changed": result.changed,
            "cascades": result.cascades,
        }), 200
    except TripStatusError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update trip status")
        return jsonify({"error": "Internal server error"}), 500
