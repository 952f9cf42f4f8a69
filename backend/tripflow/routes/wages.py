# Overview: Flask API routes for trip wages; parses input and returns JSON responses.

"""
Trip Wage Routes

WHY: Crew pay for a returned trip is recorded, then settled into employee
ledgers and attendance in one operator action. A settlement that fails half
way reports the entries it created so the operator can revert.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor
from ..services import wage_service
from ..services.wage_service import WageSettlementError
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_amount_cents,
    coerce_datetime,
    coerce_id_list,
    coerce_int,
    require_json_object,
)


wages_bp = Blueprint("trip_wages", __name__, url_prefix="/api/trip-wages")


@wages_bp.post("")
@require_actor
def create_wage_route():
    """
    Record a trip wage.

    Request body:
    {
        "delivery_memo_id": 7,
        "loading_employee_ids": [31, 32],
        "unloading_employee_ids": [33],
        "loading_wages_cents": 60000,  (optional)
        "unloading_wages_cents": 30000  (optional)
    }

    Returns:
        201: Trip wage recorded
        400: Invalid input
        404: Delivery memo not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        wage = wage_service.create_trip_wage(
            delivery_memo_id=coerce_int(data.get("delivery_memo_id"), "delivery_memo_id", minimum=1),
            loading_employee_ids=coerce_id_list(data.get("loading_employee_ids"), "loading_employee_ids"),
            unloading_employee_ids=coerce_id_list(data.get("unloading_employee_ids"), "unloading_employee_ids"),
            loading_wages_cents=coerce_amount_cents(data.get("loading_wages_cents"), "loading_wages_cents"),
            unloading_wages_cents=coerce_amount_cents(data.get("unloading_wages_cents"), "unloading_wages_cents"),
            created_by=g.actor_id,
        )
        return jsonify({"trip_wage": wage.to_dict()}), 201
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create trip wage")
        return jsonify({"error": "Internal server error"}), 500


@wages_bp.get("/<int:trip_wage_id>")
def get_wage_route(trip_wage_id: int):
    try:
        wage = wage_service.get_trip_wage(trip_wage_id)
        return jsonify({"trip_wage": wage.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@wages_bp.post("/<int:trip_wage_id>/settle")
@require_actor
def settle_wage_route(trip_wage_id: int):
    """
    SettleTripWage.

    Request body:
    {
        "payment_date": "2024-05-12T10:00:00Z"
    }

    Returns:
        200: {"trip_wage_id", "entry_ids", "financial_year", "year_month"}
        400: Invalid input / wage not settleable
        404: Trip wage not found
        409: Settlement failed part way ("entry_ids" lists created entries)
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        result = wage_service.settle_trip_wage(
            trip_wage_id,
            payment_date=coerce_datetime(data.get("payment_date"), "payment_date"),
            actor_id=g.actor_id,
        )
        return jsonify(result), 200
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except WageSettlementError as e:
        db.session.rollback()
        if e.entry_ids:
            return jsonify({"error": str(e), "entry_ids": e.entry_ids}), 409
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to settle trip wage")
        return jsonify({"error": "Internal server error"}), 500


@wages_bp.post("/<int:trip_wage_id>/revert")
@require_actor
def revert_wage_route(trip_wage_id: int):
    """
    RevertTripWage.

    Returns:
        200: {"trip_wage_id", "entry_count", "deleted_entries"}
        404: Trip wage not found
    """
    try:
        result = wage_service.revert_trip_wage(trip_wage_id)
        current_app.logger.info("Trip wage %s reverted by %s", trip_wage_id, g.actor_id)
        return jsonify(result), 200
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to revert trip wage")
        return jsonify({"error": "Internal server error"}), 500


@wages_bp.delete("/<int:trip_wage_id>")
@require_actor
def delete_wage_route(trip_wage_id: int):
    """
    Delete an unprocessed trip wage (idempotent).

    Returns:
        200: {"deleted": bool}
        409: Wage is processed and must be reverted
    """
    try:
        deleted = wage_service.delete_trip_wage(trip_wage_id)
        return jsonify({"deleted": deleted}), 200
    except WageSettlementError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete trip wage")
        return jsonify({"error": "Internal server error"}), 500
