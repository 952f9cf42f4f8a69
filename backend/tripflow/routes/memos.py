# Overview: Flask API routes for delivery memos; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor
from ..services import memo_service
from ..services.memo_service import MemoAlreadyExistsError
from ..validation import NotFoundError, ValidationError


memos_bp = Blueprint("memos", __name__, url_prefix="/api/memos")


@memos_bp.post("/trips/<int:trip_id>")
@require_actor
def generate_memo_route(trip_id: int):
    """
    GenerateDM for a trip.

    Returns:
        201: {"memo_id", "dm_id", "dm_number", "financial_year"}
        404: Trip not found
        409: {"error", "already_exists": true, "dm_id", "dm_number"}
    """
    try:
        result = memo_service.generate_dispatch_memo(trip_id, g.actor_id)
        return jsonify(result), 201
    except MemoAlreadyExistsError as e:
        db.session.rollback()
        return jsonify({
            "error": str(e),
            "already_exists": True,
            "dm_id": e.dm_id,
            "dm_number": e.dm_number,
        }), 409
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to generate delivery memo")
        return jsonify({"error": "Internal server error"}), 500


@memos_bp.post("/trips/<int:trip_id>/cancel")
@require_actor
def cancel_memo_route(trip_id: int):
    """
    CancelDM for a trip that has not been dispatched.

    Request body (optional):
    {
        "reason": "Wrong vehicle"
    }

    Returns:
        200: {"memo": {...}}
        400: Trip already dispatched
        404: Trip or active memo not found
    """
    try:
        data = request.get_json(silent=True) or {}
        memo = memo_service.cancel_memo(trip_id, reason=data.get("reason"), actor_id=g.actor_id)
        return jsonify({"memo": memo.to_dict()}), 200
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel delivery memo")
        return jsonify({"error": "Internal server error"}), 500


@memos_bp.get("/<int:memo_id>")
def get_memo_route(memo_id: int):
    try:
        memo = memo_service.get_memo(memo_id)
        return jsonify({"memo": memo.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
