# Overview: Flask API routes for delivery memo numbering; parses input and returns JSON responses.

from flask import Blueprint, jsonify, current_app

from ..extensions import db
from ..decorators import require_actor
from ..services import sequence_service
from ..services.sequence_service import SequenceError
from ..services.financial_year import format_dm_id
from ..validation import NotFoundError


sequences_bp = Blueprint("sequences", __name__, url_prefix="/api/sequences")


@sequences_bp.get("/<int:org_id>/<fy>")
def get_counter_route(org_id: int, fy: str):
    """
    GetOrCreateFiscalCounter.

    Returns:
        200: {"counter": {...}}
        400: Invalid fiscal year label
        404: Organization not found
    """
    try:
        counter = sequence_service.get_fiscal_counter_state(org_id, fy)
        return jsonify({"counter": counter.to_dict()}), 200
    except SequenceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load fiscal counter")
        return jsonify({"error": "Internal server error"}), 500


@sequences_bp.post("/<int:org_id>/<fy>/next")
@require_actor
def next_number_route(org_id: int, fy: str):
    """
    IncrementAndGetNext: issue the next memo number.

    Returns:
        200: {"number": 7, "dm_id": "DM/FY2425/7"}
        400: Invalid fiscal year label
        404: Organization not found
    """
    try:
        number = sequence_service.increment_and_get_next(org_id, fy)
        return jsonify({"number": number, "dm_id": format_dm_id(fy, number)}), 200
    except SequenceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to issue memo number")
        return jsonify({"error": "Internal server error"}), 500
