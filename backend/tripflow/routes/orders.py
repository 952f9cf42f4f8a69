# Overview: Flask API routes for orders and trip scheduling; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor
from ..services import order_service
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_amount_cents,
    coerce_datetime,
    coerce_int,
    require_json_object,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "organization_id": 1,
        "client_name": "Acme Builders",
        "client_id": 42,  (optional)
        "client_phone": "+91...",  (optional)
        "payment_type": "PAY_LATER",  (default)
        "items": [{"product_id": 3, "product_name": "Bricks", "quantity": 2000, "unit_price_cents": 800}],
        "estimated_trips": 2  (default: 1)
    }

    Returns:
        201: Order created
        400: Invalid input
        404: Organization not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        payment_type = data.get("payment_type") or order_service.PAYMENT_PAY_LATER

        order = order_service.create_order(
            organization_id=coerce_int(data.get("organization_id"), "organization_id", minimum=1),
            client_name=data.get("client_name") or "",
            client_id=coerce_int(data.get("client_id"), "client_id", required=False),
            client_phone=data.get("client_phone"),
            payment_type=str(payment_type).strip().upper(),
            items=data.get("items"),
            estimated_trips=coerce_int(data.get("estimated_trips", 1), "estimated_trips", minimum=1),
            created_by=g.actor_id,
        )
        return jsonify({"order": order.to_dict()}), 201
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/trips")
@require_actor
def schedule_trip_route(order_id: int):
    """
    Schedule a trip against an order.

    Request body:
    {
        "scheduled_date": "2024-05-10",
        "vehicle_id": 3,
        "slot": 1,
        "vehicle_number": "KA01AB1234",  (optional)
        "slot_name": "Morning",  (optional)
        "driver_id": 9, "driver_name": "...", "driver_phone": "...",  (optional)
        "items": [...],  (optional, defaults to the order's items)
        "gst_cents": 0  (optional)
    }

    Returns:
        201: Trip scheduled
        400: Invalid input
        404: Order not found
        409: Slot already taken / order fully scheduled or cancelled
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        items = data.get("items")
        if items is not None and not isinstance(items, list):
            raise ValidationError("items must be a list")

        trip = order_service.schedule_trip(
            order_id,
            scheduled_date=coerce_datetime(data.get("scheduled_date"), "scheduled_date"),
            vehicle_id=coerce_int(data.get("vehicle_id"), "vehicle_id", minimum=1),
            slot=coerce_int(data.get("slot"), "slot", minimum=0),
            vehicle_number=data.get("vehicle_number"),
            slot_name=data.get("slot_name"),
            driver_id=coerce_int(data.get("driver_id"), "driver_id", required=False),
            driver_name=data.get("driver_name"),
            driver_phone=data.get("driver_phone"),
            items=items,
            gst_cents=coerce_amount_cents(data.get("gst_cents"), "gst_cents") or 0,
            created_by=g.actor_id,
        )
        return jsonify({"trip": trip.to_dict()}), 201
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to schedule trip")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_actor
def delete_order_route(order_id: int):
    """
    Delete an order. Its trips are kept and flagged order_deleted.

    Returns:
        200: {"deleted": true, "trips_flagged": 2}
        404: Order not found
    """
    try:
        flagged = order_service.delete_order(order_id, deleted_by=g.actor_id)
        return jsonify({"deleted": True, "trips_flagged": flagged}), 200
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
