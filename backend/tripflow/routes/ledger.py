# Overview: Flask API routes for ledger balances; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services import ledger_service


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/balance")
def get_balance_route():
    """
    Running balance of one party.

    Query params:
        organization_id (required), ledger_type (CLIENT|EMPLOYEE, required),
        party_id (required), financial_year (optional)
    """
    organization_id = request.args.get("organization_id", type=int)
    ledger_type = (request.args.get("ledger_type") or "").strip().upper()
    party_id = request.args.get("party_id", type=int)
    financial_year = request.args.get("financial_year")

    if not organization_id:
        return jsonify({"error": "organization_id is required"}), 400
    if ledger_type not in ledger_service.VALID_LEDGER_TYPES:
        return jsonify({"error": f"Invalid ledger_type. Must be one of: {', '.join(sorted(ledger_service.VALID_LEDGER_TYPES))}"}), 400
    if party_id is None:
        return jsonify({"error": "party_id is required"}), 400

    balance = ledger_service.get_balance(
        organization_id=organization_id,
        ledger_type=ledger_type,
        party_id=party_id,
        financial_year=financial_year,
    )
    return jsonify({
        "organization_id": organization_id,
        "ledger_type": ledger_type,
        "party_id": party_id,
        "financial_year": financial_year,
        "balance_cents": balance,
    })
