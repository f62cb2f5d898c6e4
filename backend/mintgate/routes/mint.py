# Overview: Flask API routes for purchase execution; runs the mint orchestrator for one wallet.

from flask import Blueprint, current_app, jsonify, request

from ..services import mint_orchestrator, wallet_service
from ..services.abi_codec import AbiError, normalize_address
from ..services.concurrency import MintInProgressError


mint_bp = Blueprint("mint", __name__, url_prefix="/api")


@mint_bp.post("/mint")
def mint_route():
    data = request.get_json(silent=True) or {}
    try:
        wallet_address = normalize_address(data.get("wallet") or "")
    except AbiError as e:
        return jsonify({"error": str(e)}), 400

    item_id = data.get("itemId", data.get("item_id"))
    if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id < 0:
        return jsonify({"error": "itemId must be a non-negative integer"}), 400

    quantity = data.get("quantity", 1)
    accept = data.get("acceptPriceIncrease", data.get("accept_price_increase", False))
    if not isinstance(accept, bool):
        return jsonify({"error": "acceptPriceIncrease must be a boolean"}), 400

    orchestrator = mint_orchestrator.build_orchestrator(wallet_service.get_wallet(wallet_address))
    try:
        outcome = orchestrator.run(item_id, quantity, accept_price_increase=accept)
    except MintInProgressError as e:
        return jsonify({"error": str(e)}), 409

    current_app.logger.info(
        "Mint request %s item %s x%s -> %s %s",
        wallet_address, item_id, quantity, outcome.state, outcome.reason or "",
    )
    status = 200 if outcome.succeeded else 422
    return jsonify({"outcome": outcome.to_dict()}), status
