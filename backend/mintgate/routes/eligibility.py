# Overview: Flask API routes for eligibility queries; returns the mint decision for a wallet.

from flask import Blueprint, jsonify, request

from ..services import allowlist_service, eligibility_service, merkle_service
from ..services.abi_codec import AbiError, normalize_address


eligibility_bp = Blueprint("eligibility", __name__, url_prefix="/api")


def _parse_request() -> tuple[str, int]:
    data = request.get_json(silent=True) or {}
    address = data.get("address") or data.get("wallet")
    item_id = data.get("itemId", data.get("item_id"))
    if not address:
        raise ValueError("address is required")
    if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id < 0:
        raise ValueError("itemId must be a non-negative integer")
    return normalize_address(address), item_id


@eligibility_bp.post("/eligibility")
def eligibility_route():
    try:
        address, item_id = _parse_request()
    except (ValueError, AbiError) as e:
        return jsonify({"error": str(e)}), 400

    decision = eligibility_service.resolve(address, item_id)
    return jsonify({"decision": decision.to_dict()})


@eligibility_bp.post("/verify-allowlist")
def verify_allowlist_route():
    """Allowlist membership only; no ledger reads."""
    try:
        address, item_id = _parse_request()
    except (ValueError, AbiError) as e:
        return jsonify({"error": str(e)}), 400

    entry = allowlist_service.get_entry(item_id, address)
    proof = merkle_service.get_proof(item_id, address) if entry else None
    return jsonify({
        "address": address,
        "item_id": item_id,
        "is_allowlisted": entry is not None,
        "max_mint_amount": entry.max_mint_amount if entry else 0,
        "root": merkle_service.get_tree(item_id).root_hex,
        "proof": proof["proof"] if proof else [],
    })
