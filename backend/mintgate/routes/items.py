# Overview: Flask API routes for the public item catalog; sale state, supply and allowlist proofs.

from flask import Blueprint, jsonify

from ..services import merkle_service, override_service, sale_state_service, supply_service
from ..services.abi_codec import is_address


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _item_payload(item_id: int) -> dict:
    snapshot = override_service.get_snapshot(item_id)
    state = sale_state_service.get_effective_state(item_id)
    return {
        "item_id": item_id,
        "name": state.name,
        "display_order": override_service.display_order_key(snapshot)[0],
        "is_default_display": snapshot.is_default_display,
        "sale_state": state.to_dict(),
    }


@items_bp.get("")
def list_items_route():
    """Displayable items in display order."""
    snapshots = [override_service.get_snapshot(i) for i in sale_state_service.catalog_item_ids()]
    visible = sorted((s for s in snapshots if s.display_enabled), key=override_service.display_order_key)
    items = [_item_payload(s.item_id) for s in visible]
    return jsonify({"items": items, "count": len(items)})


@items_bp.get("/default")
def default_item_route():
    item_id = override_service.default_item_id(sale_state_service.catalog_item_ids())
    if item_id is None:
        return jsonify({"error": "No displayable items"}), 404
    return jsonify({"item": _item_payload(item_id)})


@items_bp.get("/<int:item_id>/sale-state")
def sale_state_route(item_id: int):
    state = sale_state_service.get_effective_state(item_id)
    return jsonify({"sale_state": state.to_dict()})


@items_bp.get("/<int:item_id>/supply")
def supply_route(item_id: int):
    return jsonify(supply_service.supply_status(item_id))


@items_bp.get("/<int:item_id>/proof/<address>")
def proof_route(item_id: int, address: str):
    if not is_address(address):
        return jsonify({"error": "Invalid address"}), 400
    proof = merkle_service.get_proof(item_id, address)
    if proof is None:
        return jsonify({"error": "Address is not on the allowlist"}), 404
    return jsonify(proof)
