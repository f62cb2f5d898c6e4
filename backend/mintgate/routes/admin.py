# Overview: Flask API routes for operators; overrides, allowlists, supply counters and currencies.

from __future__ import annotations

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import allowlist_service, currency_service, merkle_service, override_service, supply_service
from ..services.allowlist_service import AllowlistError
from ..services.currency_service import CurrencyError, CurrencyNotFoundError
from ..services.supply_service import SupplyError
from ..validation import ValidationError


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _json_error(exc: Exception):
    if isinstance(exc, CurrencyNotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, (ValidationError, AllowlistError, CurrencyError, SupplyError)):
        return jsonify({"error": str(exc)}), 400
    current_app.logger.exception("Admin request failed")
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ITEM OVERRIDES
# =============================================================================

@admin_bp.get("/items")
@require_admin
def list_overrides_route():
    rows = override_service.list_overrides()
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})


@admin_bp.get("/items/<int:item_id>/override")
@require_admin
def get_override_route(item_id: int):
    row = override_service.get_override(item_id)
    if row is None:
        snapshot = override_service.get_snapshot(item_id)
        return jsonify({"override": None, "defaults": {
            "item_id": item_id,
            "display_enabled": snapshot.display_enabled,
            "display_order": item_id,
            "sales_period_enabled": snapshot.sales_period_enabled,
            "is_unlimited": snapshot.is_unlimited,
            "total_minted": 0,
        }})
    return jsonify({"override": row.to_dict()})


@admin_bp.put("/items/<int:item_id>/override")
@require_admin
def replace_override_route(item_id: int):
    payload = request.get_json(silent=True)
    try:
        row = override_service.replace_override(item_id, payload)
    except ValidationError as e:
        return _json_error(e)
    current_app.logger.info("Override for item %s replaced by %s", item_id, g.admin_address)
    return jsonify({"override": row.to_dict()})


@admin_bp.patch("/items/<int:item_id>/override")
@require_admin
def patch_override_route(item_id: int):
    payload = request.get_json(silent=True)
    try:
        row = override_service.patch_override(item_id, payload)
    except ValidationError as e:
        return _json_error(e)
    current_app.logger.info("Override for item %s updated by %s", item_id, g.admin_address)
    return jsonify({"override": row.to_dict()})


@admin_bp.put("/items/<int:item_id>/max-supply")
@require_admin
def max_supply_route(item_id: int):
    data = request.get_json(silent=True) or {}
    max_supply = data.get("maxSupply", data.get("max_supply"))
    reserved = data.get("reservedSupply", data.get("reserved_supply", 0))
    try:
        row = override_service.set_max_supply(item_id, max_supply, reserved)
    except ValidationError as e:
        return _json_error(e)
    return jsonify({"override": row.to_dict(), "supply": supply_service.supply_status(item_id)})


@admin_bp.post("/items/<int:item_id>/minted-count")
@require_admin
def minted_count_route(item_id: int):
    data = request.get_json(silent=True) or {}
    value = data.get("mintedCount", data.get("total_minted"))
    try:
        supply_service.adjust_minted(item_id, value)
    except SupplyError as e:
        return _json_error(e)
    current_app.logger.info("Minted count for item %s set to %s by %s", item_id, value, g.admin_address)
    return jsonify({"supply": supply_service.supply_status(item_id)})


@admin_bp.get("/items/<int:item_id>/mints")
@require_admin
def list_mints_route(item_id: int):
    limit = request.args.get("limit", 100, type=int)
    rows = supply_service.list_mints(item_id, limit=max(1, min(limit, 1000)))
    return jsonify({"mints": [r.to_dict() for r in rows], "count": len(rows)})


# =============================================================================
# ALLOWLISTS
# =============================================================================

@admin_bp.post("/items/<int:item_id>/allowlist")
@require_admin
def upload_allowlist_route(item_id: int):
    """
    Replace the item's allowlist.

    Accepts a multipart file (.csv, .json, .xlsx) under "file", or a JSON
    body {"entries": [{"address": ..., "maxMintAmount": ...}, ...]}.
    """
    try:
        if "file" in request.files:
            file = request.files["file"]
            result = allowlist_service.ingest_file(
                item_id=item_id,
                file_name=file.filename or "",
                raw=file.read(),
                uploaded_by=g.admin_address,
            )
        else:
            data = request.get_json(silent=True) or {}
            rows = data.get("entries")
            if not isinstance(rows, list):
                return jsonify({"error": "file or entries is required"}), 400
            result = allowlist_service.ingest_rows(
                item_id=item_id,
                rows=rows,
                source_file_format="JSON",
                uploaded_by=g.admin_address,
            )
    except (AllowlistError, UnicodeDecodeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(result.to_dict()), 201


@admin_bp.get("/items/<int:item_id>/allowlist")
@require_admin
def view_allowlist_route(item_id: int):
    if request.args.get("format") == "csv":
        return Response(
            allowlist_service.export_csv(item_id),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=allowlist_item_{item_id}.csv"},
        )

    entries = allowlist_service.list_entries(item_id)
    upload = allowlist_service.latest_upload(item_id)
    return jsonify({
        "item_id": item_id,
        "entries": [e.to_dict() for e in entries],
        "count": len(entries),
        "root": merkle_service.get_tree(item_id).root_hex,
        "upload": upload.to_dict() if upload else None,
    })


# =============================================================================
# CURRENCIES
# =============================================================================

@admin_bp.get("/currencies")
@require_admin
def list_currencies_route():
    return jsonify({"currencies": currency_service.list_currencies()})


@admin_bp.post("/currencies")
@require_admin
def upsert_currency_route():
    payload = request.get_json(silent=True) or {}
    try:
        row, created = currency_service.upsert_currency(payload)
    except CurrencyError as e:
        return _json_error(e)
    return jsonify({"currency": row.to_dict()}), 201 if created else 200


@admin_bp.delete("/currencies/<symbol>")
@require_admin
def delete_currency_route(symbol: str):
    try:
        currency_service.delete_currency(symbol)
    except CurrencyError as e:
        return _json_error(e)
    return jsonify({"deleted": symbol})
