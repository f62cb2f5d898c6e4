# backend/mintgate/routes/system.py
"""
System health and version endpoints.

The health check covers the two dependencies every request needs: the
database and the ledger RPC endpoint.
"""

import sys
import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import AllowlistEntry, ItemOverride
from ..services import chain_service
from mintgate.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        override_count = db.session.query(ItemOverride).count()
        allowlist_count = db.session.query(AllowlistEntry).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "item_overrides": override_count,
                "allowlist_entries": allowlist_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_chain_health() -> dict:
    """
    Ledger reachability. A failing ledger degrades the service (eligibility
    falls back to snapshots) rather than taking it down.
    """
    start_time = time.time()
    try:
        reader = chain_service.get_reader()
        block = reader.rpc.request("eth_blockNumber", [])
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "contract": reader.contract_address,
                "block_number": int(block, 16) if isinstance(block, str) else block,
            }
        }
    except chain_service.ChainReadError as e:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.warning("Chain health check failed: %s", e)
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "warning": str(e),
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (ledger unreachable)
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    chain_health = check_chain_health()

    all_checks = [database_health, chain_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return jsonify({
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "chain": chain_health,
        }
    }), http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return jsonify({
        "api_version": "1.0.0",
        "environment": env,
        "chain_id": current_app.config.get("CHAIN_ID"),
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    })
