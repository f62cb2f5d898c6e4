# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services.abi_codec import AbiError, normalize_address


ADMIN_HEADER = "X-Admin-Address"


def require_admin(f):
    """
    Require the caller's wallet to be a configured operator.

    Reads the operator address from the X-Admin-Address header and checks it
    against ADMIN_ADDRESSES. Sets g.admin_address on success.

    Returns 401 when the header is missing or malformed, 403 when the
    address is not an operator.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ADMIN_HEADER)
        if not raw:
            return jsonify({"error": "Admin address required"}), 401
        try:
            address = normalize_address(raw)
        except AbiError:
            return jsonify({"error": "Invalid admin address"}), 401

        allowed = current_app.config.get("ADMIN_ADDRESSES") or []
        if address not in allowed:
            current_app.logger.warning("Rejected admin request from %s to %s", address, request.path)
            return jsonify({"error": "Access denied"}), 403

        g.admin_address = address
        return f(*args, **kwargs)

    return decorated_function
