"""
Salt Blueprint - zkLogin salt authority endpoint.

POST /api/zklogin/salt {jwt} -> {salt}
"""

import logging

import jwt
from flask import Blueprint, current_app, jsonify, request

from suitter.audit_logger import get_audit_logger
from suitter.security import limiter
from suitter.zklogin.errors import InvalidIdentityToken, SaltOverflow
from suitter.zklogin.salt import derive_salt, read_subject

logger = logging.getLogger(__name__)

salt_bp = Blueprint("salt", __name__)


def _salt_rate_limit() -> str:
    return current_app.config["APP_CONFIG"].get("SALT_RATE_LIMIT") or "30 per minute"


@salt_bp.route("/salt", methods=["POST"])
@limiter.limit(_salt_rate_limit)
def get_salt():
    """
    Derive the zkLogin salt for the token's subject.

    Request body:
        {"jwt": "<identity token>"}

    Returns:
        200 {"salt": "<decimal>"}
        400 token missing or unparseable
        401 token rejected by provider verification (SALT_VERIFY_JWT)
        500 salt secret unconfigured, provider keys unreachable or derivation failure
    """
    cfg = current_app.config["APP_CONFIG"]
    audit = get_audit_logger()

    data = request.get_json(silent=True) or {}
    token = data.get("jwt") if isinstance(data, dict) else None
    if not token or not isinstance(token, str):
        return jsonify({"error": "JWT token is required"}), 400

    try:
        sub = read_subject(token)
    except InvalidIdentityToken as e:
        return jsonify({"error": str(e)}), 400

    verifier = current_app.extensions.get("salt_token_verifier")
    if verifier is not None:
        try:
            verifier.verify(token)
        except jwt.PyJWKClientError as e:
            logger.error(f"Provider signing keys unavailable: {e}", exc_info=True)
            audit.log_error("PyJWKClientError", str(e))
            return jsonify({"error": "Failed to obtain salt"}), 500
        except jwt.PyJWTError as e:
            logger.warning(f"Salt request with unverifiable token: {e}")
            audit.log_security_event("salt_token_rejected", "medium", {"reason": str(e), "ip": request.remote_addr})
            return jsonify({"error": "Invalid JWT: verification failed"}), 401

    secret = cfg.get("SALT_SECRET")
    if not secret:
        logger.error("SALT_SECRET is not configured")
        return jsonify({"error": "Failed to obtain salt"}), 500

    try:
        salt = derive_salt(secret, sub)
    except SaltOverflow as e:
        logger.error(f"Salt derivation failed: {e}", exc_info=True)
        audit.log_error("SaltOverflow", str(e))
        return jsonify({"error": "Failed to obtain salt"}), 500

    audit.log_salt_issued(sub, request.remote_addr)
    return jsonify({"salt": salt}), 200
