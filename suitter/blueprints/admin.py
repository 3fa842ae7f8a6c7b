"""
Admin Blueprint - Health Checks

Provides monitoring endpoints for the salt service.
"""

import logging
import time
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/health")
def health():
    """
    Service health check endpoint.

    Returns:
        JSON health status with service information
    """
    cfg = current_app.config["APP_CONFIG"]
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "service": cfg.get("APP_NAME", "Suitter"),
        "network": cfg.get("SUI_NETWORK"),
        "version": cfg.get("APP_VERSION"),
        "timestamp": time.time(),
    }
    return jsonify(health_status), 200


@admin_bp.route("/health/live")
def liveness():
    """
    Liveness probe - checks if app is running.

    Returns:
        200 if process is alive
    """
    return jsonify({"status": "alive"}), 200


@admin_bp.route("/health/ready")
def readiness():
    """
    Readiness probe - salts can only be issued once the secret is configured.

    Returns:
        200 if ready, 503 if not ready
    """
    if not current_app.config["APP_CONFIG"].get("SALT_SECRET"):
        logger.warning("Readiness check failed: SALT_SECRET not configured")
        return jsonify({"status": "not_ready", "error": "SALT_SECRET not configured"}), 503
    return jsonify({"status": "ready"}), 200
