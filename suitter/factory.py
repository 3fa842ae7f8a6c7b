"""
Application Factory for the Suitter zkLogin salt service

Implements the Flask application factory pattern with:
- Blueprint registration
- Security configuration (TLS, headers, rate limiting)
- Optional provider verification of identity tokens
- JSON error handling
"""

import logging
from typing import Optional

from flask import Flask, jsonify, request

from suitter.audit_logger import get_audit_logger, init_audit_logger
from suitter.config import AppConfig, get_config, validate_config
from suitter.security import init_security
from suitter.zklogin.salt import ProviderTokenVerifier

logger = logging.getLogger(__name__)


def create_app(config_override: Optional[AppConfig] = None) -> Flask:
    """
    Create and configure the Flask application using the factory pattern.

    Args:
        config_override: Optional configuration override for testing

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    cfg = config_override or get_config()
    validate_config(cfg)
    app.config["APP_CONFIG"] = cfg

    app.secret_key = cfg.get("FLASK_SECRET_KEY")

    # Initialize security middleware (Talisman, rate limiting, logging)
    init_security(app, cfg)
    init_audit_logger()

    if cfg.get("SALT_VERIFY_JWT"):
        app.extensions["salt_token_verifier"] = ProviderTokenVerifier(
            cfg["OAUTH_JWKS_URL"], cfg.get("SALT_ALLOWED_AUDIENCES")
        )
        logger.info(f"✅ Salt endpoint verifies tokens against {cfg['OAUTH_JWKS_URL']}")
    else:
        logger.warning("⚠️  Salt endpoint trusts unverified token claims (SALT_VERIFY_JWT off)")

    if not cfg.get("SALT_SECRET"):
        logger.error("❌ SALT_SECRET not configured; salt requests will fail")

    register_blueprints(app)
    register_error_handlers(app)
    register_request_handlers(app)

    logger.info("🚀 Application factory completed successfully")
    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""

    # zkLogin salt authority
    from suitter.blueprints.salt import salt_bp
    app.register_blueprint(salt_bp, url_prefix="/api/zklogin")

    # Health checks
    from suitter.blueprints.admin import admin_bp
    app.register_blueprint(admin_bp)

    logger.info("✅ All blueprints registered")


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "bad_request", "message": str(e)}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed", "message": str(e)}), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(e):
        get_audit_logger().log_rate_limit_exceeded(request.remote_addr, request.path)
        return jsonify({"error": "rate_limit_exceeded", "message": str(e.description)}), 429

    @app.errorhandler(500)
    def internal_error(e):
        logger.error(f"Internal server error: {e}", exc_info=True)
        return jsonify({"error": "internal_error", "message": "An unexpected error occurred"}), 500


def register_request_handlers(app: Flask) -> None:
    """Register after request handlers."""

    @app.after_request
    def add_cors_headers(response):
        """Allow the browser client to call the salt endpoint cross-origin."""
        cfg = app.config.get("APP_CONFIG", {})
        allowed = [o.strip() for o in str(cfg.get("CORS_ORIGINS") or "").split(",") if o.strip()]
        origin = request.headers.get("Origin")

        if "*" in allowed:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin and origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        else:
            return response

        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response
