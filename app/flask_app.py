"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, middleware, and configuration.
"""
from __future__ import annotations
import logging
import os
from typing import Optional

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from app.config import AppConfig, load_settings

JSON_MAX_SIZE_BYTES = 65536  # 64 KB


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, service=None) -> Flask:
    """Create and configure Flask application.
    
    Args:
        cfg: Settings to use instead of loading them from the environment
        service: Pre-built ProvisioningService (tests inject fakes here)
    """
    cfg = cfg or load_settings()
    _configure_logging()
    
    app = Flask(__name__)
    
    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["DEMO_MODE"] = cfg.demo_mode
    app.config["MAX_CONTENT_LENGTH"] = JSON_MAX_SIZE_BYTES
    if service is not None:
        app.config["PROVISIONING_SERVICE"] = service
    
    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore
    
    # Register blueprints
    from app.api import admin, errors, health, public
    
    app.register_blueprint(health.bp)
    app.register_blueprint(admin.bp, url_prefix="/api/admin")
    app.register_blueprint(public.bp, url_prefix="/api/public")
    
    # Register error handlers
    errors.register_error_handlers(app)
    
    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print("[flask_app] Provisioning API registered at /api/admin and /api/public")
    
    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo credentials")
    
    return app


def _configure_logging() -> None:
    """Give the app loggers a level and a handler when nothing else did (gunicorn does)."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger("app")
    logger.setLevel(level)
    if not logging.getLogger().handlers and not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        logger.addHandler(handler)


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
