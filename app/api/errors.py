"""Error handlers for the application.

Every response of this service is JSON: ``{"error": "<message>"}``.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from app.core.errors import ProvisioningBaseError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register error handlers with the Flask app."""
    
    @app.errorhandler(ProvisioningBaseError)
    def provisioning_error(error):
        """Handle domain errors raised outside ``run_operation``."""
        return jsonify(error.to_dict()), error.status
    
    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return jsonify({"error": _description(error, "Bad request")}), 400
    
    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        return jsonify({"error": "Authentication required"}), 401
    
    @app.errorhandler(403)
    def forbidden(error):
        """Handle 403 Forbidden errors."""
        return jsonify({"error": "Insufficient permissions"}), 403
    
    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        return jsonify({"error": "Resource not found"}), 404
    
    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 Method Not Allowed errors."""
        return jsonify({"error": "Method not allowed"}), 405
    
    @app.errorhandler(413)
    def payload_too_large(error):
        """Handle 413 Payload Too Large errors."""
        return jsonify({"error": "Request payload too large"}), 413
    
    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500
    
    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error
        
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


def _description(error, default: str) -> str:
    description = getattr(error, "description", None)
    if description and not str(description).startswith("The browser (or proxy) sent a request"):
        return str(description)
    return default
