"""Shared plumbing for the provisioning endpoints."""
from __future__ import annotations
import logging
from typing import Any, Callable

from flask import current_app, g, jsonify, request

from app.core.errors import ProvisioningBaseError, ValidationError
from app.core.provisioning_service import ProvisioningService, build_provisioning_service

logger = logging.getLogger(__name__)

SERVICE_KEY = "PROVISIONING_SERVICE"


def get_provisioning_service() -> ProvisioningService:
    """Return the app's provisioning service, building it on first use."""
    service = current_app.config.get(SERVICE_KEY)
    if service is None:
        service = build_provisioning_service(current_app.config["APP_CONFIG"])
        current_app.config[SERVICE_KEY] = service
    return service


def current_operator() -> str:
    """Identity of the caller for audit records (set by ``require_admin``)."""
    return g.get("operator") or "admin"


def get_json_payload() -> dict:
    """Parse the request body as a JSON object.
    
    Raises:
        ValidationError: Body missing, not JSON, or not an object
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def run_operation(operation: Callable[[ProvisioningService, dict], Any], *, needs_body: bool = True):
    """Execute a provisioning operation and map its outcome to a JSON response.
    
    Known failures keep their status and message; anything else is logged
    and reported as a generic 500 so no exception leaves the handler.
    """
    try:
        payload = get_json_payload() if needs_body else {}
        body = operation(get_provisioning_service(), payload)
    except ProvisioningBaseError as exc:
        logger.warning("%s %s failed (%s): %s", request.method, request.path, exc.status, exc.message)
        return jsonify(exc.to_dict()), exc.status
    except Exception:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500
    
    if hasattr(body, "to_dict"):
        body = body.to_dict()
    return jsonify(body), 200
