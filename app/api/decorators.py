"""
Flask decorators for authentication and authorization.

Admin endpoints accept a Supabase access token (RFC 6750 Bearer token). The
token is verified locally with the project's JWT secret, then the caller's
role assignment is checked against the administrator role.
"""

import logging
from functools import wraps
from typing import Dict, Any

import jwt
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidSignatureError,
    DecodeError,
    MissingRequiredClaimError,
    InvalidTokenError,
)
from flask import request, jsonify, current_app, g

from app.api.helpers.provisioning import get_provisioning_service

logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Exception raised when JWT token validation fails."""
    pass


def validate_jwt_token(token: str) -> Dict[str, Any]:
    """
    Validate a Supabase access token.
    
    Validations performed:
    1. Signature (HS256 with the project JWT secret)
    2. Expiration (exp claim)
    3. Audience (aud claim, "authenticated" by default)
    4. Subject present (sub claim)
    
    Args:
        token: JWT token string (without "Bearer " prefix)
    
    Returns:
        dict: Validated token claims
    
    Raises:
        TokenValidationError: If any validation fails
    """
    cfg = current_app.config["APP_CONFIG"]
    if not cfg.supabase_jwt_secret:
        raise TokenValidationError("JWT secret not configured")
    
    try:
        claims = jwt.decode(
            token,
            cfg.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=cfg.jwt_audience,
            options={"require": ["exp", "sub"]},
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired (exp claim)")
    except InvalidAudienceError as e:
        raise TokenValidationError(f"Invalid audience (token not for this API): {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature (token tampered or wrong key)")
    except MissingRequiredClaimError as e:
        raise TokenValidationError(f"Token missing required claim: {e.claim}")
    except DecodeError as e:
        raise TokenValidationError(f"Token decode error (malformed JWT): {e}")
    except InvalidTokenError as e:
        raise TokenValidationError(f"Token validation failed: {e}")
    
    logger.debug("JWT validated for subject %s", claims.get("sub"))
    return claims


def require_admin(fn):
    """
    Decorator restricting an endpoint to callers holding the administrator role.
    
    Returns:
        401 Unauthorized: Missing, malformed, invalid or expired token
        403 Forbidden: Valid token, but no administrator role assignment
    
    When ``admin_auth_required`` is off (demo mode) the check is skipped and
    the operator is recorded as "admin".
    
    Example:
        @bp.route("/create-user", methods=["POST"])
        @require_admin
        def create_user():
            ...
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        cfg = current_app.config["APP_CONFIG"]
        if not cfg.admin_auth_required:
            g.operator = "admin"
            return fn(*args, **kwargs)
        
        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            logger.warning("Admin request missing Authorization header: %s", request.path)
            return jsonify({"error": "Authorization header required"}), 401
        
        if not auth_header.startswith("Bearer "):
            logger.warning("Admin request with invalid Authorization format: %s", auth_header[:20])
            return jsonify({"error": "Invalid Authorization header format. Expected 'Bearer <token>'"}), 401
        
        token = auth_header[7:].strip()
        if not token:
            return jsonify({"error": "Bearer token is empty"}), 401
        
        try:
            claims = validate_jwt_token(token)
        except TokenValidationError as e:
            logger.warning("Admin JWT validation failed: %s", e)
            return jsonify({"error": str(e)}), 401
        
        user_id = claims["sub"]
        try:
            is_admin = get_provisioning_service().has_role(user_id, cfg.admin_role_id)
        except Exception as e:
            logger.error("Role lookup for %s failed: %s", user_id, e)
            return jsonify({"error": "Could not verify permissions"}), 500
        
        if not is_admin:
            logger.warning("User %s lacks administrator role for %s", user_id, request.path)
            return jsonify({"error": "Insufficient permissions"}), 403
        
        g.operator = user_id
        return fn(*args, **kwargs)
    
    return wrapper
