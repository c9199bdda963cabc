"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEMO_SUPABASE_URL = "http://localhost:54321"
DEMO_SERVICE_ROLE_KEY = "demo-service-role-key"
DEMO_JWT_SECRET = "demo-jwt-secret-change-in-production"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).
    
    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)
    
    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback
    
    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name
    
    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")
    
    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value
    
    return None


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value
    
    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        return demo_default
    
    if not required:
        return ""
    
    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _env_bool(var_name: str, default: bool) -> bool:
    value = os.environ.get(var_name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(var_name: str, default: int, minimum: int = 1) -> int:
    value = os.environ.get(var_name, "").strip()
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be an integer, got {value!r}")
    if parsed < minimum:
        raise RuntimeError(f"Environment variable {var_name} must be >= {minimum}")
    return parsed


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool
    
    # Flask
    secret_key: str
    
    # Supabase
    supabase_url: str = DEMO_SUPABASE_URL
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    
    # Roles
    admin_role_id: int = 1
    public_role_id: int = 4
    admin_auth_required: bool = True
    
    # Workflow policy
    min_password_length: int = 6
    bulk_delete_workers: int = 4


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_bool("DEMO_MODE", False)
    
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if not demo_mode:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")
        secret_key = secrets.token_urlsafe(48)
        print("[demo-mode] Generated temporary FLASK_SECRET_KEY")
    
    supabase_url = _get_or_generate("SUPABASE_URL", demo_default=DEMO_SUPABASE_URL, demo_mode=demo_mode)
    
    service_role_key = _load_secret_from_file("supabase_service_role_key", "SUPABASE_SERVICE_ROLE_KEY")
    if not service_role_key:
        if not demo_mode:
            raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY not found in /run/secrets or environment")
        service_role_key = DEMO_SERVICE_ROLE_KEY
    
    admin_auth_required = _env_bool("ADMIN_AUTH_REQUIRED", not demo_mode)
    
    jwt_secret = _load_secret_from_file("supabase_jwt_secret", "SUPABASE_JWT_SECRET") or ""
    if not jwt_secret:
        if admin_auth_required and not demo_mode:
            raise RuntimeError("SUPABASE_JWT_SECRET is required when ADMIN_AUTH_REQUIRED is true.")
        jwt_secret = DEMO_JWT_SECRET if demo_mode else ""
    
    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY") or ""
    if audit_log_signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    
    cfg = AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        supabase_url=supabase_url.rstrip("/"),
        supabase_service_role_key=service_role_key,
        supabase_jwt_secret=jwt_secret,
        jwt_audience=os.environ.get("SUPABASE_JWT_AUDIENCE", "authenticated"),
        admin_role_id=_env_int("ADMIN_ROLE_ID", 1),
        public_role_id=_env_int("PUBLIC_ROLE_ID", 4),
        admin_auth_required=admin_auth_required,
        min_password_length=_env_int("MIN_PASSWORD_LENGTH", 6),
        bulk_delete_workers=_env_int("BULK_DELETE_WORKERS", 4),
    )
    
    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; supabase={cfg.supabase_url}; admin_auth={cfg.admin_auth_required}")
    
    if demo_mode:
        print("[settings] WARNING: Demo credentials in use. Do not deploy with these defaults.")
    
    return cfg
