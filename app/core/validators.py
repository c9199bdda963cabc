"""Input validation helpers for provisioning payloads."""
from __future__ import annotations
from typing import Any, Iterable

EMAIL_MAX_LENGTH = 254
NAME_MAX_LENGTH = 128


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    """Ensure every field is present and non-empty.
    
    Raises:
        ValueError: Listing the missing fields
    """
    missing = []
    for name in fields:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")


def validate_email(email: str) -> str:
    """Validate email address.
    
    Args:
        email: Email address to validate
        
    Returns:
        Normalized email address
        
    Raises:
        ValueError: If email is invalid
    """
    if not isinstance(email, str):
        raise ValueError("Invalid email format")
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")
    
    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValueError("Email exceeds maximum length")
    
    return email


def validate_name(name: str, field: str = "Full name") -> str:
    """Validate a display name.
    
    Returns:
        Trimmed name
        
    Raises:
        ValueError: If name is invalid
    """
    if not isinstance(name, str):
        raise ValueError(f"{field} must be a string")
    name = name.strip()
    if not name:
        raise ValueError(f"{field} is required")
    if len(name) > NAME_MAX_LENGTH:
        raise ValueError(f"{field} exceeds maximum length")
    
    return name


def validate_role_id(value: Any) -> int:
    """Coerce a role identifier to a positive integer.
    
    Accepts ints and digit strings (form posts send strings).
    """
    if isinstance(value, bool):
        raise ValueError("role_id must be a positive integer")
    try:
        role_id = int(value)
    except (TypeError, ValueError):
        raise ValueError("role_id must be a positive integer")
    if role_id <= 0 or (isinstance(value, float) and value != role_id):
        raise ValueError("role_id must be a positive integer")
    return role_id


def validate_role_ids(values: Any) -> list[int]:
    """Validate a non-empty list of role identifiers, dropping duplicates."""
    if not isinstance(values, list) or not values:
        raise ValueError("role_ids must be a non-empty list")
    seen: list[int] = []
    for value in values:
        role_id = validate_role_id(value)
        if role_id not in seen:
            seen.append(role_id)
    return seen


def validate_password(password: Any, min_length: int = 6) -> str:
    """Check the minimum-length password policy.
    
    Raises:
        ValueError: If the password is too short
    """
    if not isinstance(password, str):
        raise ValueError("Password must be a string")
    if len(password) < min_length:
        raise ValueError(f"Password must be at least {min_length} characters")
    return password
