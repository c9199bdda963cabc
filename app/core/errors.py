"""Provisioning error taxonomy.

Every workflow failure surfaces as one of these kinds; the HTTP layer only
needs ``status`` and ``to_dict()`` to build the response.
"""
from __future__ import annotations
from typing import Optional


class ProvisioningBaseError(Exception):
    """Base class carrying an HTTP-style status and a user-facing message."""
    
    status = 500
    
    def __init__(self, message: str, status: Optional[int] = None, extra: Optional[dict] = None):
        self.message = message
        if status is not None:
            self.status = status
        self.extra = dict(extra or {})
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, **self.extra}


class ValidationError(ProvisioningBaseError):
    """Missing or malformed input. Raised before any remote call."""
    
    status = 400


class WeakCredentialError(ProvisioningBaseError):
    """Password does not satisfy the registration policy."""
    
    status = 400


class DuplicateEmailError(ProvisioningBaseError):
    """Identity already exists (self-service registration only)."""
    
    status = 400


class ProvisioningError(ProvisioningBaseError):
    """A remote step failed and was not otherwise classified."""
    
    status = 500


class PartialFailure(ProvisioningBaseError):
    """Bulk operation finished with per-item errors.
    
    Not raised: carried on the bulk result so the overall call still
    reports success.
    """
    
    status = 200
    
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} item(s) failed")
    
    def to_dict(self) -> dict:
        return {"errors": self.errors}
