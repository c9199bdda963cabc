"""Supabase admin client library.

This package provides a small, testable interface to the two Supabase
surfaces used by the provisioning workflows.

Architecture:
- client.py: HTTP client with service-role headers and error mapping
- auth.py: Identity records (GoTrue admin API)
- tables.py: Relational rows (PostgREST)
- exceptions.py: Typed exceptions for error handling

Usage:
    from app.core.supabase import SupabaseClient, AuthAdminService, TableService
    
    client = SupabaseClient("http://localhost:54321", service_role_key)
    auth = AuthAdminService(client)
    user = auth.create_user("ana@example.com", "secret1")
    
    tables = TableService(client)
    tables.upsert("profiles", {"id": user["id"], "full_name": "Ana"})
"""
from .client import SupabaseClient, REQUEST_TIMEOUT
from .exceptions import (
    SupabaseError,
    SupabaseAPIError,
    UserAlreadyExistsError,
)
from .auth import AuthAdminService, is_duplicate_error
from .tables import TableService, build_filters

__all__ = [
    # Client
    "SupabaseClient",
    "REQUEST_TIMEOUT",
    
    # Exceptions
    "SupabaseError",
    "SupabaseAPIError",
    "UserAlreadyExistsError",
    
    # Services
    "AuthAdminService",
    "TableService",
    
    # Helpers
    "is_duplicate_error",
    "build_filters",
]
