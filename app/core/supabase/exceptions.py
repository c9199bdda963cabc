"""Supabase-specific exceptions for error handling."""


class SupabaseError(Exception):
    """Base exception for all Supabase operations."""
    pass


class SupabaseAPIError(SupabaseError):
    """HTTP error from the GoTrue admin API or PostgREST.
    
    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
        error_code: Machine-readable code when the service returns one
    """
    
    def __init__(self, status_code: int, message: str, endpoint: str, error_code: str | None = None):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        self.error_code = error_code
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class UserAlreadyExistsError(SupabaseError):
    """Identity creation failed - email already registered."""
    pass
