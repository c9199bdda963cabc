"""Identity operations against the GoTrue admin API."""
from __future__ import annotations
import logging
from typing import Optional

from .client import SupabaseClient
from .exceptions import SupabaseAPIError, UserAlreadyExistsError

logger = logging.getLogger(__name__)

ADMIN_USERS_PATH = "/auth/v1/admin/users"
LOOKUP_PAGE_SIZE = 200

# GoTrue has reported duplicates with several messages across releases
_DUPLICATE_MARKERS = ("already registered", "already exists", "already been registered")
_DUPLICATE_CODES = {"email_exists", "user_already_exists"}


def is_duplicate_error(exc: Exception) -> bool:
    """Return True when a provider error means the email is already taken."""
    if isinstance(exc, UserAlreadyExistsError):
        return True
    if isinstance(exc, SupabaseAPIError) and exc.error_code in _DUPLICATE_CODES:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _DUPLICATE_MARKERS)


class AuthAdminService:
    """Service for managing identity records (GoTrue users)."""
    
    def __init__(self, client: SupabaseClient):
        """Initialize auth admin service.
        
        Args:
            client: Supabase client holding the service-role key
        """
        self.client = client
    
    def create_user(self, email: str, password: str) -> dict:
        """Create a confirmed identity with email and password.
        
        Returns:
            User representation (contains ``id``)
            
        Raises:
            UserAlreadyExistsError: If the email is already registered
            SupabaseAPIError: On any other HTTP error
        """
        payload = {"email": email, "password": password, "email_confirm": True}
        try:
            resp = self.client.post(ADMIN_USERS_PATH, json=payload)
        except SupabaseAPIError as exc:
            if is_duplicate_error(exc):
                raise UserAlreadyExistsError(exc.message) from exc
            raise
        
        body = resp.json()
        # Older GoTrue releases wrap the user, newer ones return it bare
        user = body.get("user", body) if isinstance(body, dict) else None
        if not user or not user.get("id"):
            raise SupabaseAPIError(resp.status_code, "Identity created without an id", resp.url)
        logger.info("Identity created for %s (id=%s)", email, user["id"])
        return user
    
    def get_user_by_email(self, email: str) -> Optional[dict]:
        """Return the identity whose email matches exactly (case-insensitive).
        
        The admin API has no lookup-by-email endpoint, so pages are scanned
        until a match or a short page.
        """
        target = email.strip().lower()
        page = 1
        while True:
            resp = self.client.get(ADMIN_USERS_PATH, params={"page": page, "per_page": LOOKUP_PAGE_SIZE})
            body = resp.json()
            users = body.get("users", []) if isinstance(body, dict) else body
            for user in users or []:
                if (user.get("email") or "").lower() == target:
                    return user
            if not users or len(users) < LOOKUP_PAGE_SIZE:
                return None
            page += 1
    
    def delete_user(self, user_id: str) -> bool:
        """Delete an identity record by id.

        An unknown id (GoTrue answers 404) deletes nothing and is not an error,
        so deletes can be retried after a partial failure.

        Returns:
            True if an identity was deleted, False if none existed

        Raises:
            SupabaseAPIError: On any other HTTP error
        """
        try:
            self.client.delete(f"{ADMIN_USERS_PATH}/{user_id}")
        except SupabaseAPIError as exc:
            if exc.status_code != 404:
                raise
            logger.info("No identity to delete (id=%s)", user_id)
            return False
        logger.info("Identity deleted (id=%s)", user_id)
        return True
