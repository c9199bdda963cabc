"""Low-level HTTP client for the Supabase REST surface.

Handles service-role authentication headers and HTTP error mapping for both
the GoTrue admin API (/auth/v1) and PostgREST (/rest/v1).
"""
from __future__ import annotations
import os
from typing import Optional, Dict, Any

import requests

from .exceptions import SupabaseAPIError

REQUEST_TIMEOUT = 10


class SupabaseClient:
    """HTTP client for Supabase with service-role credentials.
    
    Every request carries both the ``apikey`` header (used by the API gateway)
    and a Bearer token (used by GoTrue and PostgREST row-level security).
    The service-role key bypasses RLS, so this client must only ever run
    server-side.
    
    Usage:
        client = SupabaseClient("http://localhost:54321", service_role_key)
        response = client.get("/rest/v1/roles", params={"select": "*"})
    """
    
    def __init__(self, base_url: Optional[str] = None, service_role_key: Optional[str] = None):
        """Initialize Supabase client.
        
        Args:
            base_url: Project URL (defaults to SUPABASE_URL env var)
            service_role_key: Service role key (defaults to SUPABASE_SERVICE_ROLE_KEY env var)
        """
        self.base_url = (base_url or os.environ.get("SUPABASE_URL", "http://localhost:54321")).rstrip("/")
        self.service_role_key = service_role_key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    
    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        if not self.service_role_key:
            raise SupabaseAPIError(401, "Service role key not configured", self.base_url)
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers
    
    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute GET request.
        
        Raises:
            SupabaseAPIError: On HTTP error
        """
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.get(f"{self.base_url}{path}", params=params, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        self._handle_error(resp)
        return resp
    
    def post(self, path: str, json: Any = None, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute POST request.
        
        Raises:
            SupabaseAPIError: On HTTP error
        """
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.post(
            f"{self.base_url}{path}", json=json, params=params, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
        )
        self._handle_error(resp)
        return resp
    
    def patch(self, path: str, json: Any = None, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute PATCH request.
        
        Raises:
            SupabaseAPIError: On HTTP error
        """
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.patch(
            f"{self.base_url}{path}", json=json, params=params, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
        )
        self._handle_error(resp)
        return resp
    
    def delete(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute DELETE request.
        
        Raises:
            SupabaseAPIError: On HTTP error
        """
        headers = self._headers(kwargs.pop("headers", None))
        resp = requests.delete(f"{self.base_url}{path}", params=params, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        self._handle_error(resp)
        return resp
    
    def _handle_error(self, resp: requests.Response) -> None:
        """Centralized error handling for HTTP responses.
        
        GoTrue answers with ``msg``/``error_code`` (or ``error_description``
        on older releases), PostgREST with ``message``/``code``.
        
        Raises:
            SupabaseAPIError: If response status indicates error
        """
        if resp.status_code < 400:
            return
        
        message = resp.text
        error_code = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        
        if isinstance(body, dict):
            message = (
                body.get("msg")
                or body.get("message")
                or body.get("error_description")
                or body.get("error")
                or message
            )
            code = body.get("error_code") or body.get("code")
            error_code = str(code) if code is not None else None
        
        raise SupabaseAPIError(resp.status_code, message, resp.url, error_code)
