"""Relational table operations through PostgREST."""
from __future__ import annotations
from typing import Any, Iterable, Mapping, Optional

from .client import SupabaseClient

REST_PATH = "/rest/v1"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filters(eq: Optional[Mapping[str, Any]] = None, in_: Optional[Mapping[str, Iterable[Any]]] = None) -> dict:
    """Render equality and in-set filters as PostgREST query parameters.
    
    >>> build_filters(eq={"id": "u1"}, in_={"role_id": [1, 2]})
    {'id': 'eq.u1', 'role_id': 'in.(1,2)'}
    """
    params: dict[str, str] = {}
    for column, value in (eq or {}).items():
        params[column] = f"eq.{_format_value(value)}"
    for column, values in (in_ or {}).items():
        joined = ",".join(_format_value(v) for v in values)
        params[column] = f"in.({joined})"
    return params


class TableService:
    """Service for select/insert/upsert/update/delete on PostgREST tables."""
    
    def __init__(self, client: SupabaseClient):
        self.client = client
    
    def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
        order: Optional[str] = None,
    ) -> list[dict]:
        """Return rows matching the filters.
        
        Args:
            table: Table name
            columns: PostgREST select expression (embedded resources allowed)
            eq: Equality filters
            in_: In-set filters
            order: Order expression, e.g. ``full_name.asc``
        """
        params = {"select": columns, **build_filters(eq, in_)}
        if order:
            params["order"] = order
        resp = self.client.get(f"{REST_PATH}/{table}", params=params)
        return resp.json()
    
    def insert(self, table: str, row: Mapping[str, Any] | list) -> list[dict]:
        """Insert one row (or a list of rows) and return the stored rows."""
        resp = self.client.post(
            f"{REST_PATH}/{table}",
            json=row if isinstance(row, list) else dict(row),
            headers={"Prefer": "return=representation"},
        )
        return resp.json() if resp.content else []
    
    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: Optional[str] = None) -> list[dict]:
        """Insert or merge a row on its primary key (or ``on_conflict`` columns)."""
        params = {"on_conflict": on_conflict} if on_conflict else None
        resp = self.client.post(
            f"{REST_PATH}/{table}",
            json=dict(row),
            params=params,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return resp.json() if resp.content else []
    
    def update(self, table: str, values: Mapping[str, Any], eq: Mapping[str, Any]) -> list[dict]:
        """Patch rows matching ``eq`` with ``values``."""
        if not eq:
            raise ValueError("Refusing to update without a filter")
        resp = self.client.patch(
            f"{REST_PATH}/{table}",
            json=dict(values),
            params=build_filters(eq),
            headers={"Prefer": "return=representation"},
        )
        return resp.json() if resp.content else []
    
    def delete(
        self,
        table: str,
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> None:
        """Delete rows matching the filters. An unfiltered delete is refused."""
        params = build_filters(eq, in_)
        if not params:
            raise ValueError("Refusing to delete without a filter")
        self.client.delete(f"{REST_PATH}/{table}", params=params)
