"""Pytest shared fixtures: in-memory Supabase fakes and a wired Flask app."""
import os
import pathlib
import sys
import threading
from typing import Any, Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DEMO_MODE", "true")

import pytest
import requests

from app.config.settings import AppConfig
from app.core.provisioning_service import ProvisioningService
from app.core.supabase import SupabaseAPIError, UserAlreadyExistsError
from app.flask_app import create_app
from scripts import audit

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256!"


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch):
    """Fail loudly if a unit test reaches for a real Supabase project."""
    def _blocked(method):
        def _call(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _call

    for method in ("get", "post", "patch", "delete"):
        monkeypatch.setattr(requests, method, _blocked(method.upper()))


@pytest.fixture(autouse=True)
def temp_audit_dir(monkeypatch, tmp_path):
    """Keep audit events of every test in its own directory."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "provisioning-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")
    return audit_dir, audit_file


# ─────────────────────────────────────────────────────────────────────────────
# In-memory Supabase
# ─────────────────────────────────────────────────────────────────────────────
class FakeAuthAdmin:
    """Identity provider double with the AuthAdminService interface."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.create_error: Optional[Exception] = None
        self.delete_errors: dict[str, Exception] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create_user(self, email: str, password: str) -> dict:
        with self._lock:
            self.calls.append(("create_user", email))
            if self.create_error is not None:
                raise self.create_error
            if any(u["email"] == email for u in self.users.values()):
                raise UserAlreadyExistsError("User already registered")
            user_id = f"user-{self._next_id}"
            self._next_id += 1
            user = {"id": user_id, "email": email, "password": password}
            self.users[user_id] = user
            return dict(user)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        with self._lock:
            self.calls.append(("get_user_by_email", email))
            for user in self.users.values():
                if user["email"] == email.lower():
                    return dict(user)
            return None

    def delete_user(self, user_id: str) -> bool:
        # Same contract as AuthAdminService: an unknown id deletes nothing
        with self._lock:
            self.calls.append(("delete_user", user_id))
            if user_id in self.delete_errors:
                raise self.delete_errors[user_id]
            return self.users.pop(user_id, None) is not None


class FakeTables:
    """PostgREST double with the TableService interface."""

    # user_roles has a surrogate key; (user_id, role_id) is only a unique constraint
    PRIMARY_KEYS = {
        "profiles": ("id",),
        "user_roles": ("id",),
        "roles": ("id",),
    }

    def __init__(self):
        self.rows: dict[str, list[dict]] = {"profiles": [], "user_roles": [], "roles": []}
        self.calls: list[tuple] = []
        self.errors: dict[tuple[str, str], Exception] = {}

    def fail(self, op: str, table: str, message: str = "db down", status: int = 500):
        self.errors[(op, table)] = SupabaseAPIError(status, message, f"/rest/v1/{table}")

    def _check(self, op: str, table: str, **kwargs):
        self.calls.append((op, table, kwargs))
        if (op, table) in self.errors:
            raise self.errors[(op, table)]

    @staticmethod
    def _matches(row: dict, eq=None, in_=None) -> bool:
        for column, value in (eq or {}).items():
            if row.get(column) != value:
                return False
        for column, values in (in_ or {}).items():
            if row.get(column) not in list(values):
                return False
        return True

    def select(self, table, columns="*", eq=None, in_=None, order=None):
        self._check("select", table, eq=eq, in_=in_)
        return [dict(r) for r in self.rows[table] if self._matches(r, eq, in_)]

    def insert(self, table, row):
        self._check("insert", table, row=row)
        rows = row if isinstance(row, list) else [row]
        self.rows[table].extend(dict(r) for r in rows)
        return [dict(r) for r in rows]

    def upsert(self, table, row, on_conflict=None):
        self._check("upsert", table, row=row, on_conflict=on_conflict)
        keys = tuple(on_conflict.split(",")) if on_conflict else self.PRIMARY_KEYS[table]
        if any(row.get(k) is None for k in keys):
            # No conflict target in the row: PostgREST inserts a new one
            self.rows[table].append(dict(row))
            return [dict(row)]
        for existing in self.rows[table]:
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(row)
                return [dict(existing)]
        self.rows[table].append(dict(row))
        return [dict(row)]

    def update(self, table, values, eq):
        self._check("update", table, values=values, eq=eq)
        updated = []
        for existing in self.rows[table]:
            if self._matches(existing, eq):
                existing.update(values)
                updated.append(dict(existing))
        return updated

    def delete(self, table, eq=None, in_=None):
        self._check("delete", table, eq=eq, in_=in_)
        self.rows[table] = [r for r in self.rows[table] if not self._matches(r, eq, in_)]

    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "select"]


@pytest.fixture()
def fake_auth():
    return FakeAuthAdmin()


@pytest.fixture()
def fake_tables():
    tables = FakeTables()
    tables.rows["roles"] = [
        {"id": 1, "name": "administrator"},
        {"id": 2, "name": "team-leader"},
        {"id": 3, "name": "referee"},
        {"id": 4, "name": "viewer"},
        {"id": 5, "name": "assistant"},
    ]
    return tables


@pytest.fixture()
def service(fake_auth, fake_tables):
    return ProvisioningService(fake_auth, fake_tables, public_role_id=4, min_password_length=6, bulk_delete_workers=4)


def make_config(**overrides: Any) -> AppConfig:
    base = dict(
        demo_mode=True,
        secret_key="test-secret-key",
        supabase_url="http://supabase.test",
        supabase_service_role_key="service-role-key",
        supabase_jwt_secret=TEST_JWT_SECRET,
        jwt_audience="authenticated",
        admin_role_id=1,
        public_role_id=4,
        admin_auth_required=False,
        min_password_length=6,
        bulk_delete_workers=4,
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def app_config():
    return make_config()


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def flask_app(app_config, service):
    app = create_app(app_config, service=service)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(flask_app):
    with flask_app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires a Supabase project)"
    )


@pytest.fixture()
def config_factory():
    """Build an AppConfig with test defaults and selected overrides."""
    return make_config
