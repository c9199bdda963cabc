"""
Provisioning Service Layer - user lifecycle workflows

This module holds the multi-step workflows that keep an identity record,
its profile row and its role assignment in step. It is used by the admin
API, the public registration endpoint and the provisioning CLI.

Architecture:
    Admin API (/api/admin/*) ────┐
    Public API (/api/public/*) ──┼──> provisioning_service.py ──> app.core.supabase ──> Supabase
    CLI (scripts/provision.py) ──┘

Features:
    - Input validation before any remote call
    - Compensating rollback through app.core.saga
    - Per-step failure policy (fail fast / log and continue)
    - Bounded concurrent identity deletion for bulk deletes
    - Signed audit trail for every operation
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.errors import (
    DuplicateEmailError,
    PartialFailure,
    ProvisioningError,
    ValidationError,
    WeakCredentialError,
)
from app.core.saga import Saga, Step, StepFailed, StepPolicy, fan_out
from app.core.supabase import (
    AuthAdminService,
    SupabaseAPIError,
    SupabaseClient,
    TableService,
    is_duplicate_error,
)
from app.core.validators import (
    require_fields,
    validate_email,
    validate_name,
    validate_password,
    validate_role_id,
    validate_role_ids,
)
from scripts import audit

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
USER_ROLES_TABLE = "user_roles"
ROLES_TABLE = "roles"
ROLE_ASSIGNMENT_KEY = "user_id,role_id"

DEFAULT_PUBLIC_ROLE_ID = 4
DEFAULT_MIN_PASSWORD_LENGTH = 6
DEFAULT_BULK_DELETE_WORKERS = 4


def _describe(exc: BaseException) -> str:
    """Short provider message for logs and per-item bulk errors."""
    if isinstance(exc, StepFailed):
        exc = exc.cause
    if isinstance(exc, SupabaseAPIError):
        return exc.message
    return str(exc)


@dataclass
class BulkDeleteResult:
    """Outcome of a bulk delete; ``failure`` is set when some identities survived."""
    deleted: int
    total: int
    failure: Optional[PartialFailure] = None
    message: Optional[str] = None
    deleted_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": True, "deleted": self.deleted, "total": self.total}
        if self.message:
            body["message"] = self.message
        if self.failure is not None:
            body.update(self.failure.to_dict())
        return body


class ProvisioningService:
    """Create, update and delete users across the identity provider and the tables.

    Args:
        auth: Identity-provider service (create / lookup by email / delete)
        tables: Relational store service for ``profiles`` and ``user_roles``
        public_role_id: Role given to every self-registered user
        min_password_length: Registration password policy
        bulk_delete_workers: Pool size for identity deletion in bulk deletes
    """

    def __init__(
        self,
        auth: AuthAdminService,
        tables: TableService,
        public_role_id: int = DEFAULT_PUBLIC_ROLE_ID,
        min_password_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
        bulk_delete_workers: int = DEFAULT_BULK_DELETE_WORKERS,
    ):
        self.auth = auth
        self.tables = tables
        self.public_role_id = public_role_id
        self.min_password_length = min_password_length
        self.bulk_delete_workers = bulk_delete_workers

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _require(payload: Any, fields: tuple[str, ...]) -> dict:
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            require_fields(payload, fields)
        except ValueError as exc:
            raise ValidationError(str(exc))
        return payload

    @staticmethod
    def _fail(
        event_type: audit.EventType,
        subject: str,
        operator: str,
        message: str,
        step: str,
        cause: BaseException | None = None,
        status: int | None = None,
        outcome: dict | None = None,
    ) -> ProvisioningError:
        details = {"step": step}
        if cause is not None:
            details["error"] = _describe(cause)
        if outcome:
            details.update(outcome)
        audit.safe_log_event(event_type, subject, operator=operator, details=details, success=False)
        return ProvisioningError(message, status=status, extra=outcome)

    # ─────────────────────────────────────────────────────────────────────────
    # CreateUser
    # ─────────────────────────────────────────────────────────────────────────

    def create_user(self, payload: dict, operator: str = "system") -> dict:
        """Provision an identity, a profile and a role assignment.

        An "already registered" answer from the identity provider is not an
        error: the existing identity is looked up by email and its rows are
        upserted, so calling this twice with the same email is idempotent.
        Compensations are only registered for records this call created.

        Returns:
            ``{"success": True, "user_id": ...}``

        Raises:
            ValidationError: Missing or malformed field
            ProvisioningError: A remote step failed
        """
        payload = self._require(payload, ("full_name", "email", "password", "role_id"))
        try:
            full_name = validate_name(payload["full_name"])
            email = validate_email(payload["email"])
            role_id = validate_role_id(payload["role_id"])
            password = payload["password"]
            if not isinstance(password, str):
                raise ValueError("Password must be a string")
        except ValueError as exc:
            raise ValidationError(str(exc))

        saga = Saga("create_user", context={"email": email})
        created = True
        try:
            user = saga.run(Step(
                "create_identity",
                lambda: self.auth.create_user(email, password),
                compensate=lambda u: self.auth.delete_user(u["id"]),
            ))
        except StepFailed as exc:
            if not is_duplicate_error(exc.cause):
                raise self._fail("user_create", email, operator, "Error creating user in Auth", exc.step, exc)
            created = False
            logger.info("Identity for %s already registered, reusing it", email)
            try:
                user = self.auth.get_user_by_email(email)
            except Exception as lookup_exc:
                logger.error("[create_user] lookup of existing identity failed: %s", lookup_exc)
                raise self._fail(
                    "user_create", email, operator, "Could not retrieve the user", "lookup_identity", lookup_exc
                )

        if not user or not user.get("id"):
            raise self._fail("user_create", email, operator, "Could not retrieve the user", "lookup_identity")

        user_id = user["id"]
        saga.context["user_id"] = user_id
        profile = {"id": user_id, "full_name": full_name, "email": email, "id_rol": role_id}

        try:
            saga.run(Step(
                "upsert_profile",
                lambda: self.tables.upsert(PROFILES_TABLE, profile),
                compensate=(lambda _: self.tables.delete(PROFILES_TABLE, eq={"id": user_id})) if created else None,
            ))
            saga.run(Step(
                "upsert_role_assignment",
                lambda: self.tables.upsert(
                    USER_ROLES_TABLE, {"user_id": user_id, "role_id": role_id}, on_conflict=ROLE_ASSIGNMENT_KEY
                ),
            ))
        except StepFailed as exc:
            message = "Error saving profile" if exc.step == "upsert_profile" else "Error assigning role"
            raise self._fail("user_create", user_id, operator, message, exc.step, exc)

        audit.safe_log_event(
            "user_create",
            user_id,
            operator=operator,
            details={"email": email, "role_id": role_id, "reused_identity": not created},
        )
        return {"success": True, "user_id": user_id}

    # ─────────────────────────────────────────────────────────────────────────
    # UpdateUser
    # ─────────────────────────────────────────────────────────────────────────

    def update_user(self, payload: dict, operator: str = "system") -> dict:
        """Replace a user's display name and role.

        The previous profile values and role assignments are restored if a
        later step fails.
        """
        payload = self._require(payload, ("user_id", "full_name", "role_id"))
        try:
            user_id = str(payload["user_id"]).strip()
            full_name = validate_name(payload["full_name"])
            role_id = validate_role_id(payload["role_id"])
        except ValueError as exc:
            raise ValidationError(str(exc))

        try:
            current = self.tables.select(PROFILES_TABLE, "id,full_name,id_rol", eq={"id": user_id})
        except Exception as exc:
            logger.error("[update_user] reading profile %s failed: %s", user_id, exc)
            raise self._fail("user_update", user_id, operator, "Error reading profile", "read_profile", exc)
        if not current:
            raise self._fail("user_update", user_id, operator, "User not found", "read_profile", status=404)
        previous = current[0]

        saga = Saga("update_user", context={"user_id": user_id})

        def restore_profile(_):
            self.tables.update(
                PROFILES_TABLE,
                {"full_name": previous.get("full_name"), "id_rol": previous.get("id_rol")},
                eq={"id": user_id},
            )

        try:
            saga.run(Step(
                "update_profile",
                lambda: self.tables.update(
                    PROFILES_TABLE, {"full_name": full_name, "id_rol": role_id}, eq={"id": user_id}
                ),
                compensate=restore_profile,
            ))
            previous_roles = saga.run(Step(
                "read_role_assignments",
                lambda: self.tables.select(USER_ROLES_TABLE, "user_id,role_id", eq={"user_id": user_id}),
            )) or []

            def restore_roles(_):
                if previous_roles:
                    self.tables.insert(USER_ROLES_TABLE, [dict(row) for row in previous_roles])

            saga.run(Step(
                "delete_role_assignments",
                lambda: self.tables.delete(USER_ROLES_TABLE, eq={"user_id": user_id}),
                compensate=restore_roles,
            ))
            saga.run(Step(
                "insert_role_assignment",
                lambda: self.tables.insert(USER_ROLES_TABLE, {"user_id": user_id, "role_id": role_id}),
            ))
        except StepFailed as exc:
            message = "Error updating profile" if exc.step == "update_profile" else "Error updating role"
            raise self._fail("user_update", user_id, operator, message, exc.step, exc)

        audit.safe_log_event(
            "user_update",
            user_id,
            operator=operator,
            details={"role_id": role_id, "previous_role_id": previous.get("id_rol")},
        )
        return {"success": True}

    # ─────────────────────────────────────────────────────────────────────────
    # DeleteUser
    # ─────────────────────────────────────────────────────────────────────────

    def delete_user_steps(self, user_id: str) -> list[Step]:
        """Steps of a single-user delete, in execution order.

        The relational rows are disposable; only the identity deletion must
        be confirmed.
        """
        return [
            Step(
                "delete_role_assignments",
                lambda: self.tables.delete(USER_ROLES_TABLE, eq={"user_id": user_id}),
                policy=StepPolicy.LOG_AND_CONTINUE,
            ),
            Step(
                "delete_profile",
                lambda: self.tables.delete(PROFILES_TABLE, eq={"id": user_id}),
                policy=StepPolicy.LOG_AND_CONTINUE,
            ),
            Step(
                "delete_identity",
                lambda: self.auth.delete_user(user_id),
                policy=StepPolicy.FAIL_FAST,
            ),
        ]

    def delete_user(self, payload: dict, operator: str = "system") -> dict:
        """Remove one user's role assignments, profile and identity record.

        Returns:
            ``{"success": True}``

        Raises:
            ValidationError: ``user_id`` missing
            ProvisioningError: Identity deletion failed
        """
        payload = self._require(payload, ("user_id",))
        user_id = str(payload["user_id"]).strip()

        saga = Saga("delete_user", context={"user_id": user_id})
        try:
            for step in self.delete_user_steps(user_id):
                saga.run(step)
        except StepFailed as exc:
            raise self._fail("user_delete", user_id, operator, "Error deleting user from Auth", exc.step, exc)

        audit.safe_log_event(
            "user_delete",
            user_id,
            operator=operator,
            details={"tolerated_failures": [name for name, _ in saga.failures]},
        )
        return {"success": True}

    # ─────────────────────────────────────────────────────────────────────────
    # BulkDeleteUsersByRole
    # ─────────────────────────────────────────────────────────────────────────

    def bulk_delete_by_roles(self, payload: dict, operator: str = "system") -> BulkDeleteResult:
        """Delete every user holding any of ``role_ids``.

        Identity records are deleted first, concurrently and independently;
        each failure is kept as ``"User <id>: <message>"`` in input order.
        Profile and role rows are then batch-deleted for the users whose
        identity is gone, so a surviving identity keeps its rows. A failed
        batch aborts the call; the error body and the audit record still
        carry the counts and the ids whose identity was deleted.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            role_ids = validate_role_ids(payload.get("role_ids"))
        except ValueError as exc:
            raise ValidationError(str(exc))

        subject = ",".join(str(r) for r in role_ids)
        try:
            rows = self.tables.select(USER_ROLES_TABLE, "user_id", in_={"role_id": role_ids})
        except Exception as exc:
            logger.error("[bulk_delete] fetching users for roles %s failed: %s", role_ids, exc)
            raise self._fail("user_bulk_delete", subject, operator, "Error fetching users", "select_users", exc)

        user_ids = list(dict.fromkeys(row["user_id"] for row in rows or [] if row.get("user_id")))
        if not user_ids:
            return BulkDeleteResult(deleted=0, total=0, message="No users hold the given roles")

        logger.info("Deleting %d users holding roles %s", len(user_ids), role_ids)

        outcomes = fan_out(self.auth.delete_user, user_ids, max_workers=self.bulk_delete_workers)
        deleted_ids = [uid for uid, error in outcomes if error is None]
        errors = []
        for uid, error in outcomes:
            if error is not None:
                logger.error("[bulk_delete] identity deletion failed for %s: %s", uid, error)
                errors.append(f"User {uid}: {_describe(error)}")

        if deleted_ids:
            saga = Saga("bulk_delete", context={"role_ids": role_ids})
            try:
                saga.run(Step(
                    "delete_role_assignments",
                    lambda: self.tables.delete(USER_ROLES_TABLE, in_={"user_id": deleted_ids}),
                ))
                saga.run(Step(
                    "delete_profiles",
                    lambda: self.tables.delete(PROFILES_TABLE, in_={"id": deleted_ids}),
                ))
            except StepFailed as exc:
                message = (
                    "Error deleting users' role assignments"
                    if exc.step == "delete_role_assignments"
                    else "Error deleting profiles"
                )
                # Identities are already gone; report which ones so the rows can be reconciled
                logger.error(
                    "[bulk_delete] %s after deleting identities %s (identity errors: %s)",
                    message, deleted_ids, errors,
                )
                outcome = {
                    "deleted": len(deleted_ids),
                    "total": len(user_ids),
                    "deleted_ids": deleted_ids,
                }
                if errors:
                    outcome["errors"] = errors
                raise self._fail("user_bulk_delete", subject, operator, message, exc.step, exc, outcome=outcome)

        result = BulkDeleteResult(
            deleted=len(deleted_ids),
            total=len(user_ids),
            failure=PartialFailure(errors) if errors else None,
            deleted_ids=deleted_ids,
        )
        audit.safe_log_event(
            "user_bulk_delete",
            subject,
            operator=operator,
            details={"deleted": result.deleted, "total": result.total, "failed": len(errors)},
            success=not errors,
        )
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # PublicRegister
    # ─────────────────────────────────────────────────────────────────────────

    def register(self, payload: dict) -> dict:
        """Self-service registration with the fixed public role.

        Every created record is removed again if a later fail-fast step fails.

        Raises:
            ValidationError: Missing or malformed field
            WeakCredentialError: Password shorter than the policy minimum
            DuplicateEmailError: Email already registered
            ProvisioningError: A remote step failed
        """
        payload = self._require(payload, ("full_name", "email", "password"))
        if not isinstance(payload["password"], str):
            raise ValidationError("Password must be a string")
        try:
            validate_password(payload["password"], self.min_password_length)
        except ValueError as exc:
            raise WeakCredentialError(str(exc))
        try:
            full_name = validate_name(payload["full_name"])
            email = validate_email(payload["email"])
        except ValueError as exc:
            raise ValidationError(str(exc))
        password = payload["password"]
        role_id = self.public_role_id

        saga = Saga("register", context={"email": email})
        try:
            user = saga.run(Step(
                "create_identity",
                lambda: self.auth.create_user(email, password),
                compensate=lambda u: self.auth.delete_user(u["id"]),
            ))
        except StepFailed as exc:
            if is_duplicate_error(exc.cause):
                audit.safe_log_event(
                    "user_register", email, operator="public", details={"error": "duplicate"}, success=False
                )
                raise DuplicateEmailError("This email address is already registered")
            raise self._fail("user_register", email, "public", "Error creating user in Auth", exc.step, exc)

        user_id = user["id"]
        saga.context["user_id"] = user_id

        try:
            saga.run(Step(
                "upsert_profile",
                lambda: self.tables.upsert(
                    PROFILES_TABLE, {"id": user_id, "full_name": full_name, "email": email, "id_rol": role_id}
                ),
                compensate=lambda _: self.tables.delete(PROFILES_TABLE, eq={"id": user_id}),
            ))
            saga.run(Step(
                "delete_previous_role_assignments",
                lambda: self.tables.delete(USER_ROLES_TABLE, eq={"user_id": user_id}),
                policy=StepPolicy.LOG_AND_CONTINUE,
            ))
            saga.run(Step(
                "insert_role_assignment",
                lambda: self.tables.insert(USER_ROLES_TABLE, {"user_id": user_id, "role_id": role_id}),
            ))
        except StepFailed as exc:
            message = "Error saving profile" if exc.step == "upsert_profile" else "Error assigning role"
            raise self._fail("user_register", user_id, "public", message, exc.step, exc)

        audit.safe_log_event("user_register", user_id, operator="public", details={"email": email, "role_id": role_id})
        return {"success": True, "message": "User created successfully"}

    # ─────────────────────────────────────────────────────────────────────────
    # Read-only lookups
    # ─────────────────────────────────────────────────────────────────────────

    def list_users(self) -> list[dict]:
        """Profiles ordered by name, each with the names of its roles."""
        try:
            rows = self.tables.select(
                PROFILES_TABLE,
                "id,full_name,email,user_roles(roles(name))",
                order="full_name.asc",
            )
        except Exception as exc:
            logger.error("[list_users] failed: %s", exc)
            raise ProvisioningError("Error loading users")

        users = []
        for row in rows or []:
            roles = [
                assignment["roles"]["name"]
                for assignment in row.get("user_roles") or []
                if assignment.get("roles")
            ]
            users.append({
                "id": row.get("id"),
                "full_name": row.get("full_name"),
                "email": row.get("email"),
                "roles": roles,
            })
        return users

    def list_roles(self) -> list[dict]:
        """Roles lookup table ordered by id."""
        try:
            return self.tables.select(ROLES_TABLE, "id,name", order="id.asc")
        except Exception as exc:
            logger.error("[list_roles] failed: %s", exc)
            raise ProvisioningError("Error loading roles")

    def has_role(self, user_id: str, role_id: int) -> bool:
        """Return True if ``user_id`` holds ``role_id``."""
        rows = self.tables.select(USER_ROLES_TABLE, "role_id", eq={"user_id": user_id, "role_id": role_id})
        return bool(rows)


def build_provisioning_service(cfg) -> ProvisioningService:
    """Wire a service to the Supabase project described by ``cfg``."""
    client = SupabaseClient(cfg.supabase_url, cfg.supabase_service_role_key)
    return ProvisioningService(
        AuthAdminService(client),
        TableService(client),
        public_role_id=cfg.public_role_id,
        min_password_length=cfg.min_password_length,
        bulk_delete_workers=cfg.bulk_delete_workers,
    )
