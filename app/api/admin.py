"""Admin provisioning routes."""
from __future__ import annotations

from flask import Blueprint

from app.api.decorators import require_admin
from app.api.helpers.provisioning import current_operator, run_operation

bp = Blueprint("admin", __name__)


@bp.route("/create-user", methods=["POST"])
@require_admin
def create_user():
    """Create identity, profile and role assignment for a new user."""
    return run_operation(lambda service, payload: service.create_user(payload, operator=current_operator()))


@bp.route("/update-user", methods=["PUT"])
@require_admin
def update_user():
    """Replace a user's display name and role."""
    return run_operation(lambda service, payload: service.update_user(payload, operator=current_operator()))


@bp.route("/delete-user", methods=["DELETE"])
@require_admin
def delete_user():
    """Delete one user (role assignments, profile, identity)."""
    return run_operation(lambda service, payload: service.delete_user(payload, operator=current_operator()))


@bp.route("/delete-users-by-roles", methods=["POST"])
@require_admin
def delete_users_by_roles():
    """Delete every user holding one of the given roles."""
    return run_operation(
        lambda service, payload: service.bulk_delete_by_roles(payload, operator=current_operator())
    )


@bp.route("/users", methods=["GET"])
@require_admin
def list_users():
    return run_operation(lambda service, _: {"users": service.list_users()}, needs_body=False)


@bp.route("/roles", methods=["GET"])
@require_admin
def list_roles():
    return run_operation(lambda service, _: {"roles": service.list_roles()}, needs_body=False)
