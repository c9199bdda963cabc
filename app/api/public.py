"""Public (unauthenticated) routes."""
from __future__ import annotations

from flask import Blueprint

from app.api.helpers.provisioning import run_operation

bp = Blueprint("public", __name__)


@bp.route("/register", methods=["POST"])
def register():
    """Self-service sign-up; the role is fixed by configuration."""
    return run_operation(lambda service, payload: service.register(payload))
