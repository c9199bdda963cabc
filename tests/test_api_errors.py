import pytest
from flask import Flask, abort

from app.api.errors import register_error_handlers
from app.core.errors import DuplicateEmailError, PartialFailure, ProvisioningError, ValidationError


@pytest.fixture()
def flask_client():
    app = Flask(__name__)
    app.config["TESTING"] = True

    register_error_handlers(app)

    @app.route("/domain/validation")
    def domain_validation():
        raise ValidationError("Missing required fields: email")

    @app.route("/domain/not-found")
    def domain_not_found():
        raise ProvisioningError("User not found", status=404)

    @app.route("/crash")
    def crash():
        raise RuntimeError("boom")

    @app.route("/form/error")
    def form_error():
        abort(400, "invalid payload")

    @app.route("/api/unauth")
    def api_unauth():
        abort(401)

    @app.route("/api/forbidden")
    def api_forbidden():
        abort(403)

    @app.route("/api/too-large")
    def api_too_large():
        abort(413)

    @app.route("/page/error")
    def page_error():
        abort(500)

    with app.test_client() as client:
        yield client


def test_domain_error_keeps_status_and_message(flask_client):
    response = flask_client.get("/domain/validation")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields: email"}


def test_domain_error_status_override(flask_client):
    response = flask_client.get("/domain/not-found")
    assert response.status_code == 404
    assert response.get_json() == {"error": "User not found"}


def test_unhandled_exception_is_generic_json(flask_client):
    response = flask_client.get("/crash")
    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}


def test_bad_request_keeps_description(flask_client):
    response = flask_client.get("/form/error")
    assert response.status_code == 400
    assert response.get_json() == {"error": "invalid payload"}


@pytest.mark.parametrize(
    "path, status, message",
    [
        ("/api/unauth", 401, "Authentication required"),
        ("/api/forbidden", 403, "Insufficient permissions"),
        ("/api/too-large", 413, "Request payload too large"),
        ("/page/error", 500, "Internal server error"),
        ("/missing", 404, "Resource not found"),
    ],
)
def test_http_errors_are_json(flask_client, path, status, message):
    response = flask_client.get(path)
    assert response.status_code == status
    assert response.get_json() == {"error": message}


def test_error_statuses():
    assert ValidationError("x").status == 400
    assert DuplicateEmailError("x").status == 400
    assert ProvisioningError("x").status == 500
    assert PartialFailure(["User u1: nope"]).to_dict() == {"errors": ["User u1: nope"]}
