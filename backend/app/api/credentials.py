"""Request helpers shared by the API blueprints."""

from flask import current_app, jsonify, request

from services.errors import AuthenticationMissingError


def get_jira_credentials(allow_body=False):
    """Extract Jira credentials from request headers.

    With ``allow_body`` the JSON body fields ``server``, ``email`` and
    ``token`` are used for any header that is missing.

    Raises:
        AuthenticationMissingError: if any of the three values is absent.
    """
    body = (request.get_json(silent=True) or {}) if allow_body else {}

    server = request.headers.get("X-Jira-Server") or body.get("server") or ""
    email = request.headers.get("X-Jira-Email") or body.get("email")
    token = request.headers.get("X-Jira-Token") or body.get("token")
    server = server.rstrip("/")

    if not all([server, email, token]):
        raise AuthenticationMissingError()

    return server, email, token


def service_settings():
    """Paging and timeout settings from the app config, as service kwargs."""
    config = current_app.config
    return {
        "page_size": config["PAGE_SIZE"],
        "max_items": config["MAX_ITEMS"],
        "request_timeout": config["REQUEST_TIMEOUT"],
    }


def error_response(error):
    """Render an AnalyzerError as ``{"error", "details"?}`` with its status."""
    return jsonify(error.to_dict()), error.status_code
