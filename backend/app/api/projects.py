"""Project listing API endpoint."""

from flask import Blueprint, current_app, jsonify

from app.api.credentials import error_response, get_jira_credentials, service_settings
from services.errors import AnalyzerError
from services.flow_metrics import FlowMetricsService

bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@bp.route("", methods=["GET"])
def list_projects():
    """List all projects accessible to the user.

    Requires headers:
        - X-Jira-Server: Jira server URL
        - X-Jira-Email: User's Jira email
        - X-Jira-Token: Jira API token
    """
    try:
        server, email, token = get_jira_credentials()
        service = FlowMetricsService(server, email, token, **service_settings())
        return jsonify({"data": service.list_projects()})
    except AnalyzerError as e:
        current_app.logger.warning(f"Listing projects failed: {e}")
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Listing projects failed")
        return jsonify({"error": str(e)}), 500
