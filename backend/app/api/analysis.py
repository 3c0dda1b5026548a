"""Project analysis API endpoints."""

from flask import Blueprint, current_app, jsonify, request

from app.api.credentials import error_response, get_jira_credentials, service_settings
from services.errors import AnalyzerError
from services.flow_metrics import FlowMetricsService
from services.pagination import TOKEN_MODE

bp = Blueprint("analysis", __name__, url_prefix="/api")


def get_project_key():
    """Get the required projectKey query param."""
    return request.args.get("projectKey", "").strip() or None


def get_page_token():
    """Continuation token from the caller, only meaningful in token mode."""
    if current_app.config["PAGINATION_MODE"] != TOKEN_MODE:
        return None
    return request.args.get("nextPageToken") or None


def get_stalled_days():
    """Stalled threshold from the X-Stalled-Days header or stalledDays query param.

    Missing, non-numeric or non-positive values fall back to the configured
    default.
    """
    raw = request.headers.get("X-Stalled-Days") or request.args.get("stalledDays")
    try:
        days = int(raw)
    except (TypeError, ValueError):
        return current_app.config["STALLED_DAYS"]
    return days if days > 0 else current_app.config["STALLED_DAYS"]


def build_service():
    server, email, token = get_jira_credentials()
    config = current_app.config
    return FlowMetricsService(
        server, email, token,
        pagination_mode=config["PAGINATION_MODE"],
        changelog_workers=config["CHANGELOG_WORKERS"],
        batch_timeout=config["BATCH_TIMEOUT"],
        **service_settings()
    )


def run_report(report):
    """Validate the request, run ``report(service, project_key)`` and render it."""
    try:
        service = build_service()
        project_key = get_project_key()
        if not project_key:
            return jsonify({"error": "projectKey query parameter is required"}), 400
        return jsonify({"data": report(service, project_key)})
    except AnalyzerError as e:
        current_app.logger.warning(f"{request.path} failed: {e}")
        return error_response(e)
    except Exception as e:
        current_app.logger.exception(f"{request.path} failed")
        return jsonify({"error": str(e)}), 500


@bp.route("/data-understanding", methods=["GET"])
def data_understanding():
    """Group counts and missing-field tallies for a project's issues.

    Query params:
        - projectKey: Jira project key (required)
        - nextPageToken: continuation token (token pagination only)
    """
    cursor = get_page_token()
    return run_report(
        lambda service, project_key: service.get_data_understanding(project_key, cursor=cursor)
    )


@bp.route("/time-analysis", methods=["GET"])
def time_analysis():
    """Average ages, resolution times, weekly spikes and stalled issues.

    Query params:
        - projectKey: Jira project key (required)
        - stalledDays: stalled threshold in days (X-Stalled-Days header wins)
        - nextPageToken: continuation token (token pagination only)
    """
    cursor = get_page_token()
    stalled_days = get_stalled_days()
    return run_report(
        lambda service, project_key: service.get_time_analysis(
            project_key, stalled_days=stalled_days, cursor=cursor
        )
    )


@bp.route("/workflow-analysis", methods=["GET"])
def workflow_analysis():
    """Status transitions, time in status, bottlenecks and reopen patterns.

    Query params:
        - projectKey: Jira project key (required)
        - nextPageToken: continuation token (token pagination only)
    """
    cursor = get_page_token()
    return run_report(
        lambda service, project_key: service.get_workflow_analysis(project_key, cursor=cursor)
    )
