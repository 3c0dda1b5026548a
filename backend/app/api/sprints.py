"""Sprint statistics API endpoint."""

from flask import Blueprint, current_app, jsonify, request

from app.api.credentials import error_response, get_jira_credentials, service_settings
from services.errors import AnalyzerError
from services.sprint_metrics import DEFAULT_SPRINT_COUNT, SprintStatsService

bp = Blueprint("sprints", __name__, url_prefix="/api")


def get_sprint_count(data):
    """Number of closed sprints to scan, defaulting to 3."""
    try:
        count = int(data.get("sprintCount") or DEFAULT_SPRINT_COUNT)
    except (TypeError, ValueError):
        return None
    return count if count > 0 else None


@bp.route("/sprint-stats", methods=["POST"])
def sprint_stats():
    """Committed vs completed points for a board's most recent closed sprints.

    Credentials come from the X-Jira-* headers, or from the body fields
    server, email and token.

    Expects JSON body with:
        - boardId: Jira board ID (required)
        - sprintCount: number of closed sprints to scan (default 3)
        - storyPointField: story points custom field (default from config)
    """
    data = request.get_json(silent=True) or {}

    try:
        server, email, token = get_jira_credentials(allow_body=True)

        board_id = data.get("boardId")
        if not board_id:
            return jsonify({"error": "Missing required field: boardId"}), 400

        sprint_count = get_sprint_count(data)
        if sprint_count is None:
            return jsonify({"error": "sprintCount must be a positive integer"}), 400

        story_point_field = data.get("storyPointField") or current_app.config["STORY_POINT_FIELD"]

        service = SprintStatsService(server, email, token, **service_settings())
        return jsonify(service.get_sprint_stats(board_id, sprint_count, story_point_field))
    except AnalyzerError as e:
        current_app.logger.warning(f"Sprint stats failed: {e}")
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Sprint stats failed")
        return jsonify({"error": str(e)}), 500
