"""Flask application factory."""

import json
import os
from flask import Flask
from flask_cors import CORS

CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "analyzer-config.json"
)

# JSON config key -> Flask config key, with defaults
CONFIG_DEFAULTS = {
    "pageSize": ("PAGE_SIZE", 50),
    "maxItems": ("MAX_ITEMS", 2000),
    "stalledDays": ("STALLED_DAYS", 14),
    "storyPointField": ("STORY_POINT_FIELD", "customfield_10002"),
    "paginationMode": ("PAGINATION_MODE", "offset"),
    "requestTimeout": ("REQUEST_TIMEOUT", 30),
    "changelogWorkers": ("CHANGELOG_WORKERS", 8),
    "batchTimeout": ("BATCH_TIMEOUT", 120),
}


def load_analyzer_config(app, config_path=None):
    """Load analyzer settings from the config file, falling back to defaults."""
    for config_key, default in CONFIG_DEFAULTS.values():
        app.config[config_key] = default

    config_path = config_path or CONFIG_PATH
    if not os.path.exists(config_path):
        app.logger.info("No analyzer-config.json found, using default settings")
        return

    try:
        with open(config_path, "r") as f:
            config = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        app.logger.warning(f"Failed to load analyzer config: {e}")
        return

    for json_key, (config_key, _) in CONFIG_DEFAULTS.items():
        if json_key in config:
            app.config[config_key] = config[json_key]

    app.logger.info(
        f"Loaded analyzer config (pagination={app.config['PAGINATION_MODE']}, "
        f"pageSize={app.config['PAGE_SIZE']}, maxItems={app.config['MAX_ITEMS']})"
    )


def create_app(overrides=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Enable CORS for browser clients
    CORS(app, resources={
        r"/api/*": {
            "origins": "*",
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-Jira-Token", "X-Jira-Email", "X-Jira-Server",
                "X-Stalled-Days"
            ]
        }
    })

    load_analyzer_config(app)
    if overrides:
        app.config.update(overrides)

    # Register blueprints
    from app.api import analysis, projects, sprints
    app.register_blueprint(projects.bp)
    app.register_blueprint(analysis.bp)
    app.register_blueprint(sprints.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
