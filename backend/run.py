"""Development server entry point."""

import logging
import os

from app import create_app

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 3000))
    app.logger.info(f"Jira Flow Analyzer running on port {port}")
    app.run(host="0.0.0.0", port=port)
