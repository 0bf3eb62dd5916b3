#!/usr/bin/env python3
"""
Simple runner script for the Roofing Estimation API
"""

import logging
import os

from roofbid.app import app, current_settings
from roofbid.config import configure_logging

logger = logging.getLogger("run_app")

if __name__ == '__main__':
    settings = current_settings()
    configure_logging(settings.log_level)

    port = int(os.environ.get("PORT", 5000))
    logger.info("Starting roofing estimation API on http://localhost:%d", port)
    logger.info("Database: %s, catalog: %s", settings.db_path, settings.catalog_path)

    app.run(debug=os.environ.get("FLASK_DEBUG") == "1", host='0.0.0.0', port=port)
