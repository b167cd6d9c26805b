"""
Flask extension wiring, initialized via init_extensions(app).
"""

import logging

from flask_cors import CORS

from config.settings import get_settings

logger = logging.getLogger(__name__)


def allowed_origins() -> list[str]:
    """CORS_ORIGINS (comma separated), else just the frontend URL."""
    settings = get_settings()
    if settings.cors_origins:
        return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    return [settings.frontend_url]


def init_extensions(app):
    """Initialize all Flask extensions with the app instance.

    Args:
        app: Flask application instance
    """
    origins = allowed_origins()
    CORS(app, origins=origins, supports_credentials=True)
    logger.debug(f"CORS enabled for {', '.join(origins)}")
