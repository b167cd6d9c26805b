"""
Flask application factory for the auth API.
"""

import logging
import time
import uuid

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

load_dotenv()

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Cache-Control': 'no-store',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
}


def create_app(config=None):
    """Build the auth API.

    Args:
        config: Optional dict of overrides. Besides Flask keys:
            ``DB_PATH`` / ``DATABASE_URL`` point at a dedicated database,
            ``OAUTH_PROVIDER`` and ``AUTH_DELEGATE`` replace the Google
            client and the external credential checker.
    """
    from config.settings import get_settings
    from core.errors import register_error_handlers
    from ledger.extensions import init_extensions
    from ledger.logging_config import configure_logging
    from ledger.routes import admin_bp, auth_bp, health_bp, twofa_bp
    from ledger.services import EXTENSION_KEY, build_services

    app = Flask(__name__)
    app.config.update(config or {})
    settings = get_settings()

    configure_logging(app)
    init_extensions(app)
    register_error_handlers(app)

    app.extensions[EXTENSION_KEY] = build_services(
        settings,
        _open_database(app, settings),
        provider=app.config.get('OAUTH_PROVIDER'),
        delegate=app.config.get('AUTH_DELEGATE'),
    )

    for blueprint in (health_bp, auth_bp, twofa_bp, admin_bp):
        app.register_blueprint(blueprint)

    _install_request_hooks(app)

    @app.errorhandler(HTTPException)
    def http_error(e):
        # 404/405 and malformed JSON as JSON, not HTML
        return jsonify({'error': e.description, 'request_id': getattr(g, 'request_id', None)}), e.code

    logger.info(f"{settings.app_name} ready")
    return app


def _open_database(app, settings):
    """Per-app database when overridden, else the shared one; schema is ensured."""
    from core.db import DatabaseManager
    from ledger.auth.schema import initialize

    db_url = app.config.get('DATABASE_URL')
    db_path = app.config.get('DB_PATH')
    if db_url or db_path:
        db = DatabaseManager(db_url=db_url, db_path=db_path)
    else:
        db = DatabaseManager.get_instance(
            db_url=settings.database.database_url,
            db_path=settings.database.sqlite_path,
        )
    initialize(db)
    return db


def _install_request_hooks(app):
    @app.before_request
    def start_request():
        g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex[:8]
        g.started = time.perf_counter()

    @app.after_request
    def finish_request(response):
        elapsed_ms = (time.perf_counter() - g.get('started', time.perf_counter())) * 1000
        response.headers['X-Request-ID'] = g.get('request_id', '')
        response.headers.update(SECURITY_HEADERS)

        if request.path == '/health':
            level = logging.DEBUG
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            f"{request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
            extra={
                'request_id': g.get('request_id'),
                'method': request.method,
                'endpoint': request.path,
                'status_code': response.status_code,
                'duration_ms': round(elapsed_ms, 2),
                'remote_addr': request.remote_addr,
                'user': g.get('current_email'),
            },
        )
        return response
