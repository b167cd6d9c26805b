"""
Log output for the auth API: JSON lines by default, plain text on request.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from config.settings import get_settings

# Loggers that receive the configured handlers
_APP_LOGGERS = ("ledger", "core")

# Attributes passed through ``extra=`` that are copied into the JSON line
_EXTRA_FIELDS = (
    'request_id', 'error_id', 'user', 'endpoint', 'method',
    'status_code', 'duration_ms', 'remote_addr',
)

_TEXT_FORMAT = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request context when present."""

    def format(self, record):
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        entry.update({
            field: getattr(record, field)
            for field in _EXTRA_FIELDS
            if getattr(record, field, None) is not None
        })
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _handlers(settings) -> list[logging.Handler]:
    console = logging.StreamHandler()
    console.setFormatter(
        JSONFormatter() if settings.log_format == 'json' else logging.Formatter(_TEXT_FORMAT)
    )
    handlers = [console]

    if settings.log_file:
        rotating = RotatingFileHandler(settings.log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        rotating.setFormatter(JSONFormatter())
        handlers.append(rotating)
    return handlers


def configure_logging(app=None):
    """Attach handlers to the ``ledger`` and ``core`` loggers (and Flask's).

    LOG_LEVEL, LOG_FORMAT (json|text) and LOG_FILE come from settings.
    Calling it again replaces the handlers instead of stacking them.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handlers = _handlers(settings)

    targets = [logging.getLogger(name) for name in _APP_LOGGERS]
    if app is not None:
        targets.append(app.logger)
    for target in targets:
        target.handlers = list(handlers)
        target.setLevel(level)

    return logging.getLogger('ledger')
