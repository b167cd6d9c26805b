"""Request body helpers shared by the blueprints."""
from flask import request

from core.errors import ValidationError

MAX_FIELD_LENGTH = 512


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_str(data: dict, field: str, max_length: int = MAX_FIELD_LENGTH) -> str:
    """Return ``data[field]`` as a non-empty string or raise ValidationError."""
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds maximum length")
    return value


def client_fingerprint_source() -> tuple[str, str]:
    """(IP, User-Agent) of the caller, used for OAuth state binding."""
    return request.remote_addr or "", request.headers.get("User-Agent", "")
