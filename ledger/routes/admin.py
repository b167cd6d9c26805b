"""
Administrative endpoints: system-wide 2FA policy.
"""

from flask import Blueprint, g, jsonify

from core.errors import ValidationError
from core.event_logger import log_event
from core.timestamps import to_iso
from ledger.auth import admin_required
from ledger.auth.types import MFASettings
from ledger.services import get_services

from .request_data import json_body

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _settings_dict(settings: MFASettings) -> dict:
    return {
        "enforce_2fa": settings.enforce_2fa,
        "updated_by": settings.updated_by,
        "updated_at": to_iso(settings.updated_at),
    }


@admin_bp.route('/mfa-settings', methods=['GET'])
@admin_required
def get_mfa_settings():
    return jsonify(_settings_dict(get_services().policy.get()))


@admin_bp.route('/mfa-settings', methods=['PUT'])
@admin_required
def update_mfa_settings():
    """Turn system-wide 2FA enforcement on or off."""
    data = json_body()
    enforce = data.get("enforce_2fa")
    if not isinstance(enforce, bool):
        raise ValidationError("enforce_2fa must be a boolean")

    settings = get_services().policy.update(enforce, g.current_user_id)
    log_event(
        "mfa_settings",
        user=g.current_email,
        details=f"enforce_2fa set to {enforce}",
    )
    return jsonify(_settings_dict(settings))
