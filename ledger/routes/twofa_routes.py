"""
Two-factor authentication endpoints.

Enrollment (setup, setup/verify) accepts a full token or a ``setup`` temp
token. Login completion (verify, backup/verify) takes a ``verify`` temp
token in the body. Management (disable, backup-codes, status) needs a
full token.
"""

from flask import Blueprint, g, jsonify

from ledger.auth import jwt_required, setup_token_allowed
from ledger.services import get_services

from .request_data import json_body, require_str

twofa_bp = Blueprint('twofa', __name__, url_prefix='/2fa')


# =============================================================================
# Enrollment
# =============================================================================

@twofa_bp.route('/setup', methods=['POST'])
@setup_token_allowed
def setup():
    """Generate a secret; returns it with the otpauth URI and QR image."""
    provisioning = get_services().orchestrator.setup(g.current_user_id)
    return jsonify({
        "secret": provisioning.secret,
        "provisioning_uri": provisioning.provisioning_uri,
        "qr_code": provisioning.qr_code,
        "message": "Scan QR code with authenticator app, then confirm with a code",
    })


@twofa_bp.route('/setup/verify', methods=['POST'])
@setup_token_allowed
def setup_verify():
    """Confirm enrollment with the first code."""
    code = require_str(json_body(), "code", max_length=16)

    token = get_services().orchestrator.setup_verify(
        g.current_user_id, code, issue_token=g.via_temp_token
    )
    body = {"message": "2FA enabled successfully"}
    if token:
        body["token"] = token
    return jsonify(body)


# =============================================================================
# Login completion
# =============================================================================

@twofa_bp.route('/verify', methods=['POST'])
def verify():
    """Exchange a verify temp token and a TOTP code for a session token."""
    data = json_body()
    temp_token = require_str(data, "temp_token", max_length=2048)
    code = require_str(data, "code", max_length=16)

    token = get_services().orchestrator.verify_login(temp_token, code)
    return jsonify({"token": token})


@twofa_bp.route('/backup/verify', methods=['POST'])
def backup_verify():
    """Exchange a verify temp token and a backup code for a session token."""
    data = json_body()
    temp_token = require_str(data, "temp_token", max_length=2048)
    code = require_str(data, "code", max_length=64)

    token = get_services().orchestrator.verify_backup_code(temp_token, code)
    return jsonify({"token": token})


# =============================================================================
# Management
# =============================================================================

@twofa_bp.route('/disable', methods=['DELETE'])
@jwt_required
def disable():
    get_services().orchestrator.disable(g.current_user_id)
    return jsonify({"message": "2FA disabled"})


@twofa_bp.route('/backup-codes', methods=['POST'])
@jwt_required
def backup_codes():
    """Replace the user's backup codes. The plaintext is shown only here."""
    codes = get_services().orchestrator.generate_backup_codes(g.current_user_id)
    return jsonify({
        "backup_codes": codes,
        "warning": "Save these backup codes securely. They will not be shown again.",
    })


@twofa_bp.route('/status', methods=['GET'])
@jwt_required
def status():
    return jsonify(get_services().orchestrator.status(g.current_user_id))
