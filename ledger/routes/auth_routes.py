"""
Login endpoints: password login and the Google OAuth2 round trip.
"""

import logging
from urllib.parse import urlencode

from flask import Blueprint, jsonify, redirect, request

from config.settings import get_settings
from core.errors import APIError, InternalError, ProviderError
from ledger.services import get_services

from .request_data import client_fingerprint_source, json_body, require_str

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

# Shown when the callback fails for a server-side reason
OAUTH_LOGIN_FAILED = "login failed"


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Authenticate with email and password.

    Returns ``{token}``, ``{token, requires_2fa_setup}`` or
    ``{requires_2fa, temp_token, purpose}``.
    """
    data = json_body()
    email = require_str(data, "email", max_length=254)
    password = require_str(data, "password", max_length=200)

    result = get_services().orchestrator.login(email, password)
    return jsonify(result.to_dict())


# =============================================================================
# Google OAuth
# =============================================================================

def _frontend_redirect(path: str, **params):
    base = get_settings().frontend_url.rstrip('/')
    return redirect(f"{base}{path}?{urlencode(params)}")


@auth_bp.route('/auth/google/login', methods=['GET'])
def google_login():
    """Issue a state bound to this client and redirect to the consent screen."""
    ip, user_agent = client_fingerprint_source()
    url = get_services().orchestrator.begin_oauth(ip, user_agent)
    return redirect(url)


@auth_bp.route('/auth/google/callback', methods=['GET'])
def google_callback():
    """Finish the flow; always answers with a redirect to the frontend."""
    if request.args.get('error'):
        logger.info(f"Provider returned error: {request.args.get('error')}")
        return _frontend_redirect('/login', error=ProviderError.public_message)

    code = request.args.get('code', '')
    state = request.args.get('state', '')
    ip, user_agent = client_fingerprint_source()

    try:
        token = get_services().orchestrator.complete_oauth(code, state, ip, user_agent)
    except APIError as e:
        logger.warning(f"OAuth callback failed [{e.code}]: {e}")
        return _frontend_redirect('/login', error=e.to_dict()["error"])
    except InternalError as e:
        logger.error(f"OAuth callback failed: {e}", exc_info=e.cause or e)
        return _frontend_redirect('/login', error=OAUTH_LOGIN_FAILED)

    return _frontend_redirect('/oauth/callback', token=token)
