"""
Flask route decorators for authentication and authorization.

Provides:
- jwt_required: Require a valid full session token
- setup_token_allowed: Accept a full token or a ``setup`` temp token
- admin_required: Require the ADMIN role

On success the decorators populate ``g.current_user_id``,
``g.current_email`` and ``g.current_roles``.
"""
from functools import wraps

from flask import g

from core.errors import InvalidToken, PermissionDeniedError, TempTokenError

from .tokens import get_token_from_request
from .types import TokenPurpose


def _tokens():
    from ledger.services import get_services
    return get_services().tokens


def jwt_required(f):
    """Decorator to require a valid full token for the endpoint."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = get_token_from_request()
        if not token:
            raise InvalidToken("missing authorization token")

        claims = _tokens().validate_full(token)

        g.current_user_id = claims.user_id
        g.current_email = claims.email
        g.current_roles = claims.roles
        g.via_temp_token = False
        return f(*args, **kwargs)
    return decorated


def setup_token_allowed(f):
    """Like jwt_required, but a ``setup`` temp token is also accepted.

    Used by the enrollment endpoints so a user whose login stopped at the
    setup step can finish enrolling. ``g.via_temp_token`` tells the view
    which kind of token was presented.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        token = get_token_from_request()
        if not token:
            raise InvalidToken("missing authorization token")

        tokens = _tokens()
        try:
            claims = tokens.validate_full(token)
            g.current_roles = claims.roles
            g.via_temp_token = False
        except InvalidToken:
            try:
                claims = tokens.validate_temp(token, TokenPurpose.SETUP)
            except TempTokenError as e:
                raise InvalidToken(f"neither session nor setup token: {e.code}") from e
            g.current_roles = ()
            g.via_temp_token = True

        g.current_user_id = claims.user_id
        g.current_email = claims.email
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Decorator to require the ADMIN role."""
    @wraps(f)
    @jwt_required
    def decorated(*args, **kwargs):
        if "ADMIN" not in g.current_roles:
            raise PermissionDeniedError("admin role required")
        return f(*args, **kwargs)
    return decorated
