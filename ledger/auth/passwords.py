"""
Password hashing and the password strength policy.

Hashes are salted werkzeug hashes; backup codes reuse the same scheme.
"""
import re

from werkzeug.security import check_password_hash, generate_password_hash

from config.settings import get_settings

__all__ = [
    "hash_password",
    "verify_password",
    "validate_password_strength",
]

SPECIAL_CHARACTERS = "!@#$%^&*()-_+="

# (policy flag, pattern, what is missing)
_CHARACTER_RULES = (
    ("password_require_uppercase", re.compile(r"[A-Z]"), "one uppercase letter"),
    ("password_require_lowercase", re.compile(r"[a-z]"), "one lowercase letter"),
    ("password_require_digit", re.compile(r"\d"), "one digit"),
    ("password_require_special", re.compile(f"[{re.escape(SPECIAL_CHARACTERS)}]"),
     f"one special character ({SPECIAL_CHARACTERS})"),
)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """True when ``password`` matches; an empty hash never matches."""
    return bool(password_hash) and check_password_hash(password_hash, password)


def validate_password_strength(password: str) -> tuple[bool, str]:
    """Check ``password`` against the configured policy.

    Returns:
        ``(True, "")`` or ``(False, reason)`` for the first failed rule
    """
    policy = get_settings().auth

    if len(password) < policy.password_min_length:
        return False, f"Password must be at least {policy.password_min_length} characters"

    for flag, pattern, missing in _CHARACTER_RULES:
        if getattr(policy, flag) and not pattern.search(password):
            return False, f"Password must contain at least {missing}"

    return True, ""
