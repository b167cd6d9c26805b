"""
User provisioning outside the login flow (admin seeding, fixtures).
"""
import logging
from typing import Iterable

from core.errors import ValidationError

from .passwords import hash_password, validate_password_strength
from .repositories import UserRepository
from .types import User

logger = logging.getLogger(__name__)


def create_user(
    users: UserRepository,
    email: str,
    password: str,
    name: str = "",
    roles: Iterable[str] = ("USER",),
    is_active: bool = True,
    enforce_policy: bool = True,
) -> User:
    """Create a password user.

    Args:
        users: Repository to write to
        email: Login email (stored lowercased)
        password: Plain text password, checked against the policy
        name: Display name
        roles: Role names, e.g. ("ADMIN",)
        enforce_policy: Skip the strength check when False

    Returns:
        The created user

    Raises:
        ValidationError: bad email, weak password, or duplicate email
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")

    if enforce_policy:
        valid, message = validate_password_strength(password)
        if not valid:
            raise ValidationError(message)

    if users.find_by_email(email) is not None:
        raise ValidationError(f"User {email} already exists")

    user = users.create(
        email=email,
        name=name,
        password_hash=hash_password(password),
        roles=tuple(roles),
        is_active=is_active,
    )
    logger.info(f"Created user {user.id} ({email}) with roles {','.join(user.roles)}")
    return user
