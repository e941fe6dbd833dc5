"""
Password hashing, registration input checks, and the authorization gate.
"""

from __future__ import annotations

from typing import List, Optional

from passlib.context import CryptContext

from challenge_backend.db import DbClient
from challenge_backend.types import FieldError

# Password hashing
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

LOGIN_REQUIRED_MESSAGE = (
    "You are not authorized to perform this action. Please login and try again."
)
ADMIN_REQUIRED_MESSAGE = "You are not authorized to perform this action."


class Unauthorized(Exception):
    """No logged-in user."""


class Forbidden(Exception):
    """Logged in, but lacking the required capability."""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def validate_register(
    username: str, email: str, password: str
) -> Optional[List[FieldError]]:
    """Return the first problem with a registration form, or None."""
    if "@" not in email:
        return [FieldError(field="email", message="Invalid email")]
    if len(username) <= 2:
        return [
            FieldError(
                field="username", message="Username length must be greater than 2"
            )
        ]
    # Logins accept a username or an email, told apart by the "@".
    if "@" in username:
        return [
            FieldError(field="username", message="Invalid symbol '@' in username")
        ]
    if len(password) <= 3:
        return [
            FieldError(
                field="password", message="Password length must be greater than 3"
            )
        ]
    return None


def require_authenticated(user_id: Optional[int]) -> int:
    if user_id is None:
        raise Unauthorized(LOGIN_REQUIRED_MESSAGE)
    return user_id


def require_admin(db: DbClient, user_id: Optional[int]) -> int:
    user_id = require_authenticated(user_id)
    user = db.get_user(user_id)
    if user is None:
        raise Unauthorized(LOGIN_REQUIRED_MESSAGE)
    if not user.is_admin:
        raise Forbidden(ADMIN_REQUIRED_MESSAGE)
    return user_id
