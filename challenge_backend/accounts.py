"""
Account lifecycle: registration, login/logout and password reset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from challenge_backend.auth import hash_password, validate_register, verify_password
from challenge_backend.db import DbClient, DuplicateUserError, UserRecord
from challenge_backend.mailer import (
    EmailClient,
    EmailDeliveryError,
    password_changed_email,
    password_reset_email,
    welcome_email,
)
from challenge_backend.sessions import SessionManager
from challenge_backend.types import FieldError

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGES = {
    "username": "Username already taken",
    "email": "An account with this email already exists",
}


@dataclass
class AccountResult:
    user: Optional[UserRecord] = None
    session_token: Optional[str] = None
    success: List[FieldError] = field(default_factory=list)
    errors: List[FieldError] = field(default_factory=list)


class AccountService:
    def __init__(
        self,
        db: DbClient,
        sessions: SessionManager,
        mailer: EmailClient,
        frontend_url: str = "http://localhost:3000",
    ):
        self.db = db
        self.sessions = sessions
        self.mailer = mailer
        self.frontend_url = frontend_url.rstrip("/")

    def _notify(self, to: str, message: tuple) -> None:
        subject, html = message
        try:
            self.mailer.send(to, subject, html)
        except EmailDeliveryError as exc:
            logger.warning("Could not send %r to %s: %s", subject, to, exc)

    def me(self, user_id: Optional[int]) -> Optional[UserRecord]:
        if user_id is None:
            return None
        return self.db.get_user(user_id)

    def list_users(self) -> List[UserRecord]:
        return self.db.list_users()

    def register(self, username: str, email: str, password: str) -> AccountResult:
        errors = validate_register(username, email, password)
        if errors:
            return AccountResult(errors=errors)

        try:
            user = self.db.create_user(username, email, hash_password(password))
        except DuplicateUserError as exc:
            return AccountResult(
                errors=[FieldError(field=exc.field, message=DUPLICATE_MESSAGES[exc.field])]
            )

        logger.info("Registered user %s (id=%s)", user.username, user.id)
        self._notify(user.email, welcome_email(user.username))
        return AccountResult(user=user, session_token=self.sessions.create_session(user.id))

    def login(self, username_or_email: str, password: str) -> AccountResult:
        if "@" in username_or_email:
            user = self.db.find_user_by_email(username_or_email)
        else:
            user = self.db.find_user_by_username(username_or_email)
        if not user:
            return AccountResult(
                errors=[
                    FieldError(field="usernameOrEmail", message="Username doesn't exist")
                ]
            )
        if not verify_password(password, user.password_hash):
            return AccountResult(
                errors=[
                    FieldError(
                        field="password", message="Incorrect username or password"
                    )
                ]
            )
        return AccountResult(user=user, session_token=self.sessions.create_session(user.id))

    def logout(self, session_token: Optional[str]) -> bool:
        self.sessions.destroy(session_token)
        return True

    def forgot_password(self, email: str) -> AccountResult:
        user = self.db.find_user_by_email(email)
        if not user:
            return AccountResult(
                errors=[FieldError(field="email", message="Invalid email please try again")]
            )
        token = self.sessions.issue_reset_token(user.id)
        link = f"{self.frontend_url}/change-password/{token}"
        self._notify(user.email, password_reset_email(user.username, user.email, link))
        return AccountResult(
            success=[
                FieldError(field="email", message="Email sent! Please check your inbox")
            ]
        )

    def change_password(self, token: str, new_password: str) -> AccountResult:
        if len(new_password) <= 3:
            return AccountResult(
                errors=[
                    FieldError(
                        field="newPassword",
                        message="Password length must be greater than 3",
                    )
                ]
            )
        user_id = self.sessions.reset_token_user(token)
        if user_id is None:
            return AccountResult(errors=[FieldError(field="token", message="Token expired")])
        user = self.db.get_user(user_id)
        if not user:
            return AccountResult(
                errors=[FieldError(field="token", message="User no longer exists")]
            )

        self.db.update_password(user.id, hash_password(new_password))
        # One reset per emailed link.
        self.sessions.consume_reset_token(token)
        self._notify(user.email, password_changed_email(user.username))
        return AccountResult(user=user, session_token=self.sessions.create_session(user.id))
