"""
TeamVault Accounts — registration, lookup and password hashing.

The first account ever registered becomes ADMIN; every later one is USER.
Registration also creates the user's personal root folder in the same
transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

import bcrypt
from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from teamvault.db.lookups import load_user
from teamvault.db.models import ROLE_ADMIN, ROLE_USER, User
from teamvault.db.session import session_scope
from teamvault.documents.models import UserInfo
from teamvault.engine.errors import ValidationError
from teamvault.engine.locks import REGISTRATION_KEY, LockRegistry
from teamvault.engine.logging import AuditTrail, log_account_event

logger = logging.getLogger("teamvault.accounts")


# ---------------------------------------------------------------------------
# Password Utilities
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class AccountService:
    """User registration and lookup."""

    def __init__(
        self,
        db_session_factory: sessionmaker,
        folders,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
        password_min_length: int = 4,
        bcrypt_rounds: int = 12,
    ):
        self._db_session_factory = db_session_factory
        self._folders = folders
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()
        self._password_min_length = password_min_length
        self._bcrypt_rounds = bcrypt_rounds

    def signup(
        self,
        username: str,
        password: str,
        password_check: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> UserInfo:
        """
        Register a new account and its personal root folder.

        Raises:
            ValidationError: passwords differ, password too short, or the
                username/email is already taken.
        """
        username = (username or "").strip()
        email = (email or "").strip() or None
        if not username:
            raise ValidationError("Username is required", field="username")
        if password != password_check:
            raise ValidationError("Passwords do not match", field="password_check")
        if len(password) < self._password_min_length:
            raise ValidationError(
                f"Password must be at least {self._password_min_length} characters",
                field="password",
            )

        password_hash = hash_password(password, self._bcrypt_rounds)

        with self._locks.hold([REGISTRATION_KEY]):
            with session_scope(self._db_session_factory) as session:
                if session.query(User).filter_by(username=username).first() is not None:
                    raise ValidationError(f"Username '{username}' is already taken", field="username")
                if email and session.query(User).filter_by(email=email).first() is not None:
                    raise ValidationError(f"Email '{email}' is already registered", field="email")

                is_first = session.query(func.count(User.id)).scalar() == 0
                user = User(
                    username=username,
                    name=name or username,
                    email=email,
                    password_hash=password_hash,
                    role=ROLE_ADMIN if is_first else ROLE_USER,
                )
                session.add(user)
                session.flush()
                self._folders.create_root_folder(session, user)
                info = UserInfo.model_validate(user)

        logger.info(f"Registered user '{username}' as {info.role}")
        self._audit.record(log_account_event("signed_up", username, role=info.role))
        return info

    def get_user(self, username: str) -> UserInfo:
        with session_scope(self._db_session_factory) as session:
            return UserInfo.model_validate(load_user(session, username))

    def verify_credentials(self, username: str, password: str) -> bool:
        """True when the account exists and the password matches."""
        with session_scope(self._db_session_factory) as session:
            user = session.query(User).filter_by(username=username).first()
            if user is None:
                return False
            return verify_password(password, user.password_hash)
