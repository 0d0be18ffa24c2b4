"""Password hashing, login sessions, and password resets.

Stored hashes are ``salt:hash`` where ``salt`` is 16 random bytes as hex
(used as UTF-8 text, not decoded) and ``hash`` is PBKDF2-HMAC-SHA512 with
10000 iterations and a 64-byte key, hex encoded.  Existing credentials
created with that scheme verify unchanged.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select, update

from seo_reporter.database import Database
from seo_reporter.errors import AuthenticationError
from seo_reporter.models.account import LoginLog, PasswordResetToken, Role, User, UserSession

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 10000
PBKDF2_KEY_LENGTH = 64
SESSION_DURATION = timedelta(days=7)
RESET_TOKEN_DURATION = timedelta(hours=1)
INVALID_CREDENTIALS = "Invalid email or password"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha512", password.encode("utf-8"), salt.encode("utf-8"),
        PBKDF2_ITERATIONS, PBKDF2_KEY_LENGTH,
    ).hex()
    return f"{salt}:{digest}"


def verify_password(password: str, stored: str) -> bool:
    salt, sep, expected = stored.partition(":")
    if not sep or not salt or not expected:
        return False
    candidate = hash_password(password, salt).partition(":")[2]
    return hmac.compare_digest(candidate, expected)


def generate_token() -> str:
    """Opaque 256-bit token as 64 hex characters."""
    return secrets.token_hex(32)


@dataclass(frozen=True)
class UserInfo:
    id: int
    email: str
    name: str
    role: Role
    business_name: Optional[str] = None
    logo_url: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_model(cls, user: User) -> "UserInfo":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            business_name=user.business_name,
            logo_url=user.logo_url,
            is_active=user.is_active,
        )


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: UserInfo
    expires_at: datetime


class AuthService:
    """User accounts and bearer sessions.

    Usage::

        auth = AuthService(db)
        auth.create_user("owner@example.com", "s3cret", "Owner", Role.CLIENT)
        result = auth.login("owner@example.com", "s3cret")
        user = auth.verify_session(result.token)
    """

    def __init__(self, db: Database):
        self._db = db

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        email: str,
        password: str,
        name: str,
        role: Role = Role.CLIENT,
        business_name: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> UserInfo:
        email = email.strip().lower()
        with self._db.session() as session:
            if session.scalar(select(User.id).where(User.email == email)) is not None:
                raise ValueError(f"User already exists: {email}")
            user = User(
                email=email,
                password_hash=hash_password(password),
                name=name,
                role=role,
                business_name=business_name,
                logo_url=logo_url,
            )
            session.add(user)
            session.flush()
            info = UserInfo.from_model(user)
        logger.info("Created %s user %s", role.value, email)
        return info

    def get_user(self, user_id: int) -> Optional[UserInfo]:
        with self._db.session() as session:
            user = session.get(User, user_id)
            return UserInfo.from_model(user) if user else None

    def get_all_users(self) -> list[UserInfo]:
        with self._db.session() as session:
            users = session.scalars(select(User).order_by(User.created_at.desc(), User.id.desc()))
            return [UserInfo.from_model(u) for u in users]

    def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
        password: Optional[str] = None,
        business_name: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> UserInfo:
        """Update the given fields.  ``None`` leaves a field unchanged."""
        with self._db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise ValueError(f"User {user_id} not found")
            if name:
                user.name = name
            if email:
                user.email = email.strip().lower()
            if role is not None:
                user.role = role
            if is_active is not None:
                user.is_active = is_active
            if password:
                user.password_hash = hash_password(password)
            if business_name is not None:
                user.business_name = business_name or None
            if logo_url is not None:
                user.logo_url = logo_url or None
            session.flush()
            return UserInfo.from_model(user)

    def delete_user(self, user_id: int) -> None:
        with self._db.session() as session:
            user = session.get(User, user_id)
            if user is not None:
                session.delete(user)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """Verify credentials, log the attempt, and open a 7-day session.

        Raises:
            AuthenticationError: Unknown email, inactive user, or wrong
                password (all with the same message).
        """
        email = email.strip().lower()
        with self._db.session() as session:
            user = session.scalar(select(User).where(User.email == email))
            success = bool(user and user.is_active and verify_password(password, user.password_hash))
            session.add(
                LoginLog(
                    user_id=user.id if user else None,
                    email=email,
                    success=success,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            if not success:
                logger.warning("Failed login for %s", email)
                result = None
            else:
                now = _utcnow()
                token = generate_token()
                expires_at = now + SESSION_DURATION
                session.add(UserSession(user_id=user.id, token=token, expires_at=expires_at))
                session.execute(delete(UserSession).where(UserSession.expires_at < now))
                result = LoginResult(token=token, user=UserInfo.from_model(user), expires_at=expires_at)

        # Raise after the block so the failed-attempt log row is committed.
        if result is None:
            raise AuthenticationError(INVALID_CREDENTIALS)
        logger.info("User %s logged in", email)
        return result

    def verify_session(self, token: str) -> Optional[UserInfo]:
        with self._db.session() as session:
            user_session = session.scalar(select(UserSession).where(UserSession.token == token))
            if user_session is None or _as_utc(user_session.expires_at) < _utcnow():
                return None
            if not user_session.user.is_active:
                return None
            return UserInfo.from_model(user_session.user)

    def logout(self, token: str) -> None:
        with self._db.session() as session:
            session.execute(delete(UserSession).where(UserSession.token == token))

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> Optional[str]:
        """Issue a 1-hour reset token.  Returns ``None`` for unknown or
        inactive accounts without saying which."""
        email = email.strip().lower()
        with self._db.session() as session:
            user = session.scalar(select(User).where(User.email == email))
            if user is None or not user.is_active:
                return None
            session.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used.is_(False))
                .values(used=True)
            )
            token = generate_token()
            session.add(
                PasswordResetToken(
                    user_id=user.id, token=token, expires_at=_utcnow() + RESET_TOKEN_DURATION
                )
            )
        logger.info("Password reset requested for %s", email)
        return token

    def reset_password(self, token: str, new_password: str) -> UserInfo:
        """Set a new password and end every session of the user.

        Raises:
            AuthenticationError: Unknown, used, or expired token, or an
                inactive user.
        """
        with self._db.session() as session:
            reset = session.scalar(select(PasswordResetToken).where(PasswordResetToken.token == token))
            if reset is None:
                raise AuthenticationError("Invalid or expired reset token")
            if reset.used:
                raise AuthenticationError("Reset token has already been used")
            if _as_utc(reset.expires_at) < _utcnow():
                raise AuthenticationError("Reset token has expired")
            user = reset.user
            if not user.is_active:
                raise AuthenticationError("User account is inactive")

            user.password_hash = hash_password(new_password)
            reset.used = True
            session.execute(delete(UserSession).where(UserSession.user_id == user.id))
            info = UserInfo.from_model(user)
        logger.info("Password reset completed for %s", info.email)
        return info

    def cleanup_expired_reset_tokens(self) -> int:
        with self._db.session() as session:
            result = session.execute(
                delete(PasswordResetToken).where(
                    (PasswordResetToken.expires_at < _utcnow()) | PasswordResetToken.used.is_(True)
                )
            )
            removed = result.rowcount or 0
        logger.debug("Removed %d expired or used reset tokens", removed)
        return removed
