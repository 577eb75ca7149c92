"""Administrator accounts and bearer token handling."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import bcrypt
import jwt
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import User
from ..errors import Unauthorized, ValidationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


@dataclass(frozen=True, slots=True)
class Identity:
    """The verified caller attached to authenticated requests."""

    user_id: int
    username: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode(
        "utf-8"
    )


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """Looks up administrators and issues/verifies signed tokens."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings

    async def bootstrap(self) -> int:
        """Seed accounts on first run; return how many were created."""

        async with self._session_factory() as session:
            existing = await session.scalar(select(func.count()).select_from(User))
            if existing:
                return 0

            accounts = self._load_legacy_accounts(self._settings.users_file)
            if not accounts:
                logger.info("Creating default administrator %s", self._settings.admin_username)
                accounts = [
                    {
                        "username": self._settings.admin_username,
                        "email": self._settings.admin_email,
                        "password": self._settings.admin_password,
                    }
                ]

            for account in accounts:
                password = str(account["password"])
                if not password.startswith(BCRYPT_PREFIXES):
                    password = hash_password(password)
                session.add(
                    User(
                        username=str(account["username"]),
                        email=account.get("email") or None,
                        password_hash=password,
                    )
                )
            await session.commit()
            return len(accounts)

    async def authenticate(self, login: str | None, password: str | None) -> dict[str, str]:
        login = (login or "").strip()
        if not login or not password:
            logger.info(
                "Login attempt with missing fields: username=%s password=%s",
                bool(login),
                bool(password),
            )
            raise ValidationError("Username or email and password are required")

        async with self._session_factory() as session:
            stmt = select(User).where(or_(User.username == login, User.email == login))
            user = (await session.execute(stmt)).scalars().first()
            if user is None:
                logger.info("Login failed: no user found for %s", login)
                raise Unauthorized("Invalid username or email")
            if not check_password(password, user.password_hash):
                logger.info("Login failed: invalid password for %s", user.username)
                raise Unauthorized("Invalid password")

            user.last_login_at = datetime.utcnow()
            await session.commit()

        logger.info("Login successful for %s", user.username)
        return {"token": self.issue_token(user), "username": user.username}

    def issue_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user.id,
            "username": user.username,
            "iat": int(now.timestamp()),
            "exp": int(
                (now + timedelta(seconds=self._settings.jwt_expires_seconds)).timestamp()
            ),
        }
        return jwt.encode(payload, self._settings.secret_key, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str | None) -> Identity:
        if not token:
            raise Unauthorized("Unauthorized: No token provided")
        try:
            payload = jwt.decode(
                token, self._settings.secret_key, algorithms=[JWT_ALGORITHM]
            )
            return Identity(user_id=int(payload["userId"]), username=str(payload["username"]))
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as exc:
            logger.info("Invalid token: %s", exc)
            raise Unauthorized("Unauthorized: Invalid token") from exc

    @staticmethod
    def _load_legacy_accounts(path: Path) -> list[dict[str, Any]]:
        """Read accounts from a legacy ``users.json`` file, if any."""

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable users file %s: %s", path, exc)
            return []
        if not isinstance(payload, list):
            logger.warning("Ignoring users file %s: expected a JSON array", path)
            return []

        accounts = [
            entry
            for entry in payload
            if isinstance(entry, dict) and entry.get("username") and entry.get("password")
        ]
        if accounts:
            logger.info("Importing %d account(s) from %s", len(accounts), path)
        return accounts
