# ============================================================================
# services/auth.py - Authentication & Session Service
# ============================================================================

import asyncio
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
import httpx
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.config import settings
from cvintelligence.core.errors import (
    DuplicateEmail,
    Forbidden,
    InvalidCredentials,
    NotFound,
    RegistrationsDisabled,
)
from cvintelligence.models.session import UserSession
from cvintelligence.models.user import User
from cvintelligence.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 64


def _scrypt(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_DKLEN,
    )


def hash_password(password: str) -> str:
    """Return "<hex digest>.<salt>"."""
    salt = secrets.token_hex(16)
    return f"{_scrypt(password, salt).hex()}.{salt}"


def verify_password(password: str, stored: str) -> bool:
    try:
        hashed, salt = stored.split(".", 1)
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    return hmac.compare_digest(expected, _scrypt(password, salt))


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_store = SettingsStore(db)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def registrations_open(self) -> bool:
        return await self.settings_store.is_enabled("ALLOW_NEW_REGISTRATIONS", default=True)

    async def create_user(
        self,
        email: str,
        password: str,
        first_name: Optional[str],
        last_name: Optional[str],
        credits: Optional[int] = None,
        is_admin: bool = False,
    ) -> User:
        email = normalize_email(email)
        if await self.get_user_by_email(email):
            raise DuplicateEmail()

        password_hash = await asyncio.to_thread(hash_password, password)
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            auth_provider="local",
            credits=settings.STARTING_CREDITS if credits is None else credits,
            is_admin=is_admin,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await self.db.rollback()
            raise DuplicateEmail()
        await self.db.refresh(user)
        logger.info(f"Created user {user.id} ({user.auth_provider})")
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user for valid credentials, None otherwise."""
        user = await self.get_user_by_email(email)
        if not user or not user.password_hash:
            return None
        valid = await asyncio.to_thread(verify_password, password, user.password_hash)
        return user if valid else None

    async def update_credits(self, user_id: int, new_balance: int) -> User:
        if new_balance < 0:
            raise ValueError("Credit balance cannot be negative")
        await self.db.execute(update(User).where(User.id == user_id).values(credits=new_balance))
        await self.db.commit()
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("Usuário não encontrado")
        await self.db.refresh(user)
        return user

    async def ensure_admin_user(self) -> User:
        """Create the bootstrap admin account unless it already exists."""
        existing = await self.get_user_by_email(settings.ADMIN_EMAIL)
        if existing:
            return existing
        user = await self.create_user(
            settings.ADMIN_EMAIL,
            settings.ADMIN_PASSWORD,
            settings.ADMIN_FIRST_NAME,
            settings.ADMIN_LAST_NAME,
            credits=settings.ADMIN_STARTING_CREDITS,
            is_admin=True,
        )
        logger.info(f"Admin user created: {user.email}")
        return user

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        self.db.add(UserSession(
            token=token,
            user_id=user.id,
            expires_at=datetime.now(timezone.utc) + timedelta(days=settings.SESSION_TTL_DAYS),
        ))
        await self.db.commit()
        return token

    async def resolve_session(self, token: Optional[str]) -> Optional[User]:
        if not token:
            return None
        session = await self.db.get(UserSession, token)
        if session is None:
            return None
        if _as_utc(session.expires_at) <= datetime.now(timezone.utc):
            await self.db.delete(session)
            await self.db.commit()
            return None
        return await self.db.get(User, session.user_id)

    async def destroy_session(self, token: Optional[str]) -> None:
        if not token:
            return
        await self.db.execute(delete(UserSession).where(UserSession.token == token))
        await self.db.commit()

    # ------------------------------------------------------------------
    # Google sign-in
    # ------------------------------------------------------------------

    async def google_login(self, token: str) -> User:
        if not await self.settings_store.is_enabled("GOOGLE_LOGIN_ENABLED", default=False):
            raise Forbidden("Login com Google está desativado")
        client_id = await self.settings_store.resolve("GOOGLE_CLIENT_ID")
        if not client_id:
            raise Forbidden("Login com Google não está configurado")

        idinfo = await self._verify_google_token(token, client_id)
        google_id = idinfo["sub"]
        email = normalize_email(idinfo.get("email", ""))
        if not email:
            raise InvalidCredentials("Token do Google sem e-mail")

        result = await self.db.execute(select(User).where(User.google_id == google_id))
        user = result.scalar_one_or_none()

        if not user:
            user = await self.get_user_by_email(email)
            if user:
                # Link the existing local account
                user.google_id = google_id
                if not user.profile_image_url:
                    user.profile_image_url = idinfo.get("picture")

        if not user:
            if not await self.registrations_open():
                raise RegistrationsDisabled()
            user = User(
                email=email,
                google_id=google_id,
                first_name=idinfo.get("given_name"),
                last_name=idinfo.get("family_name"),
                profile_image_url=idinfo.get("picture"),
                auth_provider="google",
                credits=settings.STARTING_CREDITS,
            )
            self.db.add(user)
            logger.info(f"Creating Google user for {email}")

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def _verify_google_token(self, token: str, client_id: str) -> dict:
        try:
            return await asyncio.to_thread(
                id_token.verify_oauth2_token, token, google_requests.Request(), client_id
            )
        except (ValueError, google_exceptions.GoogleAuthError) as e:
            logger.warning(f"Google library verification failed: {e}")
            return await self._verify_token_with_google_api(token, client_id)

    async def _verify_token_with_google_api(self, token: str, client_id: str) -> dict:
        """Verify token using Google's tokeninfo API as fallback"""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                response = await client.get(
                    "https://oauth2.googleapis.com/tokeninfo", params={"id_token": token}
                )
            if response.status_code != 200:
                raise InvalidCredentials("Token do Google inválido")
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Google tokeninfo request failed: {e}")
            raise InvalidCredentials("Token do Google inválido")
        if not isinstance(data, dict) or data.get("aud") != client_id:
            raise InvalidCredentials("Token do Google inválido")
        return data
