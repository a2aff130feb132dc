# ============================================================================
# api/deps.py - Request Dependencies
# ============================================================================

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.config import settings
from cvintelligence.core.database import get_db
from cvintelligence.core.errors import Forbidden, NotAuthenticated
from cvintelligence.models.user import User
from cvintelligence.services.auth import AuthService
from cvintelligence.services.scoring import CvScorer, OpenAICvScorer
from cvintelligence.services.settings_store import SettingsStore
from cvintelligence.services.storage import StorageService


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.SESSION_COOKIE_NAME)


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    user = await AuthService(db).resolve_session(token)
    if not user:
        raise NotAuthenticated()
    return user


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise Forbidden()
    return user


def get_scorer(db: AsyncSession = Depends(get_db)) -> CvScorer:
    return OpenAICvScorer(SettingsStore(db))


def get_storage() -> StorageService:
    return StorageService()
