# ============================================================================
# api/auth.py - Authentication Routes
# ============================================================================

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from cvintelligence.core.config import settings
from cvintelligence.core.database import get_db, get_session_factory
from cvintelligence.core.errors import InvalidCredentials, RegistrationsDisabled
from cvintelligence.models.user import User
from cvintelligence.api.deps import clear_session_cookie, get_current_user, set_session_cookie
from cvintelligence.schemas.auth import GoogleLoginRequest, LoginRequest, RegisterRequest, UserResponse
from cvintelligence.services.auth import AuthService
from cvintelligence.services.email import EmailService
from cvintelligence.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


async def send_welcome_email(session_factory: async_sessionmaker, email: str, first_name: str):
    """Runs after the response; failures are logged and dropped."""
    try:
        async with session_factory() as db:
            await EmailService(SettingsStore(db)).send_welcome(email, first_name)
    except Exception:
        logger.exception(f"Welcome email to {email} failed")


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    data: RegisterRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    auth_service = AuthService(db)
    if not await auth_service.registrations_open():
        raise RegistrationsDisabled()

    user = await auth_service.create_user(data.email, data.password, data.first_name, data.last_name)
    token = await auth_service.create_session(user)
    set_session_cookie(response, token)
    background_tasks.add_task(send_welcome_email, session_factory, user.email, user.first_name)
    return user


@router.post("/login", response_model=UserResponse)
async def login(data: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    auth_service = AuthService(db)
    user = await auth_service.authenticate(data.email, data.password)
    if not user:
        raise InvalidCredentials()
    token = await auth_service.create_session(user)
    set_session_cookie(response, token)
    return user


@router.post("/auth/google", response_model=UserResponse)
async def google_login(data: GoogleLoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    auth_service = AuthService(db)
    user = await auth_service.google_login(data.token)
    token = await auth_service.create_session(user)
    set_session_cookie(response, token)
    return user


@router.post("/logout")
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    await AuthService(db).destroy_session(request.cookies.get(settings.SESSION_COOKIE_NAME))
    clear_session_cookie(response)
    return {"message": "Logout realizado com sucesso"}


@router.get("/auth/user", response_model=UserResponse)
async def current_user(user: User = Depends(get_current_user)):
    return user
