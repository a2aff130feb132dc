# ============================================================================
# main.py - FastAPI Application
# ============================================================================

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cvintelligence.core.config import settings
from cvintelligence.core.database import async_session_maker, init_db
from cvintelligence.core.errors import CvIntelligenceError
from cvintelligence.api import admin, analyses, auth, payments
from cvintelligence.services.auth import AuthService

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("✅ Database initialized")
    async with async_session_maker() as db:
        await AuthService(db).ensure_admin_user()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="CVIntelligence API",
        description="AI-powered CV analysis with credit-based billing",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CvIntelligenceError)
    async def domain_error_handler(request: Request, exc: CvIntelligenceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}")
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = ".".join(str(part) for part in errors[0]["loc"][1:]) if errors else ""
        message = f"Dados inválidos: {field}" if field else "Dados inválidos"
        return JSONResponse(status_code=400, content={"message": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"message": "Erro interno do servidor"})

    app.include_router(auth.router)
    app.include_router(analyses.router)
    app.include_router(payments.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/")
    async def root():
        return {"message": "CVIntelligence API", "version": "1.0.0"}

    return app


app = create_app()
