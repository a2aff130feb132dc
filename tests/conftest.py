import asyncio
import os

# The app module builds its engine at import time; keep it off Postgres.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from cvintelligence.api.deps import get_scorer, get_storage
from cvintelligence.core.config import settings
from cvintelligence.core.database import get_db, get_session_factory, init_db
from cvintelligence.main import create_app
from cvintelligence.schemas.analysis import AnalysisResult
from cvintelligence.services.auth import AuthService
from cvintelligence.services.scoring import CvScorer
from cvintelligence.services.storage import StorageService

SAMPLE_RESULT = {
    "score": 78,
    "overallFeedback": "Currículo sólido, com espaço para quantificar resultados.",
    "strengths": ["Experiência relevante", "Boa formatação"],
    "weaknesses": ["Poucos resultados mensuráveis"],
    "suggestions": [
        {"category": "Formato", "recommendation": "Use uma fonte única", "priority": "low"},
        {"category": "Conteúdo", "recommendation": "Quantifique conquistas", "priority": "high"},
        {"category": "Palavras-chave", "recommendation": "Inclua SQL", "priority": "medium"},
    ],
    "keywordOptimization": {"missing": ["SQL"], "present": ["Python"]},
    "formatFeedback": {"rating": 4, "comments": ["Layout limpo"]},
    "extractedData": {"name": "Ana Silva", "email": "ana@empresa.com.br", "phone": "11 99999-0000"},
    "comparativeFeedback": None,
}


class FakeScorer(CvScorer):
    def __init__(self):
        self.calls = []
        self.error = None
        self.delay = 0
        self.result = dict(SAMPLE_RESULT)

    async def score(self, document, context):
        self.calls.append((document, context))
        assert document.path.exists()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return AnalysisResult.model_validate(self.result)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def scorer():
    return FakeScorer()


@pytest.fixture
def storage(tmp_path):
    return StorageService(upload_dir=str(tmp_path / "uploads"))


@pytest.fixture
def app(session_factory, scorer, storage):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_scorer] = lambda: scorer
    app.dependency_overrides[get_storage] = lambda: storage
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


async def register(client, email="ana@empresa.com.br", password="secret1", first_name="Ana", last_name="Silva"):
    return await client.post("/api/register", json={
        "email": email,
        "password": password,
        "firstName": first_name,
        "lastName": last_name,
    })


async def fetch_user(session_factory, user_id):
    async with session_factory() as session:
        return await AuthService(session).get_user(user_id)


@pytest.fixture
async def user(client):
    response = await register(client)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
async def admin_client(app, session_factory):
    async with session_factory() as session:
        admin = await AuthService(session).ensure_admin_user()
        token = await AuthService(session).create_session(admin)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        c.cookies.set(settings.SESSION_COOKIE_NAME, token)
        yield c
