import re
import time
from importlib import import_module
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import requests_mock
from jose import jwt


@pytest.fixture(scope="function")
def db_engine(tmp_path: Path):
    """Provide a temporary SQLite engine with all tables created.

    Notes:
    - We patch `theme_api.core.database.engine` in-place so `get_session`,
      `session_scope` and the readiness probe all pick up the new engine.
    - A fresh file-backed SQLite DB is created per test.
    """
    from sqlmodel import create_engine
    db_path = tmp_path / "test.db"
    engine_url = f"sqlite:///{db_path.as_posix()}"

    db = import_module("theme_api.core.database")
    old_engine = getattr(db, "engine")
    new_engine = create_engine(engine_url, echo=False, connect_args={"check_same_thread": False})
    setattr(db, "engine", new_engine)
    db.create_db_and_tables()

    try:
        yield new_engine
    finally:
        setattr(db, "engine", old_engine)
        new_engine.dispose()


@pytest.fixture(scope="function")
def app(db_engine):
    """FastAPI app instance wired to the temporary DB engine.

    Example:
        def test_health_ok(client):
            r = client.get("/api/health")
            assert r.status_code == 200
    """
    main = import_module("theme_api.main")
    return getattr(main, "app")


@pytest.fixture(scope="function")
def session(db_engine):
    """Database session bound to the temporary test engine."""
    from sqlmodel import Session as SQLSession
    with SQLSession(db_engine) as s:
        yield s


@pytest.fixture(scope="function")
def client(app):
    """Synchronous FastAPI TestClient (runs startup/shutdown hooks)."""
    from fastapi.testclient import TestClient
    with TestClient(app) as tc:
        yield tc


@pytest.fixture
def make_token():
    """Build a signed auth-provider JWT for a user id (random when omitted)."""
    from theme_api.core.config import settings

    def _make(user_id: UUID | None = None, email: str = "user@example.com", expires_in: int = 3600) -> str:
        claims = {
            "sub": str(user_id or uuid4()),
            "email": email,
            "aud": settings.JWT_AUDIENCE,
            "exp": int(time.time()) + expires_in,
        }
        return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    return _make


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def auth_headers(make_token, user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture(scope="function")
def requests_mocker(request):
    """requests-mock Mocker for HTTP stubbing.

    - If the autouse no_real_http mocker is active, yield it to avoid nested mockers.
    - Otherwise, create a temporary one for this fixture's scope.
    """
    existing = getattr(request.node, "_requests_mocker", None)
    if existing is not None:
        yield existing
        return
    with requests_mock.Mocker() as m:
        yield m


# --- Network controls --------------------------------------------------------
LOCAL_PATTERNS = (
    re.compile(r"^http://(localhost|127\.0\.0\.1)"),
    re.compile(r"^https://(localhost|127\.0\.0\.1)"),
)


@pytest.fixture(autouse=True)
def no_real_http(request):
    """Block all real HTTP made through `requests`; external calls must be stubbed."""
    with requests_mock.Mocker(real_http=False) as m:
        for pat in LOCAL_PATTERNS:
            m.register_uri(requests_mock.ANY, pat, real_http=True)
        setattr(request.node, "_requests_mocker", m)
        yield m


@pytest.fixture
def make_theme(session):
    """Insert a theme (plus optional trend samples / competitors) and return it."""
    from theme_api.models.theme import CompetitorAnalysis, Theme, TrendData

    def _make(trend=(), competitors=(), **overrides):
        fields = {
            "title": "AI家計簿アプリ",
            "description": "レシート撮影で自動仕訳する家計簿",
            "category": "fintech",
            "market_size": 2_500_000,
            "competition_level": "medium",
            "technical_difficulty": "intermediate",
            "estimated_revenue_min": 50_000,
            "estimated_revenue_max": 150_000,
            "monetization_score": 60,
            "data_sources": ["google_trends", "reddit"],
        }
        fields.update(overrides)
        theme = Theme(**fields)
        session.add(theme)
        session.commit()
        session.refresh(theme)
        for sample in trend:
            session.add(TrendData(theme_id=theme.id, **sample))
        for comp in competitors:
            session.add(CompetitorAnalysis(theme_id=theme.id, **comp))
        session.commit()
        session.refresh(theme)
        return theme

    return _make
