from contextlib import contextmanager
from typing import Iterator

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.engine import make_url
import logging
import os
from pathlib import Path

# Ensure models are imported so SQLModel metadata is populated
from ..models import user as _user_models  # noqa: F401
from ..models import theme as _theme_models  # noqa: F401
from ..models import subscription as _subscription_models  # noqa: F401
from ..models import score_history as _score_history_models  # noqa: F401
from ..models import processing as _processing_models  # noqa: F401
from ..models import usage as _usage_models  # noqa: F401
from .config import settings

log = logging.getLogger(__name__)


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        log.warning("[db] Invalid integer for %s=%s; using default %s", name, value, default)
        return default


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


_DATABASE_URL = (settings.DATABASE_URL or "").strip()
_LOCAL_SQLITE_PATH = Path(__file__).parent.parent.parent / "local_dev.db"

_POOL_KWARGS = {
    "pool_pre_ping": _is_truthy(os.getenv("DB_POOL_PRE_PING", "true")),
    "pool_size": _int_from_env("DB_POOL_SIZE", 10),
    "max_overflow": _int_from_env("DB_MAX_OVERFLOW", 10),
    "pool_recycle": _int_from_env("DB_POOL_RECYCLE", 1800),
    "pool_timeout": _int_from_env("DB_POOL_TIMEOUT", 30),
    "pool_reset_on_return": "rollback",
}


def _create_engine():
    """Create the database engine from DATABASE_URL (SQLite fallback in dev only)."""
    url = _DATABASE_URL
    if not url:
        if not settings.is_dev_mode:
            log.error("[db] DATABASE_URL missing outside dev; database operations will fail until configured")
        url = f"sqlite:///{_LOCAL_SQLITE_PATH.as_posix()}"
        log.info("[db] DATABASE_URL not set; using local SQLite at %s", _LOCAL_SQLITE_PATH)

    try:
        parsed = make_url(url)
    except Exception as e:
        log.error("[db] Invalid DATABASE_URL format: %s", e)
        raise RuntimeError(f"Invalid DATABASE_URL format: {e}") from e

    backend_name = parsed.get_backend_name()
    if backend_name == "sqlite":
        log.info("[db] Using SQLite engine (database=%s)", parsed.database)
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})

    log.info(
        "[db] Using %s engine (driver=%s, host=%s, port=%s, database=%s)",
        backend_name,
        parsed.drivername,
        parsed.host or "unknown",
        parsed.port or "default",
        parsed.database or "unknown",
    )
    return create_engine(url, **_POOL_KWARGS)


engine = _create_engine()


def create_db_and_tables():
    """Create all tables from SQLModel metadata (idempotent)."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Provide a database session for FastAPI dependency injection.

    expire_on_commit=False keeps attributes readable after commit when the row
    is serialized into the response.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
    except Exception:
        try:
            session.rollback()
        except Exception as rollback_exc:
            log.warning("[db] Rollback failed in get_session cleanup: %s", rollback_exc)
        raise
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a context manager for DB sessions outside FastAPI dependencies.

    Callers commit explicitly; any exception rolls the transaction back.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
    except Exception:
        try:
            session.rollback()
        except Exception as rollback_exc:
            log.warning("[db] Rollback failed in session_scope cleanup: %s", rollback_exc)
        raise
    finally:
        session.close()
