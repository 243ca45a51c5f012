"""ADFLOW — Database Engine & Session Factory.

SQLite for local development, PostgreSQL in production. The partial unique
index on automation records is declared for both dialects.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, Session, create_engine

from adflow.config import settings
from adflow.core.logging import get_logger

logger = get_logger("database")


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request handlers run in a threadpool; share the connection across threads.
        return {"echo": False, "connect_args": {"check_same_thread": False}}
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
    }


def build_engine(url: str) -> Engine:
    """Create an engine for ``url`` and log where it points (password hidden)."""
    safe_url = make_url(url).render_as_string(hide_password=True)
    backend = "SQLite" if url.startswith("sqlite") else "PostgreSQL"
    logger.info(f"📦 Database backend: {backend} ({safe_url})")
    return create_engine(url, **_engine_options(url))


engine = build_engine(settings.effective_database_url)


def test_connection() -> bool:
    """Run SELECT 1; report instead of raising so startup can log and continue."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Database reachable")
        return True
    except Exception as e:
        logger.error(f"❌ Database unreachable: {e}")
        return False


def init_db() -> None:
    """Create every table, including the automation indexes."""
    # Table models must be imported so they register on the metadata.
    from adflow.models import tenant_models, resource_models, campaign_models, automation_models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info(f"✅ Tables ready: {', '.join(sorted(SQLModel.metadata.tables))}")


def get_session():
    """Dependency — yields a DB session."""
    with Session(engine) as session:
        yield session
