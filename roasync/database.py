"""ROASYNC — Database Engine & Session Factory.

SQLite locally and on serverless hosts, PostgreSQL when ``DATABASE_URL``
points at one. Background syncs open their own sessions via ``new_session``.
"""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine

from roasync.config import settings
from roasync.core.logging import get_logger

# Register tables on SQLModel.metadata
from roasync.models import db_models  # noqa: F401

logger = get_logger("database")

db_url = settings.effective_database_url
IS_SQLITE = db_url.startswith("sqlite")


def _engine_kwargs(is_sqlite: bool) -> dict:
    if is_sqlite:
        # background tasks touch the connection from other threads
        return {"echo": False, "connect_args": {"check_same_thread": False}}
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
    }


engine = create_engine(db_url, **_engine_kwargs(IS_SQLITE))
logger.info(
    f"Database engine ready ({'sqlite' if IS_SQLITE else 'postgresql'}): "
    f"{make_url(db_url).render_as_string(hide_password=True)}"
)


def check_connection() -> bool:
    """SELECT 1 against the engine; False when the database is unreachable."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database connection check failed: {e}")
        return False
    return True


def init_db() -> None:
    SQLModel.metadata.create_all(engine)
    logger.info(f"Tables ready: {', '.join(sorted(SQLModel.metadata.tables))}")


def new_session() -> Session:
    """Standalone session for work that outlives a request (background syncs)."""
    return Session(engine)


def get_session():
    """Dependency, yields a request-scoped session."""
    with Session(engine) as session:
        yield session
