import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()


def _mask_url_password(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable url>"


def create_store_engine(database_url: str) -> Engine:
    """Build an engine for the SQL document store.

    PostgreSQL gets a pooled configuration; in-memory SQLite shares one
    connection so tables survive across sessions.
    """
    url = make_url(database_url)
    is_postgres = url.drivername.startswith("postgres")

    if is_postgres:
        engine = create_engine(
            database_url,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={"application_name": "agenda", "connect_timeout": 10},
        )
    elif url.drivername.startswith("sqlite") and url.database in (None, "", ":memory:"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif url.drivername.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(database_url)

    logger.info(
        "Store engine created",
        extra={
            "context": {
                "url": _mask_url_password(database_url),
                "dialect": engine.dialect.name,
            }
        },
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Return a sessionmaker bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine: Engine) -> None:
    """Create all tables (idempotent)."""
    # Import models so Base.metadata is populated
    from agenda.db import base  # noqa: F401

    Base.metadata.create_all(bind=engine)
