"""
Database Connection Management

Blocking SQLAlchemy engines for the target warehouse and the operational
SQLite store. Connectivity is verified on creation so that an unreachable
store aborts the run before any table is touched.
"""

from typing import Optional

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url

from sportstv_analytics.config import Settings, get_settings

logger = structlog.get_logger(__name__)


def _verify_connection(engine: Engine, role: str) -> None:
    """Run a trivial query; log and re-raise on failure"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info(
            "Database connection established",
            role=role,
            url=engine.url.render_as_string(hide_password=True),
        )
    except Exception as e:
        logger.error("Failed to connect to database", role=role, error=str(e))
        engine.dispose()
        raise


def create_target_engine(settings: Optional[Settings] = None) -> Engine:
    """
    Create the engine for the analytics warehouse.

    Returns:
        Engine: A verified engine

    Raises:
        sqlalchemy.exc.OperationalError: If the warehouse is unreachable
    """
    settings = settings or get_settings()
    url = settings.database.get_url()

    engine_config = {
        "echo": settings.database.echo,
        "future": True,
    }
    # Pool pre-ping only makes sense for networked servers
    if make_url(url).get_backend_name() != "sqlite":
        engine_config["pool_pre_ping"] = True

    engine = create_engine(url, **engine_config)
    _verify_connection(engine, role="target")
    return engine


def create_source_engine(settings: Optional[Settings] = None) -> Engine:
    """
    Create the engine for the operational SQLite store.

    The store holds both the reference tables and streaming_txns.
    """
    settings = settings or get_settings()
    engine = create_engine(settings.sources.sqlite_url, echo=settings.database.echo, future=True)
    _verify_connection(engine, role="source")
    return engine


def close_engines(*engines: Engine) -> None:
    """Dispose all given engines"""
    for engine in engines:
        if engine is not None:
            engine.dispose()
    logger.info("Database connections closed", count=len(engines))
