# app/core/database.py
"""Database engine factory, declarative base and the shared execution gateway."""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from app.core.config import DATABASE_URL, PoolSettings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str = DATABASE_URL, settings: Optional[PoolSettings] = None) -> Engine:
    """Create an engine with an explicit, bounded QueuePool.

    ``max_overflow`` defaults to 0 so ``pool_size`` is a hard ceiling and waiting
    longer than ``pool_timeout`` surfaces as pool exhaustion.
    """
    settings = settings or PoolSettings.from_env()
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


def create_all_tables(engine: Engine) -> None:
    """Create every table. Models are imported here so they register with ``Base``."""
    from app.property import models  # noqa: F401
    from app.reporting.models import ReportExecutionLog  # noqa: F401

    Base.metadata.create_all(bind=engine)


def init_db(engine: Engine) -> None:
    """Create the schema, then switch on tenant isolation for the tenant tables."""
    from app.tenancy.row_security import install_row_level_security

    create_all_tables(engine)
    install_row_level_security(engine)
    logger.info(f"Database initialised at {engine.url.render_as_string(hide_password=True)}")


def session_factory(engine: Engine) -> sessionmaker:
    """Plain ORM sessions on an owner connection, used for seeding and administration."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


_gateway = None


def get_gateway():
    """Process wide ExecutionGateway, created and initialised on first use."""
    global _gateway
    if _gateway is None:
        from app.query.gateway import ExecutionGateway

        settings = PoolSettings.from_env()
        engine = build_engine(DATABASE_URL, settings)
        init_db(engine)
        _gateway = ExecutionGateway(engine, settings)
    return _gateway
