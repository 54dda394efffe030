import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from examcore.core.config import settings

logger = logging.getLogger(__name__)


def _connect_args() -> dict:
    # Store calls must not block indefinitely; Postgres enforces this per statement.
    if settings.is_postgres() and settings.DATABASE_STATEMENT_TIMEOUT_MS > 0:
        return {"options": f"-c statement_timeout={settings.DATABASE_STATEMENT_TIMEOUT_MS}"}
    return {}


engine = create_engine(settings.DATABASE_URL, future=True, pool_pre_ping=True, connect_args=_connect_args())
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables if they don't exist. Production deployments use migrations instead."""
    from examcore.models.orm import Base

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")
