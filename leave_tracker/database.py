import logging
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from leave_tracker.core.config import settings
from leave_tracker.core.exceptions import StoreUnavailable

_logger = logging.getLogger(__name__)

Base = declarative_base()

def build_engine(database_url: str, timeout: float = settings.store_timeout_seconds) -> Engine:
    """
    Create an engine whose connect and lock waits are bounded by `timeout` seconds,
    so a slow or unreachable store fails instead of hanging the caller.
    """
    if database_url.startswith("postgresql"):
        return create_engine(
            database_url,
            pool_pre_ping=True,
            pool_timeout=timeout,
            connect_args={"connect_timeout": max(1, int(timeout))},
        )
    # SQLite configuration for local development/testing
    kwargs = {"connect_args": {"check_same_thread": False, "timeout": timeout}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases live inside a single connection
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)

engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db(bind: Engine = engine):
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from leave_tracker.models import user, leave_request, audit_log  # noqa: F401
    Base.metadata.create_all(bind=bind)

@contextmanager
def session_scope(session_factory: sessionmaker, operation: str) -> Iterator[Session]:
    """
    Transactional scope for one store interaction.
    Driver and connection failures surface as StoreUnavailable; domain errors pass through untouched.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        _logger.error(f"Store operation '{operation}' failed: {e}", extra={"operation": operation})
        raise StoreUnavailable(f"Store operation '{operation}' failed, please retry", operation=operation) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
