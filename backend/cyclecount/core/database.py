"""
Database Connection and Session Management
Local SQLite store backing the record tables
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
import logging

from cyclecount.core.config import settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def build_engine(database_url: str = None, echo: bool = None) -> Engine:
    """
    Create a SQLAlchemy engine for the local store

    SQLite connections are shared with the host's worker threads, so the
    same-thread check is disabled for sqlite URLs.
    """
    url = database_url or settings.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    new_engine = create_engine(
        url,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.DEBUG if echo is None else echo,
    )

    @event.listens_for(new_engine, "connect")
    def receive_connect(dbapi_conn, connection_record):
        """Log database connections"""
        logger.debug("Database connection established")

    return new_engine


def session_factory(bind: Engine) -> sessionmaker:
    """Session factory for the record store; one short-lived session per call"""
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


def init_db(bind: Engine = None) -> Engine:
    """Initialize database tables"""
    # Register models on Base.metadata before create_all
    import cyclecount.models  # noqa: F401

    bind = bind or build_engine()
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables initialized")
    return bind
