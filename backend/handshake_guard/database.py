"""Database engine and session factory"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from handshake_guard.config import Settings

Base = declarative_base()


def build_session_factory(settings: Settings) -> sessionmaker:
    """Create an engine for DATABASE_URL and return a bound session factory.

    SQLite URLs get ``check_same_thread=False`` since requests are served
    from a thread pool; pool sizing only applies to server databases.
    """
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            url,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
            pool_pre_ping=True,
        )

    # Register models on Base before creating tables
    from handshake_guard.models import SessionRecord  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
