"""Database engine and session factory"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from dailycommit.config.settings import settings


Base = declarative_base()


def build_engine(url: str | None = None, **kwargs):
    """Create an engine for the aggregate store database."""
    database_url = url or settings.DATABASE_URL
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(database_url, echo=settings.DEBUG, **kwargs)


def build_session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(engine) -> None:
    """Create aggregate store tables if they do not exist."""
    # Import models so they register on Base.metadata
    from dailycommit.models import badge_ledger, streak_snapshot  # noqa: F401

    Base.metadata.create_all(bind=engine)
