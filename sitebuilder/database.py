# sitebuilder/database.py
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from sitebuilder.core.config import get_settings

settings = get_settings()

# ---------------------------------------------------------
# Main relational store
#
# - SQLite (tests / local dev): a single shared in-process connection
#   so every request thread sees the same in-memory database.
# - Anything else (MySQL in production): a regular pool with
#   pre-ping so stale connections are recycled after broker/DB restarts.
# ---------------------------------------------------------

db_url = settings.DATABASE_URL

if db_url.startswith("sqlite"):
    engine = create_engine(
        db_url,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        db_url,
        echo=False,        # set to True if you want to debug SQL queries
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


def create_db_and_tables() -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    Anything not committed by the service when the request ends
    (errors, client disconnects) is rolled back on close.
    """
    with Session(engine) as session:
        yield session
