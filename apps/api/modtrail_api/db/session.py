"""Database session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from modtrail_api.settings import get_settings

settings = get_settings()

engine = create_engine(
    settings.database_url_computed,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create all tables - for development and tests only."""
    import modtrail_api.models  # noqa: F401
    from modtrail_api.db.base import Base

    Base.metadata.create_all(bind=engine)
