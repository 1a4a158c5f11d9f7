"""Database session for worker."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from modtrail_worker.settings import get_settings

settings = get_settings()

engine = create_engine(
    settings.database_url_computed,
    pool_pre_ping=True,
    pool_size=settings.worker_db_pool_size,
    max_overflow=settings.worker_db_max_overflow,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
