"""Worker settings.

The worker reads the same environment as the API (database, Redis, retry
policy, report cache) and adds the periodic schedule on top.
"""

from functools import lru_cache
from typing import Optional

from modtrail_api.settings import Settings as APISettings


class Settings(APISettings):
    """API settings plus the celery beat schedule."""

    # Periodic integrity check (celery beat)
    integrity_check_interval_seconds: int = 3600
    integrity_check_default_limit: Optional[int] = None

    # Smaller pool than the API; tasks run with prefetch 1
    worker_db_pool_size: int = 5
    worker_db_max_overflow: int = 10


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
