"""Environment-driven settings."""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./tradebook.db"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    database_echo: bool = False
    transactions_table: str = "transactions"
    import_batch_size: int = 500
    import_max_upload_bytes: int = 200 * 1024 * 1024
    import_job_ttl_seconds: int = 3600
    query_page_size: int = 250
    cors_allow_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def _as_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_settings() -> Settings:
    """Load runtime settings from environment variables."""
    load_dotenv()

    origins = os.getenv("CORS_ALLOW_ORIGINS") or "*"
    return Settings(
        database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        database_echo=_as_bool(os.getenv("DATABASE_ECHO"), False),
        transactions_table=os.getenv("TRANSACTIONS_TABLE") or "transactions",
        import_batch_size=max(1, _as_int(os.getenv("IMPORT_BATCH_SIZE"), 500)),
        import_max_upload_bytes=_as_int(
            os.getenv("IMPORT_MAX_UPLOAD_BYTES"), 200 * 1024 * 1024
        ),
        import_job_ttl_seconds=_as_int(os.getenv("IMPORT_JOB_TTL_SECONDS"), 3600),
        query_page_size=_as_int(os.getenv("QUERY_PAGE_SIZE"), 250),
        cors_allow_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
