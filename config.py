import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class ConfigurationError(RuntimeError):
    pass


class Settings:
    def __init__(
        self,
        database_url: str,
        database_name: str,
        api_url: str,
        poll_interval_secs: float,
        stats_month: Optional[str],
        http_timeout_secs: float,
        export_dir: Path,
        default_account_id: str,
        port: int,
    ) -> None:
        self.database_url = database_url
        self.database_name = database_name
        self.api_url = api_url
        self.poll_interval_secs = poll_interval_secs
        self.stats_month = stats_month
        self.http_timeout_secs = http_timeout_secs
        self.export_dir = export_dir
        self.default_account_id = default_account_id
        self.port = port


def _data_dir() -> Path:
    return Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_name = os.getenv("FINANCE_DB_NAME", "finance_db")
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _data_dir() / f"{database_name}.db"
        database_url = f"sqlite:///{default_db}"
    api_url = os.getenv("FINANCE_API_URL", "http://localhost:4000/api/finance")
    poll_interval_secs = float(os.getenv("FINANCE_POLL_INTERVAL_SECS", "15"))
    stats_month = os.getenv("FINANCE_STATS_MONTH") or None
    http_timeout_secs = float(os.getenv("FINANCE_HTTP_TIMEOUT_SECS", "10"))
    export_dir = Path(os.getenv("FINANCE_EXPORT_DIR", "./exports"))
    default_account_id = os.getenv("FINANCE_DEFAULT_ACCOUNT_ID", "acc1")
    port = int(os.getenv("PORT", "4000"))
    return Settings(
        database_url=database_url,
        database_name=database_name,
        api_url=api_url.rstrip("/"),
        poll_interval_secs=poll_interval_secs,
        stats_month=stats_month,
        http_timeout_secs=http_timeout_secs,
        export_dir=export_dir,
        default_account_id=default_account_id,
        port=port,
    )


def require_database_url() -> str:
    """Connection string for the offline utilities, which never fall back to a default."""
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        raise ConfigurationError(
            "FINANCE_DATABASE_URL is not set; export it before seeding or testing the connection"
        )
    return database_url
