from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    asana_access_token: str = ""
    asana_base_url: str = "https://app.asana.com/api/1.0"
    request_timeout_seconds: float = 30.0
    database_url: str = "sqlite:///./asanadw.db"
    workspace_gid: Optional[str] = None  # auto-detected when the token sees one workspace
    default_lookback_days: int = 90
    incremental_task_threshold: int = 50
    rate_limit_backoff_seconds: List[float] = [60.0, 120.0, 240.0]
    rate_limit_max_retries: int = 3
    sync_hour: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
