"""codetrace configuration — store location, fetch behaviour, search limits, logging."""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage
    database_url: str = "sqlite+aiosqlite:///codetrace.db"

    @model_validator(mode="after")
    def _normalize_database_url(self) -> "Settings":
        """Rewrite DATABASE_URL for the async SQLite driver.

        A plain ``sqlite:///path`` URL (what most tools print) is rewritten to
        ``sqlite+aiosqlite:///path`` so the async engine can open it.
        """
        url = self.database_url
        if url.startswith("sqlite://") and "+aiosqlite" not in url:
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        self.database_url = url
        return self

    # Document acquisition
    cache_dir: str = ".cache"
    request_timeout: float = 30.0
    politeness_delay_seconds: float = 0.3

    # Search
    search_default_limit: int = 5
    search_max_limit: int = 20
    story_search_limit: int = 8

    # MLflow: local SQLite tracking store unless MLFLOW_TRACKING_URI is set
    mlflow_tracking_uri: str = "sqlite:///mlruns/mlflow.db"
    mlflow_experiment_name: str = "codetrace"

    # Logging
    log_json: bool = False
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
