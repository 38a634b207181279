from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment
    NODE_ENV: str = "development"

    # Base directory for the project
    BASE_DIR: Path = Path(__file__).parent.parent

    # Working directories (used in both environments)
    SOURCE_DIR: Path = BASE_DIR / "data" / "sources"
    OUTPUT_DIR: Path = BASE_DIR / "data" / "processed"
    HEALTH_DIR: Path = BASE_DIR / "data" / "health"
    SYNC_DIR: Path = BASE_DIR / "data" / "store"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # Parsing
    SOURCE_EXTENSION: str = ".pdf"
    OVERRIDES_PATH: Optional[Path] = None
    PARSE_TIMEOUT_SECONDS: float = 120.0
    MAX_PARSE_WORKERS: int = 4
    # Pages read to confirm the format generation from content; 0 trusts the file name alone
    FORMAT_SAMPLE_PAGES: int = 10

    # Health thresholds
    ALERT_CONTROL_NUMBER_COVERAGE: float = 85.0
    ALERT_DESCRIPTION_COVERAGE: float = 90.0
    ALERT_AVG_DESCRIPTION_LENGTH: float = 100.0
    ALERT_PARSE_TIME_MS: float = 30000.0
    ALERT_MISSING_PLAN_COURSES: int = 10

    # Sync
    SYNC_MAX_WORKERS: int = 8
    SYNC_MAX_RETRIES: int = 3
    SYNC_BACKOFF_SECONDS: float = 0.5
    SYNC_BATCH_SIZE: int = 100
    SYNC_PREFIX: str = "catalog/"

    # AWS Settings (only used in production)
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-2"
    AWS_BUCKET_NAME: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.ensure_directories()

    @property
    def is_production(self) -> bool:
        return self.NODE_ENV.lower() == "production"

    def ensure_directories(self):
        """Ensure all necessary directories exist"""
        for directory in (self.SOURCE_DIR, self.OUTPUT_DIR, self.HEALTH_DIR, self.SYNC_DIR, self.LOGS_DIR):
            directory.mkdir(parents=True, exist_ok=True)
