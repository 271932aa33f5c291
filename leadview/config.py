from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path

class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DIR: str = "logs"
    ENABLE_FILE_LOGGING: bool = True
    ENABLE_CONSOLE_LOGGING: bool = True
    MAX_LOG_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    MAX_LOG_FILE_COUNT: int = 5

    def log_file(self, name: str) -> Optional[str]:
        """Path of the rotating log file for a named logger"""
        if not self.ENABLE_FILE_LOGGING:
            return None
        return str(Path(self.LOG_DIR) / f"{name}.log")

class QuerySettings(BaseSettings):
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 500
    SEARCH_FIELDS: List[str] = [
        "full_name",
        "first_name",
        "last_name",
        "email",
        "company",
        "job_title",
        "industry",
        "campaign_name",
    ]
    DEFAULT_SORT_FIELD: Optional[str] = "last_activity"

class SnapshotSettings(BaseSettings):
    DATA_DIR: str = "data"
    SNAPSHOT_TTL_SECONDS: int = 300
    SUPPORTED_FORMATS: List[str] = [".csv", ".json", ".jsonl"]

class SyncSettings(BaseSettings):
    BISON_API_BASE: str = "https://send.rillationrevenue.com/api"
    PER_PAGE: int = 200
    SUPABASE_BATCH_SIZE: int = 500
    INSERT_CHUNK_SIZE: int = 100
    API_DELAY_MS: int = 100
    CAMPAIGN_DELAY_MS: int = 50
    MAX_RETRIES: int = 3
    RETRY_DELAY_MS: int = 2000
    REQUEST_TIMEOUT: float = 30.0

    SUPABASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    SUPABASE_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_SERVICE_ROLE_KEY",
            "SUPABASE_ANON_KEY",
            "VITE_SUPABASE_ANON_KEY",
        ),
    )

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("PER_PAGE")
    @classmethod
    def _cap_page_size(cls, value: int) -> int:
        if not 1 <= value <= 200:
            raise ValueError("PER_PAGE must be between 1 and 200")
        return value

    @field_validator("MAX_RETRIES")
    @classmethod
    def _at_least_one_retry(cls, value: int) -> int:
        if value < 2:
            raise ValueError("MAX_RETRIES must allow at least one retry")
        return value

class Settings(BaseSettings):
    # Base settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Leadview API"
    DEBUG: bool = False

    # CORS settings
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Sub-configurations
    logging: LoggingSettings = LoggingSettings()
    query: QuerySettings = QuerySettings()
    snapshot: SnapshotSettings = SnapshotSettings()
    sync: SyncSettings = SyncSettings()

    class Config:
        env_file = ".env"
        extra = "allow"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._create_directories()

    def _create_directories(self):
        """Create necessary directories"""
        if self.logging.ENABLE_FILE_LOGGING:
            Path(self.logging.LOG_DIR).mkdir(parents=True, exist_ok=True)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.DEBUG

# Initialize settings
settings = Settings()
