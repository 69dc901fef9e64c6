from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"  # Allow extra environment variables
    )

    # Application
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    ENABLE_STRUCTURED_LOGGING: bool = Field(default=True)
    API_PORT: int = Field(default=8000)

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./prestasync.db", description="Database connection string")

    # PrestaShop module
    PRESTASHOP_MODULE_PATH: str = Field(default="modules/prestasynch/api.php", description="Path of the PrestaSynch module API relative to the store URL")
    PRESTASHOP_TIMEOUT: float = Field(default=30.0, description="Timeout in seconds for a single store request")
    PRESTASHOP_VERIFY_TLS: bool = Field(default=False, description="Stores are often self-signed or staging hosts")
    PRESTASHOP_USER_AGENT: str = Field(default="PrestaSync-Dashboard/1.0")
    PRESTASHOP_SYNC_ATTRIBUTE_FEED: bool = Field(default=False, description="Also pull the products_with_attributes feed during a sync")
    ERROR_BODY_PREVIEW_LENGTH: int = Field(default=500, description="Max characters of a remote error body kept in errors and logs")

    # Reconciliation
    LOW_STOCK_THRESHOLD: int = Field(default=5, description="Quantities in (0, threshold] raise a low_stock alert")
    DEFAULT_MIN_QUANTITY: int = Field(default=5)
    SYNC_LOCK_TIMEOUT_SECONDS: int = Field(default=1800, description="A sync lock older than this is considered stale")

    # Redis/Celery
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/0")

    # Scheduling
    SYNC_SCHEDULE_MINUTES: int = Field(default=60)
    SCHEDULED_SYNC_RETRY_ATTEMPTS: int = Field(default=3)

@lru_cache()
def get_settings() -> Settings:
    return Settings()
