from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'saral_user'
    POSTGRES_PASSWORD: str = 'saral_pass'
    POSTGRES_DB: str = 'saral_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # Full URL override (tests use a SQLite file)
    DATABASE_URL: Optional[str] = None
    
    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Celery
    CELERY_TASK_ALWAYS_EAGER: bool = False
    
    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Document numbering
    INVOICE_NUMBER_PREFIX: str = 'INV'
    EMPLOYEE_NUMBER_PREFIX: str = 'EMP'
    SEQUENCE_PAD_WIDTH: int = 4

    # Invoicing
    DEFAULT_CURRENCY: str = 'INR'
    LOW_STOCK_THRESHOLD: int = 5

    # Policy switches
    PAYMENT_STATUS_REGRESSION: bool = False  # Paid -> Partial/Unpaid after refunds
    INVOICE_OPTIMISTIC_LOCKING: bool = False  # False = last write wins
    
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )
    
    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )
    
    @field_validator(
        "DEBUG",
        "CELERY_TASK_ALWAYS_EAGER",
        "PAYMENT_STATUS_REGRESSION",
        "INVOICE_OPTIMISTIC_LOCKING",
        mode="before"
    )
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
