# academy_ledger/core/config.py - Centralized settings management using Pydantic
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import List, Optional, Literal


class Settings(BaseSettings):
    """Application settings with validation and type safety"""

    # Application Environment
    ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    DEBUG: bool = Field(default=False, description="Debug mode")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="API port")
    API_TITLE: str = Field(default="Academy Ledger API", description="API title")
    API_VERSION: str = Field(default="1.0.0", description="API version")

    # Database Configuration
    DATABASE_URL: str = Field(default="sqlite:///./academy_ledger.db", description="Database connection URL")
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL queries")
    DATABASE_POOL_SIZE: int = Field(default=5, ge=1, le=100, description="Connection pool size")
    DATABASE_MAX_OVERFLOW: int = Field(default=10, ge=0, le=100, description="Max overflow connections")
    DATABASE_POOL_TIMEOUT: int = Field(default=30, ge=1, le=300, description="Pool timeout in seconds")
    DATABASE_POOL_RECYCLE: int = Field(default=3600, ge=300, description="Pool recycle time in seconds")

    # CORS Configuration
    CORS_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",  # Vite dev server
            "http://127.0.0.1:5173"
        ],
        description="CORS allowed origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True, description="Allow CORS credentials")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="detailed", description="Log format: simple, detailed")
    LOG_FILE_PATH: Optional[str] = Field(default=None, description="Log file path")
    LOG_MAX_SIZE: int = Field(default=10485760, description="Max log file size in bytes (10MB)")
    LOG_BACKUP_COUNT: int = Field(default=5, description="Number of log backup files")

    # Penalty policy seed (overridden by persisted system settings)
    PENALTY_ENABLED: bool = Field(default=True, description="Charge late payment penalties")
    PENALTY_STEP1_DAY: int = Field(default=10, ge=1, le=365, description="Days after due date for the first penalty")
    PENALTY_STEP1_PERCENT: float = Field(default=10.0, ge=0, le=100, description="First penalty percentage")
    PENALTY_STEP2_DAY: int = Field(default=20, ge=1, le=365, description="Days after due date for the second penalty")
    PENALTY_STEP2_PERCENT: float = Field(default=10.0, ge=0, le=100, description="Additional second penalty percentage")
    PENALTY_BASE: Literal["remaining", "original"] = Field(
        default="remaining",
        description="Charge penalties on the base still unpaid at each tier, or on the original billed base"
    )

    # Institution billing seed
    PAYMENT_DUE_DAY: int = Field(default=10, ge=1, le=31, description="Day of month monthly fees fall due")
    PLAN_START_POLICY: Literal["registration_month", "next_month"] = Field(
        default="registration_month",
        description="First billable month of a generated plan"
    )
    SELECTED_MONTHS_SHORTFALL: Literal["partial", "reject"] = Field(
        default="partial",
        description="What to do when a selected-months payment cannot cover every selected row"
    )
    RECEIPT_PREFIX: str = Field(default="REC", min_length=1, max_length=8, description="Receipt number prefix")
    CURRENCY: str = Field(default="MZN", min_length=3, max_length=3, description="ISO currency code")

    # Development Settings
    DEV_SHOW_DOCS: bool = Field(default=True, description="Show API docs in development")
    DEV_LOG_SQL: bool = Field(default=False, description="Log SQL queries in development")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables

    @validator("ENV")
    def validate_environment(cls, v):
        allowed_envs = ["dev", "development", "staging", "prod", "production"]
        if v.lower() not in allowed_envs:
            raise ValueError(f"ENV must be one of: {allowed_envs}")
        return v.lower()

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        # Accept postgresql, postgresql+psycopg2 (legacy), postgresql+psycopg (psycopg3), sqlite
        allowed_prefixes = (
            "postgresql://",
            "postgresql+psycopg2://",
            "postgresql+psycopg://",
            "sqlite:///",
        )
        if not v.startswith(allowed_prefixes):
            raise ValueError("DATABASE_URL must be a valid database connection string (postgresql, postgresql+psycopg, postgresql+psycopg2, or sqlite)")
        return v

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed_levels}")
        return v.upper()

    @validator("PENALTY_STEP2_DAY")
    def validate_penalty_steps(cls, v, values):
        step1 = values.get("PENALTY_STEP1_DAY")
        if step1 is not None and v <= step1:
            raise ValueError("PENALTY_STEP2_DAY must be greater than PENALTY_STEP1_DAY")
        return v

    @validator("RECEIPT_PREFIX", "CURRENCY")
    def normalize_codes(cls, v):
        return v.strip().upper()

    @validator("CORS_ORIGINS", pre=True)
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle comma-separated string
            if v.strip():
                return [origin.strip() for origin in v.split(",") if origin.strip()]
            return [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:5173",
                "http://127.0.0.1:5173"
            ]
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.ENV in ["dev", "development"]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.ENV in ["prod", "production"]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    def get_cors_config(self) -> dict:
        """Get CORS configuration for FastAPI"""
        return {
            "allow_origins": self.CORS_ORIGINS,
            "allow_credentials": self.CORS_ALLOW_CREDENTIALS,
            "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["*"],
        }


# Create settings instance with validation
try:
    settings = Settings()
except Exception as e:
    print(f"Configuration error: {e}")
    print("Please check your .env file and environment variables")
    raise


def validate_critical_settings():
    """Validate critical settings that must be present"""
    critical_errors = []

    if not settings.DATABASE_URL:
        critical_errors.append("DATABASE_URL is required")

    if settings.is_production and settings.is_sqlite:
        critical_errors.append("SQLite is not supported in production, configure a PostgreSQL DATABASE_URL")

    if critical_errors:
        error_msg = "Critical configuration errors:\n" + "\n".join(f"  - {error}" for error in critical_errors)
        raise ValueError(error_msg)


# Validate on import
validate_critical_settings()

# Export settings
__all__ = ["settings", "Settings"]
