import logging
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log_format = logging.Formatter("%(asctime)s : %(levelname)s - %(message)s")

# root logger
root_logger = logging.getLogger()
root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

# standard stream handler
stream_handler = logging.StreamHandler()
stream_handler.setFormatter(log_format)
root_logger.addHandler(stream_handler)

logger = logging.getLogger(__name__)

# Load .env file if one is present; deployments inject the variables directly
env_path = Path(os.getenv("ENV_FILE", ".env"))
if env_path.exists():
    load_dotenv(dotenv_path=env_path)
    logger.info(f"Loaded environment from {env_path}")
else:
    logger.debug(f"No .env file at {env_path}, using process environment")

DEFAULT_PLAN_CATALOG_PATH = Path(__file__).parent / "plans.yaml"


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "storycraft-billing"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database Configuration
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./storycraft.db",
        description="SQLAlchemy async database URL",
    )
    DB_CREATE_TABLES: bool = Field(
        default=True,
        description="Create missing tables on startup",
    )

    # Supabase Configuration (bearer token -> user id)
    SUPABASE_URL: Optional[str] = Field(default=None, description="Supabase project URL")
    SUPABASE_KEY: Optional[str] = Field(default=None, description="Supabase anon/public key")

    # Payment gateway (Stripe Checkout)
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None, description="Stripe secret API key")
    STRIPE_CURRENCY: str = "cny"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Billing behaviour
    ORDER_HOLD_MINUTES: int = 30
    RENEWAL_POLICY: str = "replace"
    SIMULATED_PAYMENTS_ENABLED: Optional[bool] = None
    PAYMENT_CALLBACK_SECRET: Optional[str] = None
    PLAN_CATALOG_PATH: Path = DEFAULT_PLAN_CATALOG_PATH

    # Server Configuration
    SERVER_PORT: int = 8001
    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, list[str]]) -> list[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, list):
            return v
        elif isinstance(v, str):
            return [v]
        raise ValueError(v)

    @field_validator("RENEWAL_POLICY")
    @classmethod
    def check_renewal_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"replace", "stack"}:
            raise ValueError(f"RENEWAL_POLICY must be 'replace' or 'stack', got {v!r}")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in {"prod", "production"}

    @property
    def simulated_payments_enabled(self) -> bool:
        """Simulated confirmations default to on everywhere except production."""
        if self.SIMULATED_PAYMENTS_ENABLED is None:
            return not self.is_production
        return self.SIMULATED_PAYMENTS_ENABLED

    model_config = SettingsConfigDict(extra="ignore")


settings = Settings()

if settings.is_production and not settings.STRIPE_SECRET_KEY:
    logger.warning("STRIPE_SECRET_KEY is not set; gateway checkout will be unavailable")
if settings.is_production and not settings.PAYMENT_CALLBACK_SECRET:
    logger.warning("PAYMENT_CALLBACK_SECRET is not set; payment callbacks will be refused")
