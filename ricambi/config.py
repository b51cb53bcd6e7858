# ricambi/config.py
import os
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === General ===
    app_env: str = "local"  # local | development | production

    # === Catalog ===
    catalog_path: Optional[str] = Field(
        None, description="YAML catalog used to seed the in-memory repositories"
    )

    # === Logging ===
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_rotation: str = "1 day"
    log_retention: str = "30 days"
    log_to_file: bool = True

    # === Credit (fido) ===
    fido_warning_threshold_pct: Decimal = Decimal("80")
    fido_block_threshold_pct: Decimal = Decimal("100")

    # === Pricing guards ===
    sottocosto_threshold_pct: Decimal = Decimal("5")
    max_operator_discount_pct: Decimal = Decimal("20")

    # === Sessions ===
    session_timeout_minutes: int = 480

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple env overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
    elif env == "development":
        s.log_level = "DEBUG"

    return s
