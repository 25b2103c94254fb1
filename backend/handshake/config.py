"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from handshake.services.supabase import SupabaseConfig

logger = logging.getLogger(__name__)


class LedgerConfig(BaseModel):
    """Ledger bookkeeping options."""

    persist_pending_updates: bool = True


class SliderConfig(BaseModel):
    """Slide-to-confirm behaviour."""

    mode: Literal["hold", "auto_reset"] = "hold"
    travel: float = 110.0
    threshold: float = 0.9  # fraction of travel
    confirm_within: Optional[float] = None  # fixed distance variant
    reset_delay_seconds: float = 1.0

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("threshold must be in (0, 1]")
        return v


class ApiConfig(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_timeout_seconds: float = 30.0

    # Observability
    logfire_token: str = ""
    log_level: str = "INFO"
    environment: str = "development"

    # Nested configuration sections
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    slider: SliderConfig = Field(default_factory=SliderConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def supabase_config(self) -> SupabaseConfig:
        return SupabaseConfig(
            url=self.supabase_url,
            anon_key=self.supabase_anon_key,
            timeout_seconds=self.supabase_timeout_seconds,
        )

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["ledger", "slider", "api"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)

                    section_dict = section.model_dump()
                    section_dict.update(yaml_config[section_name] or {})

                    setattr(self, section_name, section.__class__(**section_dict))

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
