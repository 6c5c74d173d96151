# ─────────────────────────────────────────────────────────────────
# config.py - Settings
#
# Every value can be overridden with an environment variable of the
# same name (case-insensitive) or a line in a local .env file.
#   DEVICES_CSV=/srv/devices.csv LOG_LEVEL=DEBUG python main.py
# ─────────────────────────────────────────────────────────────────

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_TITLE: str = "Edge Device Stats API"
    APP_VERSION: str = "1.0.0"

    # Seed list of devices, one id per row after a header row
    DEVICES_CSV: Path = Path("etc/devices.csv")

    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 8080


def get_settings() -> Settings:
    return Settings()
