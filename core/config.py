# core/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root: .../midijson
BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_DATASET_MAX_CHARS = 100 * 1024 * 4
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """
    midijson settings.

    Reads from:
    - environment variables
    - .env in project root

    Relative paths are resolved against the project root; the output dir is
    created on load; nonsense limits fall back to defaults.
    """

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ---- Environment / server ----
    app_env: str = Field(default="development", validation_alias="APP_ENV")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    # comma-separated; only used outside development
    cors_allow_origins: Optional[str] = Field(default=None, validation_alias="CORS_ALLOW_ORIGINS")

    # ---- Paths ----
    # Library of MIDI JSON documents (support alias MIDI_JSON_DIR)
    music_dir: Path = Field(
        default=Path("music"),
        validation_alias=AliasChoices("MUSIC_DIR", "MIDI_JSON_DIR"),
    )
    output_dir: Path = Field(default=Path("outputs"), validation_alias="OUTPUT_DIR")

    # ---- Dataset export ----
    # conversations longer than this (characters of JSON) are left out
    dataset_max_chars: int = Field(default=DEFAULT_DATASET_MAX_CHARS, validation_alias="DATASET_MAX_CHARS")
    # the song shown to the model in the system prompt (excluded from training)
    dataset_example_file: Optional[str] = Field(default=None, validation_alias="DATASET_EXAMPLE_FILE")

    def model_post_init(self, __context) -> None:
        # 1) Normalize paths to absolute, relative to BASE_DIR
        self.music_dir = self._abs_path(self.music_dir)
        self.output_dir = self._abs_path(self.output_dir)

        # 2) Ensure runtime directories exist
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # 3) Clamps
        if self.dataset_max_chars <= 0:
            self.dataset_max_chars = DEFAULT_DATASET_MAX_CHARS

        level = (self.log_level or "").strip().upper()
        self.log_level = level if level in _LOG_LEVELS else "INFO"

    @staticmethod
    def _abs_path(p: Path) -> Path:
        if p.is_absolute():
            return p
        return (BASE_DIR / p).resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


if __name__ == "__main__":
    # Quick self-check
    s = get_settings()
    print("Settings loaded")
    print(f"BASE_DIR: {BASE_DIR}")
    print(f"MUSIC_DIR: {s.music_dir} | exists={s.music_dir.exists()}")
    print(f"OUTPUT_DIR: {s.output_dir}")
    print(f"dataset_max_chars: {s.dataset_max_chars}")
    print(f"log_level: {s.log_level}")
