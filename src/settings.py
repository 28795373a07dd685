"""Runtime configuration for the tender learning loop.

Values come from environment variables, optionally overlaid by a YAML file.
"""
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

import click
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator


def _env(name: str, default: str, cast: Callable[[str], Any] = str) -> Any:
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"{name}={raw!r} is not a valid {cast.__name__}") from e


class Settings(BaseModel):
    """Recognized configuration options."""

    api_key: str = Field(default_factory=lambda: _env("ANTHROPIC_API_KEY", ""))
    model: str = Field(default_factory=lambda: _env("EXTRACTION_MODEL", "claude-sonnet-4-5"))
    website_url: str = Field(default_factory=lambda: _env("GOV_WEBSITE_URL", ""))
    pagination_pattern: str = Field(
        default_factory=lambda: _env("PAGINATION_PATTERN", "{base}?page={page}")
    )
    training_dir: Path = Field(
        default_factory=lambda: _env("TRAINING_DATA_DIR", "./training_data", Path)
    )
    storage_dir: Path = Field(
        default_factory=lambda: _env("PDF_STORAGE_DIR", "./storage/pdfs", Path)
    )
    confidence_threshold: float = Field(
        default_factory=lambda: _env("CONFIDENCE_THRESHOLD", "0.85", float), ge=0, le=1
    )
    batch_size: int = Field(default_factory=lambda: _env("BATCH_SIZE", "10", int), ge=1)
    request_delay_ms: int = Field(
        default_factory=lambda: _env("DELAY_BETWEEN_REQUESTS", "3000", int), ge=0
    )
    target_accuracy: float = Field(
        default_factory=lambda: _env("TARGET_ACCURACY", "95.0", float), ge=0, le=100
    )
    reextract_limit: int = Field(default_factory=lambda: _env("REEXTRACT_LIMIT", "10", int), ge=1)
    review_limit: int = Field(default_factory=lambda: _env("REVIEW_LIMIT", "5", int), ge=0)

    @field_validator("pagination_pattern")
    @classmethod
    def _pattern_has_page(cls, value: str) -> str:
        if "{page}" not in value:
            raise ValueError("pagination_pattern must contain a {page} placeholder")
        return value

    @property
    def request_delay(self) -> float:
        """Inter-request delay in seconds."""
        return self.request_delay_ms / 1000

    def page_url(self, page: int) -> str:
        return self.pagination_pattern.format(base=self.website_url, page=page)


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Build settings from the environment, overlaid by a YAML file if given.

    Raises:
        click.ClickException: On a malformed environment value or config file
    """
    try:
        overrides = {}
        if config_path is not None:
            with open(config_path) as f:
                overrides = yaml.safe_load(f) or {}
        return Settings(**overrides)
    except (TypeError, ValueError, ValidationError, yaml.YAMLError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
