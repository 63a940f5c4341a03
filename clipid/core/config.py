"""Configuration management using Pydantic and YAML."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from clipid.core.constants import (
    DEFAULT_MATCH_COEFS,
    DEFAULT_TOLERANCE,
    HOP_SIZE,
    N_COEFS,
    N_FILTERS,
    WINDOW_SIZE,
)


class DatabaseConfig(BaseModel):
    """Storage configuration."""

    path: str = ":memory:"
    snapshot_path: Path | None = Field(
        default_factory=lambda: Path.home() / ".clipid" / "catalog.json"
    )

    @field_validator("snapshot_path")
    @classmethod
    def _expand_user(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None


class ExtractorConfig(BaseModel):
    """Spectral feature extractor configuration."""

    hop_size: int = Field(gt=0, default=HOP_SIZE)
    window_size: int = Field(gt=0, default=WINDOW_SIZE)
    n_filters: int = Field(gt=0, default=N_FILTERS)
    n_coefs: int = Field(gt=0, default=N_COEFS)
    timeout_base_sec: float = Field(gt=0, default=30.0)
    timeout_per_mb_sec: float = Field(ge=0, default=10.0)

    @model_validator(mode="after")
    def _check_sizes(self) -> "ExtractorConfig":
        if self.hop_size > self.window_size:
            raise ValueError(
                f"hop_size ({self.hop_size}) must not exceed window_size ({self.window_size})"
            )
        if self.n_coefs > self.n_filters:
            raise ValueError(
                f"n_coefs ({self.n_coefs}) must not exceed n_filters ({self.n_filters})"
            )
        return self


class MatcherConfig(BaseModel):
    """Matcher configuration."""

    tolerance: float = Field(ge=0, default=DEFAULT_TOLERANCE)
    coefficients: int = Field(ge=1, default=DEFAULT_MATCH_COEFS)
    timeout_sec: float = Field(gt=0, default=120.0)


class ContextConfig(BaseModel):
    """A context created (and optionally seeded from a directory) at startup."""

    name: str = Field(min_length=1)
    directory: Path | None = None


class CatalogConfig(BaseModel):
    """Catalog configuration."""

    supported_formats: list[str] = ["wav", "flac", "ogg", "aiff", "aif"]
    contexts: list[ContextConfig] = []
    workers: int = Field(ge=1, default=4)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str | None = None


class ClipidConfig(BaseModel):
    """Main application configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    matcher: MatcherConfig = Field(default_factory=MatcherConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _check_match_width(self) -> "ClipidConfig":
        if self.matcher.coefficients > self.extractor.n_coefs:
            raise ValueError(
                f"matcher.coefficients ({self.matcher.coefficients}) must not exceed "
                f"extractor.n_coefs ({self.extractor.n_coefs})"
            )
        return self


def load_config(config_path: Path | None = None) -> ClipidConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        ClipidConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    if config_path is None:
        # Try multiple locations
        possible_paths = [
            Path(__file__).parent.parent.parent / "config" / "config.yaml",
            Path.home() / ".config" / "clipid" / "config.yaml",
            Path.home() / ".clipid" / "config.yaml",
        ]

        for path in possible_paths:
            if path.exists():
                config_path = path
                break
        else:
            # Use default from package
            config_path = possible_paths[0]

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    return ClipidConfig(**(data or {}))
