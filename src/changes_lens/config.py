"""Configuration management for changes-lens using pydantic-settings.

Supports hierarchical configuration from:
1. Environment variables (highest priority)
2. JSON config file
3. Default values (lowest priority)

Environment variables use the format: CHANGES_LENS_<SECTION>__<FIELD>
Example: CHANGES_LENS_CACHE__MAX_CONCURRENT_DIFFS=4
"""

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


APP_NAME = "changes-lens"

DEFAULT_IGNORED_DIRS = [
    ".git/objects",
    ".git/logs",
    ".git/refs",
    "__pycache__",
    "node_modules",
    ".venv",
]


class JsonConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source for loading from JSON file."""

    def __init__(self, settings_cls: type[BaseSettings], json_file: Path):
        super().__init__(settings_cls)
        self.json_file = json_file

    def get_field_value(
        self, field: Any, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get field value - required by base class but not used in v2."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load configuration from JSON file."""
        if self.json_file.exists():
            with open(self.json_file, encoding="utf-8") as f:
                return _strip_comment_fields(json.load(f))
        return {}


class CacheConfig(BaseModel):
    """Diff cache configuration section."""

    max_concurrent_diffs: int | None = Field(default=8, ge=1)  # None = unbounded
    large_diff_bytes: int = Field(default=1_000_000, ge=1)
    max_diff_bytes: int = Field(default=5_000_000, ge=1)
    git_timeout: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def max_not_below_large(self) -> "CacheConfig":
        """Validate that the unrenderable threshold is not below the large-text threshold."""
        if self.max_diff_bytes < self.large_diff_bytes:
            raise ValueError("max_diff_bytes must be >= large_diff_bytes")
        return self


class WatcherConfig(BaseModel):
    """File watcher configuration section."""

    enabled: bool = True
    debounce_ms: int = Field(default=200, ge=0)
    poll_seconds: float = Field(default=2.0, gt=0)  # used when the watcher is disabled
    ignored_dirs: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))


class LoggingConfig(BaseModel):
    """Logging configuration section."""

    level: Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    console: bool = True
    file: bool = False
    log_dir: str | None = None  # None = default logs directory

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class FilterConfig(BaseModel):
    """Initial filter text applied when a view starts."""

    path: str = ""
    content: str = ""


# Module-level variables
_json_config_file: Path | None = None  # For settings_customise_sources
_settings_cache: "Settings | None" = None  # For singleton pattern


def _strip_comment_fields(data: Any) -> Any:
    """Recursively strip keys starting with _ or $ from dict.

    Args:
        data: Dictionary to clean (or any other type, which is returned as-is)

    Returns:
        Dictionary with comment fields removed, or original value if not a dict
    """
    if not isinstance(data, dict):
        return data
    return {
        k: _strip_comment_fields(v) if isinstance(v, dict) else v
        for k, v in data.items()
        if not k.startswith('_') and not k.startswith('$')
    }


class Settings(BaseSettings):
    """Root configuration model with nested sections.

    Loads configuration from (in priority order):
    1. Environment variables with CHANGES_LENS_ prefix
    2. JSON config file (if provided)
    3. Default values
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)

    model_config = SettingsConfigDict(
        env_prefix="CHANGES_LENS_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to add JSON config file support.

        Priority order (highest to lowest):
        1. Environment variables
        2. JSON config file (if _json_config_file module variable is set)
        3. Default values
        """
        global _json_config_file
        if _json_config_file is not None:
            json_source = JsonConfigSettingsSource(settings_cls, json_file=_json_config_file)
            return (env_settings, json_source, init_settings)
        return (env_settings, init_settings)


def get_settings(config_path: Path | str | None = None, *, _force_reload: bool = False) -> Settings:
    """Load settings from optional JSON config file and environment variables.

    Implements singleton pattern - returns cached settings unless _force_reload=True
    or config_path is provided.

    Args:
        config_path: Optional path to JSON config file. If provided, bypasses cache.
        _force_reload: If True, bypasses cache and creates fresh Settings instance

    Returns:
        Settings instance with merged configuration
    """
    global _json_config_file, _settings_cache

    if _settings_cache is not None and not _force_reload and config_path is None:
        return _settings_cache

    if config_path:
        _json_config_file = Path(config_path)
        try:
            settings = Settings()
        finally:
            _json_config_file = None  # Reset after use
    else:
        settings = Settings()

    # Cache the settings if no config_path was provided
    if config_path is None:
        _settings_cache = settings

    return settings
