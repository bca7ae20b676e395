"""Configuration management for tidy-kg using pydantic-settings.

Settings priority (highest to lowest):
1. CLI flags (applied after TidyConfig creation)
2. Environment variables (TIDY_* prefix)
3. .env file
4. tidy.yaml project config
5. Default values
"""

import logging
from pathlib import Path

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

logger = logging.getLogger(__name__)

PROJECT_FILE = "tidy.yaml"

# Map tidy.yaml keys to TidyConfig field names
_YAML_TO_FIELD = {
    "data": "data_dir",
    "data_dir": "data_dir",
    "domain": "domain",
    "dedup_config": "dedup_config_path",
    "catalogs": "catalog_paths",
    "max_history_size": "max_history_size",
    "max_undo_size": "max_undo_size",
    "auto_merge_limit": "auto_merge_limit",
}


class _ProjectYamlSource(PydanticBaseSettingsSource):
    """Read project config from tidy.yaml (lower priority than env vars)."""

    def get_field_value(self, field, field_name):  # type: ignore[override]
        return None, field_name, False

    def __call__(self) -> dict:
        project_file = Path(PROJECT_FILE)
        if not project_file.exists():
            return {}

        raw = yaml.safe_load(project_file.read_text()) or {}

        result: dict = {}
        for yaml_key, field_name in _YAML_TO_FIELD.items():
            if yaml_key in raw:
                result[field_name] = raw[yaml_key]
        return result


class TidyConfig(BaseSettings):
    """Configuration settings for tidy-kg.

    All environment variables are prefixed with TIDY_ (e.g. TIDY_DATA_DIR,
    TIDY_DOMAIN). Empty string values in environment variables are
    treated as unset.

    Example:
        >>> config = TidyConfig(domain="cybersec")
        >>> print(config.data_dir)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TIDY_",
        extra="ignore",
        env_ignore_empty=True,
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
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _ProjectYamlSource(settings_cls),
            file_secret_settings,
        )

    data_dir: Path = Field(
        default=Path("data"),
        validate_default=True,
        description="Root directory holding <domain>/entities/ and the merge files",
    )

    domain: str = Field(
        default="default",
        description="Active domain (default, cybersec, construction, ...)",
    )

    dedup_config_path: Path | None = Field(
        default=None,
        description="Custom duplicate detection table (uses the bundled dedup.yaml if not set)",
    )

    catalog_paths: list[Path] = Field(
        default_factory=list,
        description="Extra relationship type catalog YAML files, loaded after the bundled ones",
    )

    max_history_size: int = Field(default=1000, ge=1, description="Merge records kept")
    max_undo_size: int = Field(default=50, ge=1, description="Merges that can be undone")
    auto_merge_limit: int = Field(
        default=10, ge=1, description="Maximum merges performed by one auto-merge run"
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_data_dir(cls, v: Path | str) -> Path:
        """Convert data_dir to absolute path and create if missing."""
        path = Path(v) if isinstance(v, str) else v
        path = path.resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("domain")
    @classmethod
    def check_domain(cls, v: str) -> str:
        v = v.strip()
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"Invalid domain name: {v!r}")
        return v
