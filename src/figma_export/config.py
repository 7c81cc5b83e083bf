"""
Settings from config file, environment and command-line flags.

Precedence, later wins:
- field defaults
- `figma-export.json` (working directory or a parent, or `--config`)
- `FIGMA_*` environment variables
- command-line flags
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .errors import ConfigError
from .models import FIGMA_API_URL, ExportFormat, ExportOptions


CONFIG_FILENAME = "figma-export.json"
ENV_PREFIX = "FIGMA_"


class ConfigFile(BaseModel):
    """Schema of `figma-export.json`; keys use the CLI's camelCase names."""

    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = Field(None, validation_alias=AliasChoices("token", "accessToken"))
    directory: Optional[Path] = Field(None, validation_alias=AliasChoices("directory", "dir"))
    format: Optional[str] = None
    scale: Optional[float] = None
    first_page_only: Optional[bool] = Field(
        None, validation_alias=AliasChoices("first_page_only", "firstPageOnly")
    )
    timeout: Optional[float] = None
    api_url: Optional[str] = Field(None, validation_alias=AliasChoices("api_url", "apiUrl"))


class JsonConfigFileSource(PydanticBaseSettingsSource):
    """Settings source reading a validated `ConfigFile`."""

    def __init__(self, settings_cls: Type[BaseSettings], path: Optional[Path]) -> None:
        super().__init__(settings_cls)
        self.path = path
        self._values: Dict[str, Any] = {}
        if path is not None:
            config = ConfigFile.model_validate(load_config(path))
            self._values = config.model_dump(exclude_none=True)

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        return dict(self._values)


class Settings(BaseSettings):
    """Resolved settings of one CLI invocation."""

    token: Optional[str] = None
    directory: Path = Field(default_factory=Path.cwd)
    format: str = ExportFormat.PDF.value
    scale: Optional[float] = None
    first_page_only: bool = False
    timeout: Optional[float] = None
    api_url: str = FIGMA_API_URL

    # JSON file handed to JsonConfigFileSource
    config_file: Optional[Path] = Field(None, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="ignore",
    )

    @field_validator("directory")
    @classmethod
    def _expand_directory(cls, value: Path) -> Path:
        return value.expanduser()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        config_file = init_settings.init_kwargs.get("config_file")
        return (
            init_settings,
            env_settings,
            JsonConfigFileSource(settings_cls, config_file),
        )

    def export_options(self) -> ExportOptions:
        return ExportOptions(
            directory=self.directory,
            format=self.format,
            scale=self.scale,
            first_page_only=self.first_page_only,
            api_url=self.api_url.rstrip("/"),
        )


def find_config_file(start: Path | None = None) -> Path | None:
    """
    Look for `figma-export.json` in `start` and its parents.

    Default start: current working directory
    """
    base = (start or Path.cwd()).resolve()
    for directory in (base, *base.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path) -> Dict[str, Any]:
    """
    Load a JSON config file.

    Raises:
        ConfigError: If the file is missing or not a JSON object
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error parsing config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def resolve_settings(
    overrides: Mapping[str, Any] | None = None,
    config_path: Path | None = None,
    cwd: Path | None = None,
) -> Settings:
    """
    Build Settings from flags, environment and the config file.

    Args:
        overrides: Values from command-line flags; None entries are ignored
        config_path: Explicit config file; searched from `cwd` if omitted
        cwd: Directory to start the config file search from

    Returns:
        The resolved Settings

    Raises:
        ConfigError: If the config file is unreadable or a value is invalid
    """
    if config_path is None:
        config_path = find_config_file(cwd)
    flags = {name: value for name, value in (overrides or {}).items() if value is not None}
    try:
        return Settings(config_file=config_path, **flags)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
