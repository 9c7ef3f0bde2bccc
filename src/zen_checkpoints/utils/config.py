"""
Configuration loader for the checkpoint engine.

This module provides configuration management with:
- Multiple configuration sources (JSON, YAML, TOML files and dicts)
- Schema validation through pydantic
- Environment variable overrides
- Configuration merging by priority
"""

import os
import json
import yaml
import toml
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
from pydantic import BaseModel, Field, field_validator, model_validator, ValidationError, ConfigDict
import hashlib

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("zen-checkpoints.config")

DEFAULT_IGNORE = [
    ".git",
    "node_modules",
    ".zen",
    "dist",
    "out",
    "build",
    ".DS_Store",
]

ENV_PREFIX = "ZEN_CHECKPOINTS_"
ENV_NESTING = "__"


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"

    model_config = ConfigDict(arbitrary_types_allowed=True)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"
    directory: Optional[Path] = None
    enable_sentry: bool = False
    sentry_dsn: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        """Validate log renderer."""
        if v not in ("json", "console"):
            raise ValueError(f"Invalid log format: {v}")
        return v


class CheckpointConfig(BaseModel):
    """Checkpoint engine configuration.

    ``storage_path`` defaults to ``<project_root>/.zen/checkpoints``.
    """
    project_root: Path
    storage_path: Optional[Path] = None
    ignore_file: str = ".gitignore"
    default_ignore: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE))
    hash_algorithm: str = "sha256"
    max_concurrent_io: int = Field(default=16, ge=1)
    manifest_name: str = "manifest.json"

    @field_validator('project_root', 'storage_path')
    @classmethod
    def validate_path(cls, v):
        """Ensure paths are absolute."""
        if v is None:
            return v
        return Path(v).expanduser().absolute()

    @field_validator('hash_algorithm')
    @classmethod
    def validate_hash_algorithm(cls, v):
        """Only accept fixed-length digests hashlib can build."""
        if v not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {v}")
        if hashlib.new(v).digest_size == 0:
            raise ValueError(f"Variable-length hash algorithm not supported: {v}")
        return v

    @model_validator(mode='after')
    def default_storage_path(self):
        if self.storage_path is None:
            self.storage_path = self.project_root / ".zen" / "checkpoints"
        return self


class EngineConfig(BaseModel):
    """Top-level configuration."""
    app_name: str = "zen-checkpoints"
    checkpoint: CheckpointConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True
    )


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self):
        """Initialize configuration loader."""
        self._sources: List[ConfigSource] = []
        self._config: Optional[EngineConfig] = None

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not source_type:
                source_type = self._detect_source_type(path)

            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> EngineConfig:
        """
        Load configuration from all sources.

        Lower-priority sources are merged first so higher priorities win;
        environment variables are applied last.

        Returns:
            Merged configuration
        """
        merged_data: Dict[str, Any] = {}

        for source in sorted(self._sources, key=lambda s: s.priority):
            data = self._load_source(source)
            merged_data = self._deep_merge(merged_data, data)

        merged_data = self._deep_merge(merged_data, self._load_env_vars())

        try:
            self._config = EngineConfig(**merged_data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")

            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                cause=e
            ) from e

        logger.info("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        content = source.path.read_text(encoding="utf-8")

        try:
            if source.source_type == "json":
                return json.loads(content)
            elif source.source_type == "yaml":
                return yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                return toml.loads(content)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to parse {source.path}: {e}", cause=e
            ) from e

        raise ConfigurationError(f"Unknown source type: {source.source_type}")

    def _load_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables.

        ``ZEN_CHECKPOINTS_CHECKPOINT__MAX_CONCURRENT_IO=4`` maps to
        ``{"checkpoint": {"max_concurrent_io": 4}}``.
        """
        result: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            current = result
            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        if "," in value:
            return [v.strip() for v in value.split(",")]

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> EngineConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def load_config(
    project_root: Union[str, Path],
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None
) -> EngineConfig:
    """
    Load configuration for one project.

    Looks for ``zen-checkpoints.{yaml,json,toml}`` in the project root, then
    the given paths, then ``extra_config``.

    Args:
        project_root: Project whose files are checkpointed
        config_paths: Additional configuration paths
        extra_config: Extra configuration to merge

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader()
    root = Path(project_root)

    loader.add_source({"checkpoint": {"project_root": str(root)}}, priority=0)

    for name in ("zen-checkpoints.yaml", "zen-checkpoints.json", "zen-checkpoints.toml"):
        path = root / name
        if path.exists():
            loader.add_source(path, priority=10)

    if config_paths:
        for i, path in enumerate(config_paths):
            loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


__all__ = [
    'DEFAULT_IGNORE',
    'EngineConfig',
    'CheckpointConfig',
    'LoggingConfig',
    'ConfigLoader',
    'load_config',
]
