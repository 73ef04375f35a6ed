"""
Config Loader - Load engine configuration from YAML

Example kirapilot.yaml:
    react:
      max_iterations: 6
      max_repeated_failures: 2
      tool_timeout_seconds: 15
      plain_text_is_answer: true

    recovery:
      retry_mode: auto
      strategies:
        NETWORK_ERROR:
          max_retries: 5
          base_retry_delay_ms: 1000
        DATABASE_ERROR:
          backoff_multiplier: 2.0

    permissions:
      default: [read_only]

    logging:
      level: INFO
      audit: true
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_REPEATED_FAILURES,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
)
from ..errors.models import ErrorKind, RetryMode
from ..react.config import ReactLoopConfig
from ..react.loop import ReasoningLoop
from ..tools.models import PermissionLevel

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "kirapilot.yaml"


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is invalid."""


class ReactSection(BaseModel):
    """Reasoning loop settings"""
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1)
    max_repeated_failures: int = Field(DEFAULT_MAX_REPEATED_FAILURES, ge=1)
    tool_timeout_seconds: float = Field(DEFAULT_TOOL_TIMEOUT_SECONDS, gt=0)
    max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1)
    plain_text_is_answer: bool = True
    max_observation_chars: int = Field(4000, ge=0)
    include_tool_guidance: bool = True

    model_config = ConfigDict(extra="ignore")  # Ignore unknown fields in YAML


class StrategyOverride(BaseModel):
    """Per-kind overrides of the default recovery strategy"""
    max_retries: Optional[int] = Field(None, ge=0)
    base_retry_delay_ms: Optional[int] = Field(None, ge=0)
    backoff_multiplier: Optional[float] = Field(None, ge=1.0)

    model_config = ConfigDict(extra="ignore")

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RecoverySection(BaseModel):
    """Error recovery settings"""
    retry_mode: RetryMode = RetryMode.AUTO
    strategies: Dict[ErrorKind, StrategyOverride] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("retry_mode", mode="before")
    @classmethod
    def _lower_retry_mode(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("strategies", mode="before")
    @classmethod
    def _upper_kinds(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k).upper(): v for k, v in value.items()}
        return value


class PermissionsSection(BaseModel):
    """Permissions granted to conversations by default"""
    default: List[PermissionLevel] = Field(default_factory=lambda: [PermissionLevel.READ_ONLY])

    model_config = ConfigDict(extra="ignore")

    @field_validator("default", mode="before")
    @classmethod
    def _lower_levels(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [v.lower() if isinstance(v, str) else v for v in value]
        return value


class LoggingSection(BaseModel):
    """Logging settings"""
    level: str = "INFO"
    audit: bool = True

    model_config = ConfigDict(extra="ignore")

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown logging level '{value}'")
        return level


class EngineConfig(BaseModel):
    """Complete engine configuration"""
    react: ReactSection = Field(default_factory=ReactSection)
    recovery: RecoverySection = Field(default_factory=RecoverySection)
    permissions: PermissionsSection = Field(default_factory=PermissionsSection)
    logging: LoggingSection = Field(default_factory=LoggingSection)

    model_config = ConfigDict(extra="ignore")

    def to_react_config(self) -> ReactLoopConfig:
        """Build the ReactLoopConfig described by the ``react`` section."""
        return ReactLoopConfig(**self.react.model_dump())

    def build_loop(self, model, bridge, granted_permissions=None, **kwargs) -> ReasoningLoop:
        """
        Build a ReasoningLoop from the ``react`` and ``permissions`` sections

        ``granted_permissions`` defaults to ``permissions.default``; remaining
        keyword arguments go to ReasoningLoop unchanged.
        """
        if granted_permissions is None:
            granted_permissions = self.permissions.default
        return ReasoningLoop(model, bridge, granted_permissions, config=self.to_react_config(), **kwargs)

    def apply_recovery_overrides(self, handler) -> None:
        """Push ``recovery`` settings into an ErrorHandler."""
        handler.retry_mode = self.recovery.retry_mode
        for kind, override in self.recovery.strategies.items():
            changes = override.changes()
            if changes:
                handler.update_recovery_strategy(kind, changes)

    def apply_logging(self) -> None:
        """Apply the ``logging`` section to the package loggers."""
        logging.getLogger("kirapilot").setLevel(self.logging.level)
        logging.getLogger("kirapilot.audit").disabled = not self.logging.audit


class ConfigLoader:
    """
    Load the engine configuration from a directory

    Expected directory structure:
        config/
        └── kirapilot.yaml

    A missing file yields the defaults.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config loader

        Args:
            config_dir: Path to config directory (default: ./config)
        """
        self.config_dir = Path(config_dir) if config_dir else Path("config")
        self._config: Optional[EngineConfig] = None

    @property
    def path(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    def load(self) -> EngineConfig:
        """Read and validate kirapilot.yaml"""
        path = self.path
        if not path.exists():
            logger.debug(f"No {CONFIG_FILENAME} found at {path}, using defaults")
            self._config = EngineConfig()
            return self._config

        logger.info(f"Loading config from {path}")
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

        self._config = self.parse(data, source=str(path))
        return self._config

    @staticmethod
    def parse(data: Any, source: str = "<memory>") -> EngineConfig:
        """Validate an already-loaded mapping"""
        if not isinstance(data, dict):
            raise ConfigError(f"{source}: top-level YAML must be a mapping")
        try:
            return EngineConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"{source}: invalid configuration: {e}") from e

    @property
    def config(self) -> EngineConfig:
        if self._config is None:
            return self.load()
        return self._config
