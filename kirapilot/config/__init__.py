"""
KiraPilot Config Module - YAML configuration for the engine
"""

from .loader import (
    CONFIG_FILENAME,
    ConfigError,
    ConfigLoader,
    EngineConfig,
    LoggingSection,
    PermissionsSection,
    ReactSection,
    RecoverySection,
    StrategyOverride,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "ConfigLoader",
    "EngineConfig",
    "LoggingSection",
    "PermissionsSection",
    "ReactSection",
    "RecoverySection",
    "StrategyOverride",
]
