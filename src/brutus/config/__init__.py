"""Configuration loading and validation."""

from brutus.config.loader import load_config
from brutus.config.schema import (
    AgentConfig,
    ApprovalConfig,
    BrutusConfig,
    CoordinationConfig,
    GeneralConfig,
    LoggingConfig,
    ProviderConfig,
    ToolsConfig,
)

__all__ = [
    "AgentConfig",
    "ApprovalConfig",
    "BrutusConfig",
    "CoordinationConfig",
    "GeneralConfig",
    "LoggingConfig",
    "ProviderConfig",
    "ToolsConfig",
    "load_config",
]
