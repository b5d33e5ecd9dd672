"""Pydantic models for brutus configuration."""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import BaseModel, Field


def _default_status_dir() -> str:
    return str(Path(tempfile.gettempdir()) / "brutus-agents")


class ProviderConfig(BaseModel):
    """Configuration for a single LLM provider."""

    enabled: bool = True
    api_key: str | None = None
    api_key_env: str | None = None
    base_url: str | None = None
    default_model: str | None = None
    max_tokens: int = 4096
    max_retries: int = 2


class GeneralConfig(BaseModel):
    """General session settings."""

    agent_id: str = "brutus"
    provider: str = "anthropic"
    system_prompt: str = "You are BRUTUS, a coding agent."
    system_prompt_file: str = "BRUTUS.md"
    working_dir: str = "."


class AgentConfig(BaseModel):
    """Agent loop limits."""

    request_timeout: float = 120.0
    max_tool_rounds: int = 25
    broadcast_status: bool = True


class ApprovalConfig(BaseModel):
    """Human approval of tool calls."""

    timeout: float = 300.0
    approve_all: bool = False
    auto_approve: list[str] = Field(
        default_factory=lambda: [
            "read_file",
            "list_files",
            "code_search",
            "agent_broadcast",
            "observe_agents",
        ]
    )


class CoordinationConfig(BaseModel):
    """Peer status sharing between agents."""

    status_dir: str = Field(default_factory=_default_status_dir)
    use_network: bool = False
    discovery_timeout: float = 2.0
    base_port: int = 9100


class BashConfig(BaseModel):
    """Shell tool configuration."""

    enabled: bool = True
    timeout: int = 30
    max_output: int = 10_000


class ToolsConfig(BaseModel):
    """Built-in tool configuration."""

    max_file_size: int = 100 * 1024
    bash: BashConfig = Field(default_factory=BashConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    file: str = ""
    structured: bool = False


class BrutusConfig(BaseModel):
    """Top-level configuration for brutus."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    coordination: CoordinationConfig = Field(default_factory=CoordinationConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    providers: dict[str, ProviderConfig] = Field(
        default_factory=lambda: {
            "anthropic": ProviderConfig(
                api_key_env="ANTHROPIC_API_KEY",
                default_model="claude-sonnet-4-5-20250929",
            ),
        }
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
