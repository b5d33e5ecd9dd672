"""Shared test fixtures for brutus."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pytest

from brutus.agent.approval import ApprovalGate
from brutus.coordination.discovery import DiscoveryTransport
from brutus.coordination.file_transport import FileTransport
from brutus.tools.registry import ToolRegistry
from tests.fixtures.mdns import FakeNetwork

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


class EchoTool:
    """Returns its ``text`` argument; records every call."""

    def __init__(self, name: str = "echo") -> None:
        self._name = name
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Echo the text back"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"text": {"type": "string"}}}

    async def execute(self, **kwargs: Any) -> str:
        self.calls.append(kwargs)
        return str(kwargs.get("text", ""))


class FailingTool:
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> str:
        msg = "boom"
        raise RuntimeError(msg)


@pytest.fixture(autouse=True)
def _reset_brutus_logger() -> Iterator[None]:
    """CLI tests install handlers on the package logger; undo that."""
    yield
    logger = logging.getLogger("brutus")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def registry(echo_tool: EchoTool) -> ToolRegistry:
    reg = ToolRegistry()
    reg.register(echo_tool)
    reg.register(FailingTool())
    return reg


@pytest.fixture
def open_gate() -> ApprovalGate:
    """A gate that approves everything."""
    return ApprovalGate(approve_all=True)


@pytest.fixture
def status_dir(tmp_path: Path) -> Path:
    return tmp_path / "status"


@pytest.fixture
def file_transport(status_dir: Path) -> FileTransport:
    return FileTransport(status_dir)


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def discovery_patches(monkeypatch: pytest.MonkeyPatch) -> None:
    """Route discovery's service browser to the in-memory network."""
    from tests.fixtures.mdns import FakeServiceBrowser

    monkeypatch.setattr(
        "brutus.coordination.discovery.AsyncServiceBrowser", FakeServiceBrowser
    )


@pytest.fixture
def make_discovery(
    file_transport: FileTransport, network: FakeNetwork, discovery_patches: None
) -> Any:
    """Factory for (transport, fallback events) on the shared fake network."""

    def _make(**zc_kwargs: Any) -> tuple[DiscoveryTransport, list[Any]]:
        events: list[Any] = []
        transport = DiscoveryTransport(
            file_transport,
            on_fallback=events.append,
            zeroconf_factory=lambda: network.zeroconf(**zc_kwargs),
        )
        return transport, events

    return _make
