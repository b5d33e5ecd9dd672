"""Publish and observe coordination state through either transport.

The transport is chosen per call: ``use_network=True`` goes through
mDNS discovery (with its file fallback), otherwise the shared status
directory is used directly. Callers never need to know which transport
ended up serving the request, but :class:`PublishResult` records it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from brutus.coordination.discovery import DiscoveryTransport
from brutus.coordination.file_transport import FileTransport

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from brutus.config.schema import CoordinationConfig
    from brutus.coordination.discovery import AdvertisementRegistry, FallbackEvent
    from brutus.coordination.file_transport import PublishResult
    from brutus.coordination.records import CoordinationRecord, PeerRecord, StatusNote

logger = logging.getLogger(__name__)


class CoordinationBroadcaster:
    """Publishes this process's agents' status records.

    Owns the discovery transport's advertisement registry, so closing the
    broadcaster withdraws every live advertisement.
    """

    def __init__(
        self,
        files: FileTransport,
        discovery: DiscoveryTransport,
        *,
        use_network: bool = False,
    ) -> None:
        self._files = files
        self._discovery = discovery
        self._use_network = use_network

    @property
    def advertisements(self) -> AdvertisementRegistry:
        return self._discovery.registry

    async def publish(
        self, record: CoordinationRecord, *, use_network: bool | None = None
    ) -> PublishResult:
        network = self._use_network if use_network is None else use_network
        transport = self._discovery if network else self._files
        result = await transport.publish(record)
        logger.info("%s", result.summary())
        return result

    async def close(self) -> None:
        await self._discovery.close()


class CoordinationObserver:
    """Reads peers' status records."""

    def __init__(
        self,
        files: FileTransport,
        discovery: DiscoveryTransport,
        *,
        use_network: bool = False,
        timeout: float = 2.0,
    ) -> None:
        self._files = files
        self._discovery = discovery
        self._use_network = use_network
        self._timeout = timeout

    async def query(
        self,
        status_dir: str | Path | None = None,
        *,
        use_network: bool | None = None,
        timeout: float | None = None,
    ) -> list[PeerRecord | StatusNote]:
        network = self._use_network if use_network is None else use_network
        if network:
            return await self._discovery.query(
                status_dir, timeout=self._timeout if timeout is None else timeout
            )
        return await self._files.query(status_dir)


def build_coordination(
    config: CoordinationConfig,
    *,
    on_fallback: Callable[[FallbackEvent], None] | None = None,
) -> tuple[CoordinationBroadcaster, CoordinationObserver]:
    """Broadcaster and observer sharing one pair of transports."""
    files = FileTransport(config.status_dir)
    discovery = DiscoveryTransport(
        files, base_port=config.base_port, on_fallback=on_fallback
    )
    broadcaster = CoordinationBroadcaster(
        files, discovery, use_network=config.use_network
    )
    observer = CoordinationObserver(
        files,
        discovery,
        use_network=config.use_network,
        timeout=config.discovery_timeout,
    )
    return broadcaster, observer
