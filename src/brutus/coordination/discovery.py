"""Local-network coordination via multicast DNS service records.

Each agent advertises one ``_brutus-agent._tcp.local.`` service instance
named ``brutus-agent-<agent_id>`` whose TXT attributes carry its
:class:`CoordinationRecord`. Observers browse for the service type for a
bounded window and decode whatever answered.

Discovery is best effort. When registration fails the record is written
through :class:`FileTransport` instead; when browsing fails or finds
nobody the status directory is read instead. Every such fallback is
logged and reported to ``on_fallback`` so a network-only deployment can
notice that it is running degraded.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import socket
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from brutus.coordination.file_transport import PublishResult
from brutus.coordination.records import PeerRecord
from brutus.core.errors import MalformedRecordError, TransportError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from brutus.coordination.file_transport import FileTransport
    from brutus.coordination.records import CoordinationRecord, StatusNote

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_brutus-agent._tcp.local."
INSTANCE_PREFIX = "brutus-agent-"
DEFAULT_BASE_PORT = 9100
DEFAULT_BROWSE_TIMEOUT = 2.0
SETTLE_DELAY = 0.1


def instance_name(agent_id: str) -> str:
    return f"{INSTANCE_PREFIX}{agent_id}.{SERVICE_TYPE}"


@dataclass(frozen=True, slots=True)
class FallbackEvent:
    """Discovery could not serve a call and the file transport did."""

    operation: str  # "publish" or "query"
    reason: str
    agent_id: str | None = None


@dataclass(frozen=True, slots=True)
class Advertisement:
    """A live service registration owned by this process."""

    agent_id: str
    info: AsyncServiceInfo
    port: int


class AdvertisementRegistry:
    """Active advertisements keyed by ``agent_id``, at most one per id.

    Callers hold :attr:`lock` across the withdraw/register critical
    section. It is never held across a browse.
    """

    def __init__(self) -> None:
        self._ads: dict[str, Advertisement] = {}
        self.lock = asyncio.Lock()

    def get(self, agent_id: str) -> Advertisement | None:
        return self._ads.get(agent_id)

    def add(self, ad: Advertisement) -> None:
        if ad.agent_id in self._ads:
            msg = f"advertisement for {ad.agent_id} is still active"
            raise RuntimeError(msg)
        self._ads[ad.agent_id] = ad

    def pop(self, agent_id: str) -> Advertisement | None:
        return self._ads.pop(agent_id, None)

    def drain(self) -> list[Advertisement]:
        ads = list(self._ads.values())
        self._ads.clear()
        return ads

    def agent_ids(self) -> list[str]:
        return sorted(self._ads)

    def __len__(self) -> int:
        return len(self._ads)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._ads


def _local_address() -> bytes:
    try:
        return socket.inet_aton(socket.gethostbyname(socket.gethostname()))
    except OSError:
        return socket.inet_aton("127.0.0.1")


def _decode_properties(props: dict[bytes, bytes | None]) -> dict[str, str]:
    return {
        k.decode("utf-8", "replace"): (v or b"").decode("utf-8", "replace")
        for k, v in props.items()
    }


class DiscoveryTransport:
    """Publish and query coordination records as mDNS service records."""

    name = "discovery"

    def __init__(
        self,
        fallback: FileTransport,
        *,
        registry: AdvertisementRegistry | None = None,
        base_port: int = DEFAULT_BASE_PORT,
        on_fallback: Callable[[FallbackEvent], None] | None = None,
        zeroconf_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._fallback = fallback
        self._registry = registry or AdvertisementRegistry()
        self._ports = itertools.count(base_port)
        self._on_fallback = on_fallback
        self._zeroconf_factory = zeroconf_factory or (
            lambda: AsyncZeroconf(ip_version=IPVersion.V4Only)
        )
        self._aiozc: Any = None
        self._open_lock = asyncio.Lock()

    @property
    def registry(self) -> AdvertisementRegistry:
        return self._registry

    async def _zeroconf(self) -> Any:
        async with self._open_lock:
            if self._aiozc is None:
                try:
                    self._aiozc = self._zeroconf_factory()
                except Exception as e:
                    raise TransportError(self.name, f"cannot open mDNS socket: {e}") from e
            return self._aiozc

    def _report_fallback(self, event: FallbackEvent) -> None:
        logger.warning(
            "Discovery %s fell back to file transport: %s", event.operation, event.reason
        )
        if self._on_fallback is not None:
            self._on_fallback(event)

    # ── publish ───────────────────────────────────────────────

    async def publish(self, record: CoordinationRecord) -> PublishResult:
        """Advertise ``record``, replacing this agent's previous advertisement.

        Falls back to the file transport if registration fails.
        """
        try:
            async with self._registry.lock:
                previous = self._registry.pop(record.agent_id)
                if previous is not None:
                    await self._withdraw(previous)
                ad = await self._register(record)
                self._registry.add(ad)
        except TransportError as e:
            self._report_fallback(
                FallbackEvent(operation="publish", reason=str(e), agent_id=record.agent_id)
            )
            return await self._fallback.publish(record)

        return PublishResult(
            transport=self.name,
            agent_id=record.agent_id,
            detail=(
                f"agent={record.agent_id} status={record.status} "
                f"task={record.current_task} (port {ad.port})"
            ),
        )

    async def _register(self, record: CoordinationRecord) -> Advertisement:
        aiozc = await self._zeroconf()
        port = next(self._ports)
        host = socket.gethostname().split(".")[0] or "localhost"
        try:
            info = AsyncServiceInfo(
                SERVICE_TYPE,
                instance_name(record.agent_id),
                port=port,
                properties=record.to_txt(),
                addresses=[_local_address()],
                server=f"{host}.local.",
            )
            registered = await aiozc.async_register_service(info)
            await registered
        except Exception as e:
            raise TransportError(self.name, f"service registration failed: {e}") from e
        logger.debug("Advertised %s on port %d", info.name, port)
        return Advertisement(agent_id=record.agent_id, info=info, port=port)

    async def _withdraw(self, ad: Advertisement) -> None:
        aiozc = await self._zeroconf()
        try:
            unregistered = await aiozc.async_unregister_service(ad.info)
            await unregistered
        except Exception as e:
            # the record is already out of the registry; a stale answer
            # expires with its TTL
            logger.warning("Failed to withdraw advertisement %s: %s", ad.info.name, e)

    # ── query ─────────────────────────────────────────────────

    async def query(
        self,
        status_dir: str | Path | None = None,
        *,
        timeout: float = DEFAULT_BROWSE_TIMEOUT,
    ) -> list[PeerRecord | StatusNote]:
        """Browse for peers for ``timeout`` seconds.

        Returns no later than ``timeout`` plus a short settle delay. Falls
        back to reading ``status_dir`` when browsing fails or finds no peers.
        """
        try:
            peers = await self.browse(timeout)
        except TransportError as e:
            self._report_fallback(FallbackEvent(operation="query", reason=str(e)))
            return await self._fallback.query(status_dir)

        if not peers:
            self._report_fallback(
                FallbackEvent(operation="query", reason="no peers discovered")
            )
            return await self._fallback.query(status_dir)
        return list(peers)

    async def browse(self, timeout: float) -> list[PeerRecord]:
        """Peers answering within the window, one per agent_id (newest wins).

        Raises:
            TransportError: If browsing cannot start.
        """
        aiozc = await self._zeroconf()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        seen: set[str] = set()
        lookups: set[asyncio.Task[PeerRecord | None]] = set()

        def on_change(
            zeroconf: Any, service_type: str, name: str, state_change: ServiceStateChange
        ) -> None:
            if state_change is ServiceStateChange.Removed or name in seen:
                return
            seen.add(name)
            remaining_ms = max(int((deadline - loop.time()) * 1000), 100)
            lookups.add(loop.create_task(self._resolve(aiozc, name, remaining_ms)))

        try:
            browser = AsyncServiceBrowser(
                aiozc.zeroconf, [SERVICE_TYPE], handlers=[on_change]
            )
        except Exception as e:
            raise TransportError(self.name, f"browse failed to start: {e}") from e

        try:
            await asyncio.sleep(max(deadline - loop.time(), 0))
        finally:
            await browser.async_cancel()

        peers: dict[str, PeerRecord] = {}
        if lookups:
            done, pending = await asyncio.wait(lookups, timeout=SETTLE_DELAY)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)
            for task in done:
                if task.exception() is not None:
                    logger.info("Service lookup failed: %s", task.exception())
                    continue
                peer = task.result()
                if peer is None:
                    continue
                current = peers.get(peer.agent_id)
                if current is None or peer.record.updated_at >= current.record.updated_at:
                    peers[peer.agent_id] = peer
        return [peers[k] for k in sorted(peers)]

    async def _resolve(self, aiozc: Any, name: str, timeout_ms: int) -> PeerRecord | None:
        started = time.monotonic()
        info = await aiozc.async_get_service_info(SERVICE_TYPE, name, timeout_ms)
        if info is None:
            logger.debug("No answer from %s", name)
            return None
        service_name = name.removesuffix(f".{SERVICE_TYPE}")
        try:
            peer = PeerRecord.from_txt(
                _decode_properties(info.properties),
                service_name=service_name,
                host=info.server,
                port=info.port,
            )
        except MalformedRecordError as e:
            logger.info("Dropping undecodable service record: %s", e)
            return None
        logger.debug(
            "Resolved %s in %.0fms", service_name, (time.monotonic() - started) * 1000
        )
        return peer

    # ── lifecycle ─────────────────────────────────────────────

    async def close(self) -> None:
        """Withdraw every advertisement and close the mDNS socket."""
        async with self._registry.lock:
            ads = self._registry.drain()
            if self._aiozc is None:
                return
            for ad in ads:
                await self._withdraw(ad)
        await self._aiozc.async_close()
        self._aiozc = None
