"""Peer coordination: status records shared through files or mDNS."""

from brutus.coordination.broadcaster import (
    CoordinationBroadcaster,
    CoordinationObserver,
    build_coordination,
)
from brutus.coordination.discovery import (
    AdvertisementRegistry,
    DiscoveryTransport,
    FallbackEvent,
)
from brutus.coordination.file_transport import FileTransport, PublishResult
from brutus.coordination.records import (
    AgentStatus,
    CoordinationRecord,
    PeerRecord,
    StatusNote,
)

__all__ = [
    "AdvertisementRegistry",
    "AgentStatus",
    "CoordinationBroadcaster",
    "CoordinationObserver",
    "CoordinationRecord",
    "DiscoveryTransport",
    "FallbackEvent",
    "FileTransport",
    "PeerRecord",
    "PublishResult",
    "StatusNote",
    "build_coordination",
]
