"""Shared-directory coordination: one JSON status document per agent.

Needs no network. Each agent only ever writes its own file, so the sole
consistency guarantee required is that readers never see a half-written
document: writes go to a temp file in the same directory and are moved
into place with :func:`os.replace`.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from brutus.coordination.records import CoordinationRecord, PeerRecord, StatusNote
from brutus.core.errors import MalformedRecordError

logger = logging.getLogger(__name__)

NOTE_SUFFIXES = frozenset({".md", ".txt"})


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of a publish, naming the transport that served it."""

    transport: str  # "file" or "discovery"
    agent_id: str
    detail: str

    def summary(self) -> str:
        return f"Status broadcast ({self.transport}): {self.detail}"


def status_filename(agent_id: str) -> str:
    return f"agent-{agent_id}.json"


class FileTransport:
    """Publish and query coordination records in a status directory."""

    name = "file"

    def __init__(self, status_dir: str | Path) -> None:
        self._status_dir = Path(status_dir)

    @property
    def status_dir(self) -> Path:
        return self._status_dir

    async def publish(self, record: CoordinationRecord) -> PublishResult:
        """Write ``record`` atomically, replacing any previous file for its id."""
        path = self._write(record)
        logger.debug("Wrote status for %s to %s", record.agent_id, path)
        return PublishResult(
            transport=self.name,
            agent_id=record.agent_id,
            detail=(
                f"agent={record.agent_id} status={record.status} "
                f"task={record.current_task}"
            ),
        )

    def _write(self, record: CoordinationRecord) -> Path:
        self._status_dir.mkdir(parents=True, exist_ok=True)
        target = self._status_dir / status_filename(record.agent_id)
        payload = json.dumps(record.to_document(), indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=self._status_dir, prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    async def query(
        self, status_dir: str | Path | None = None
    ) -> list[PeerRecord | StatusNote]:
        """Read every status document in ``status_dir`` (default: own dir).

        Malformed documents are logged and skipped. A missing directory
        yields an empty list.
        """
        directory = Path(status_dir) if status_dir is not None else self._status_dir
        if not directory.is_dir():
            return []

        results: list[PeerRecord | StatusNote] = []
        for path in sorted(directory.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue
            suffix = path.suffix.lower()
            if suffix != ".json" and suffix not in NOTE_SUFFIXES:
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Skipping unreadable status file %s: %s", path, e)
                continue
            except UnicodeDecodeError as e:
                logger.warning("Skipping undecodable status file %s: %s", path, e)
                continue

            if suffix in NOTE_SUFFIXES:
                results.append(StatusNote(file=path.name, content=text))
                continue
            try:
                results.append(PeerRecord(record=_parse_document(text, path.name)))
            except MalformedRecordError as e:
                logger.warning("Skipping malformed status file: %s", e)
        return results


def _parse_document(text: str, source: str) -> CoordinationRecord:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(source, f"invalid JSON: {e}") from e
    return CoordinationRecord.from_document(data, source=source)
