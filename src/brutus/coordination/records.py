"""Coordination record models and their wire encodings.

A :class:`CoordinationRecord` is the status an agent publishes about
itself. There is one logical record per ``agent_id``; publishing again
replaces it. Two encodings exist:

- the on-disk status document (JSON object with ``agent_id``,
  ``status``, ``task``, ``action``, ``message``, ``updated_at``)
- flat TXT attributes for network service records (``agent_id``,
  ``status``, ``task``, ``action``, ``updated`` as unix seconds, and an
  optional ``msg`` holding JSON ``{from, content, time}``)

``updated_at`` is kept at whole-second precision so both encodings
round-trip exactly.
"""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from brutus.core.errors import MalformedRecordError

_AGENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,62}$")

TXT_KEYS = ("agent_id", "status", "task", "action", "updated", "msg")


class AgentStatus(enum.StrEnum):
    IDLE = "idle"
    WORKING = "working"
    DONE = "done"
    STOPPED = "stopped"


def utc_now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


class CoordinationRecord(BaseModel):
    """Status an agent publishes for its peers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    agent_id: str
    status: AgentStatus
    current_task: str = Field(default="", alias="task")
    last_action: str = Field(default="", alias="action")
    message: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("agent_id")
    @classmethod
    def _check_agent_id(cls, v: str) -> str:
        if not _AGENT_ID_RE.match(v):
            msg = (
                "agent_id must be 1-63 characters of letters, digits, '.', '_' "
                "or '-', starting with a letter or digit"
            )
            raise ValueError(msg)
        return v

    @field_validator("message")
    @classmethod
    def _empty_message_is_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("updated_at")
    @classmethod
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=UTC)
        return v.astimezone(UTC).replace(microsecond=0)

    # ── status documents ─────────────────────────────────────

    def to_document(self) -> dict[str, Any]:
        """On-disk JSON document."""
        return {
            "agent_id": self.agent_id,
            "status": self.status.value,
            "task": self.current_task,
            "action": self.last_action,
            "message": self.message or "",
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_document(cls, data: Any, *, source: str) -> CoordinationRecord:
        """Parse an on-disk JSON document.

        Raises:
            MalformedRecordError: If the document is not a valid record.
        """
        if not isinstance(data, dict):
            raise MalformedRecordError(source, "status document is not an object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedRecordError(source, _summarize(e)) from e

    # ── TXT attributes ───────────────────────────────────────

    def to_txt(self) -> dict[str, str]:
        """Flat key/value attributes for a service advertisement."""
        txt = {
            "agent_id": self.agent_id,
            "status": self.status.value,
            "task": self.current_task,
            "action": self.last_action,
            "updated": str(int(self.updated_at.timestamp())),
        }
        if self.message:
            txt["msg"] = json.dumps(
                {
                    "from": self.agent_id,
                    "content": self.message,
                    "time": self.updated_at.isoformat(),
                },
                separators=(",", ":"),
            )
        return txt


def _summarize(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
        for err in e.errors()
    )


def _parse_updated(raw: str) -> datetime:
    if raw.isdigit():
        return datetime.fromtimestamp(int(raw), tz=UTC)
    return datetime.fromisoformat(raw)


@dataclass(frozen=True, slots=True)
class PeerRecord:
    """Observer-side view of a peer: its record plus discovery metadata.

    File-sourced peers carry no service metadata. Peer records are a
    snapshot of one query and are never cached.
    """

    record: CoordinationRecord
    service_name: str | None = None
    host: str | None = None
    port: int | None = None
    message_from: str | None = None
    message_time: str | None = None

    @property
    def agent_id(self) -> str:
        return self.record.agent_id

    def to_dict(self) -> dict[str, Any]:
        data = self.record.to_document()
        if self.service_name is not None:
            data["service_name"] = self.service_name
            data["host"] = self.host
            data["port"] = self.port
        if self.message_from is not None:
            data["message_from"] = self.message_from
        if self.message_time is not None:
            data["message_time"] = self.message_time
        return data

    @classmethod
    def from_txt(
        cls,
        txt: dict[str, str],
        *,
        service_name: str,
        host: str | None = None,
        port: int | None = None,
    ) -> PeerRecord:
        """Decode TXT attributes of a discovered service.

        Raises:
            MalformedRecordError: If required attributes are missing or invalid.
        """
        missing = [k for k in ("agent_id", "status") if not txt.get(k)]
        if missing:
            raise MalformedRecordError(
                service_name, f"missing attributes: {', '.join(missing)}"
            )

        message = message_from = message_time = None
        if txt.get("msg"):
            try:
                msg = json.loads(txt["msg"])
            except json.JSONDecodeError as e:
                raise MalformedRecordError(service_name, f"bad msg attribute: {e}") from e
            if not isinstance(msg, dict):
                raise MalformedRecordError(service_name, "msg attribute is not an object")
            message = msg.get("content")
            message_from = msg.get("from")
            message_time = msg.get("time")

        fields: dict[str, Any] = {
            "agent_id": txt["agent_id"],
            "status": txt["status"],
            "task": txt.get("task", ""),
            "action": txt.get("action", ""),
            "message": message,
        }
        try:
            if txt.get("updated"):
                fields["updated_at"] = _parse_updated(txt["updated"])
            record = CoordinationRecord.model_validate(fields)
        except ValueError as e:
            # pydantic's ValidationError is a ValueError subclass
            raise MalformedRecordError(service_name, str(e)) from e

        return cls(
            record=record,
            service_name=service_name,
            host=host,
            port=port,
            message_from=message_from,
            message_time=message_time,
        )


@dataclass(frozen=True, slots=True)
class StatusNote:
    """A human-written, non-JSON status file surfaced verbatim."""

    file: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "content": self.content}
