"""Core data models shared by the payload, validator, channel and history layers."""
from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Literal, Mapping

WebhookTier = Literal["free", "plus"]

# Published TRMNL webhook payload limits, in bytes.
TIER_LIMITS: Mapping[str, int] = MappingProxyType({
    "free": 2048,
    "plus": 5120,
})


@dataclass(frozen=True)
class Payload:
    """Canonical webhook payload: merge_variables plus any extra top-level keys."""

    merge_variables: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Wire shape; always a fresh copy so the payload itself stays untouched."""
        body: dict[str, Any] = {"merge_variables": copy.deepcopy(self.merge_variables)}
        for key, value in self.extra.items():
            body[key] = copy.deepcopy(value)
        return body


@dataclass
class ValidationResult:
    """Size accounting and diagnostics for one payload under one tier."""

    valid: bool
    size_bytes: int
    tier: str
    limit_bytes: int
    remaining_bytes: int
    percent_used: float
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class WebhookPlugin:
    """A named webhook target from the config file."""

    url: str
    tier: WebhookTier = "free"
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url, "tier": self.tier}
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class WebhookTarget:
    """Resolved destination for a send: plugin name (or label), URL and tier."""

    name: str
    url: str
    tier: WebhookTier = "free"


@dataclass
class SendResult:
    """Outcome of one POST to the webhook."""

    success: bool
    status_code: int | None = None
    duration_ms: int = 0
    error: str | None = None


@dataclass
class HistoryEntry:
    """One line of the send history log."""

    timestamp: str
    plugin: str
    size_bytes: int
    duration_ms: int
    success: bool
    status_code: int | None = None
    error: str | None = None
    preview: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            timestamp=str(data["timestamp"]),
            plugin=str(data.get("plugin") or "unknown"),
            size_bytes=int(data.get("size_bytes") or 0),
            duration_ms=int(data.get("duration_ms") or 0),
            success=bool(data.get("success")),
            status_code=data.get("status_code"),
            error=data.get("error"),
            preview=data.get("preview"),
        )


@dataclass
class HistoryFilter:
    """Query options for the history log; all unset means everything."""

    last: int | None = None
    today: bool = False
    since: datetime | None = None
    success: bool = False
    failed: bool = False
    plugin: str | None = None
