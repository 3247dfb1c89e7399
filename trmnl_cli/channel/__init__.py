"""Channel layer: base + TRMNL webhook; factory by type."""
from __future__ import annotations

from trmnl_cli.channel.base import Channel
from trmnl_cli.channel.webhook import WebhookChannel

_CHANNELS: dict[str, type[Channel]] = {
    "webhook": WebhookChannel,
}


def get_channel(channel_type: str = "webhook") -> type[Channel]:
    """Return channel class for given type (only 'webhook' for now)."""
    if channel_type not in _CHANNELS:
        raise ValueError(f"Unknown channel type: {channel_type}")
    return _CHANNELS[channel_type]


__all__ = ["Channel", "WebhookChannel", "get_channel"]
