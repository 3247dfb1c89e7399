"""Channel abstraction: deliver a built payload to a webhook target."""
from __future__ import annotations

from abc import ABC, abstractmethod

from trmnl_cli.models import Payload, SendResult, WebhookTarget


class Channel(ABC):
    """Abstract channel: send(payload, target) -> SendResult."""

    @abstractmethod
    def send(self, payload: Payload, target: WebhookTarget) -> SendResult:
        """POST the payload to the target; failures are reported, not raised."""
        ...
