"""TRMNL custom plugin webhook channel."""
from __future__ import annotations

import logging
import time

import requests

from trmnl_cli.channel.base import Channel
from trmnl_cli.models import Payload, SendResult, WebhookTarget

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


def mask_url(url: str) -> str:
    """Keep only the first 8 characters of the webhook id for log lines."""
    stripped = url.rstrip("/")
    head, sep, tail = stripped.rpartition("/")
    if not sep or len(tail) <= 8:
        return url
    return f"{head}/{tail[:8]}***"


class WebhookChannel(Channel):
    """POST merge_variables to https://usetrmnl.com/api/custom_plugins/<uuid>."""

    def send(self, payload: Payload, target: WebhookTarget) -> SendResult:
        masked = mask_url(target.url)
        logger.info("POST %s (plugin=%s tier=%s)", masked, target.name, target.tier)
        started = time.monotonic()
        try:
            resp = requests.post(target.url, json=payload.to_dict(), timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.exception("webhook request failed: %s", e)
            return SendResult(success=False, duration_ms=duration_ms, error=str(e))

        duration_ms = int((time.monotonic() - started) * 1000)
        if resp.status_code == 429:
            logger.error("webhook rate limited (429) after %sms", duration_ms)
            return SendResult(
                success=False,
                status_code=resp.status_code,
                duration_ms=duration_ms,
                error="rate limit exceeded",
            )
        if not 200 <= resp.status_code < 300:
            body_preview = resp.text[:500]
            logger.error("webhook send failed: status=%s body=%s", resp.status_code, body_preview)
            return SendResult(
                success=False,
                status_code=resp.status_code,
                duration_ms=duration_ms,
                error=f"HTTP {resp.status_code}: {body_preview}",
            )

        logger.info("webhook accepted payload: status=%s duration=%sms", resp.status_code, duration_ms)
        return SendResult(success=True, status_code=resp.status_code, duration_ms=duration_ms)
