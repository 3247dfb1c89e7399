"""Send workflow: build payload, validate against the target tier, POST, record history."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from trmnl_cli.channel import get_channel
from trmnl_cli.history import HistoryStore, make_preview, now_iso
from trmnl_cli.models import HistoryEntry, Payload, SendResult, ValidationResult, WebhookTarget
from trmnl_cli.payload import create_payload
from trmnl_cli.validator import validate_payload

logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    payload: Payload
    validation: ValidationResult
    result: SendResult | None = None
    refused: bool = False

    @property
    def ok(self) -> bool:
        if self.refused:
            return False
        return self.result is None or self.result.success


def send(
    content: str,
    target: WebhookTarget,
    history: HistoryStore | None = None,
    minify: bool = True,
    skip_validation: bool = False,
    dry_run: bool = False,
    channel_type: str = "webhook",
) -> SendOutcome:
    """Build and validate the payload, then POST it unless refused or dry_run.

    An invalid payload is refused (nothing sent, nothing recorded) unless
    skip_validation is set. Every POST attempt is appended to history.
    """
    payload = create_payload(content, minify=minify)
    validation = validate_payload(payload, target.tier)
    for warning in validation.warnings:
        logger.warning("%s", warning)

    if not validation.valid:
        if not skip_validation:
            for error in validation.errors:
                logger.error("%s", error)
            logger.error("payload refused, nothing sent (use --skip-validation to send anyway)")
            return SendOutcome(payload=payload, validation=validation, refused=True)
        logger.warning("sending invalid payload: %s", "; ".join(validation.errors))

    if dry_run:
        logger.info(
            "Dry-run: would send %s bytes to plugin='%s' tier=%s",
            validation.size_bytes,
            target.name,
            target.tier,
        )
        return SendOutcome(payload=payload, validation=validation)

    channel = get_channel(channel_type)()
    result = channel.send(payload, target)

    if history is not None:
        history.append(
            HistoryEntry(
                timestamp=now_iso(),
                plugin=target.name,
                size_bytes=validation.size_bytes,
                duration_ms=result.duration_ms,
                success=result.success,
                status_code=result.status_code,
                error=result.error,
                preview=make_preview(payload.merge_variables),
            )
        )
    return SendOutcome(payload=payload, validation=validation, result=result)
