"""Payload validation for TRMNL webhooks: size limits and markup sanity checks."""
from __future__ import annotations

import json
import math
import re
from typing import Any, Mapping

from trmnl_cli.models import TIER_LIMITS, Payload, ValidationResult

NEAR_LIMIT_PERCENT = 90

# 'layout' as one of the classes, e.g. class="layout layout--col"
LAYOUT_CLASS_RE = re.compile(r"""class=["'][^"']*\blayout\b[^"']*["']""")

# Lone surrogates (e.g. from a "\ud800" JSON escape) are sent as U+FFFD.
SURROGATE_RE = re.compile("[\ud800-\udfff]")


def payload_size(payload: Payload) -> int:
    """UTF-8 byte length of the compact JSON body that goes over the wire."""
    body = json.dumps(payload.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return len(SURROGATE_RE.sub("\ufffd", body).encode("utf-8"))


def percent_of(size_bytes: int, limit_bytes: int) -> float:
    """Percentage with one decimal, rounding half up."""
    return math.floor(size_bytes / limit_bytes * 1000 + 0.5) / 10


def _format_percent(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _html_warnings(content: str) -> list[str]:
    warnings: list[str] = []
    open_divs = content.count("<div")
    close_divs = content.count("</div>")
    if open_divs != close_divs:
        warnings.append(f"Potential unclosed divs: {open_divs} open, {close_divs} close")
    if not LAYOUT_CLASS_RE.search(content):
        warnings.append("Missing .layout class - TRMNL requires a root layout element")
    return warnings


def validate_payload(
    payload: Payload,
    tier: str = "free",
    limits: Mapping[str, int] = TIER_LIMITS,
) -> ValidationResult:
    """Validate a webhook payload against the size limit for ``tier``.

    Errors block sending; warnings are advisory. Raises ValueError for a tier
    that has no entry in ``limits``.
    """
    if tier not in limits:
        raise ValueError(f"unknown tier '{tier}' (expected one of: {', '.join(limits)})")

    size_bytes = payload_size(payload)
    limit_bytes = limits[tier]
    percent_used = percent_of(size_bytes, limit_bytes)

    warnings: list[str] = []
    errors: list[str] = []

    if size_bytes > limit_bytes:
        errors.append(f"Payload exceeds {tier} tier limit: {size_bytes} bytes > {limit_bytes} bytes")
    elif percent_used > NEAR_LIMIT_PERCENT:
        warnings.append(f"Payload is at {_format_percent(percent_used)}% of {tier} tier limit")

    merge_variables: Any = payload.merge_variables
    if not isinstance(merge_variables, dict) or not merge_variables:
        errors.append("Missing merge_variables object")
    elif not merge_variables.get("content") and not merge_variables.get("text"):
        warnings.append("No content or text field in merge_variables")

    content = merge_variables.get("content") if isinstance(merge_variables, dict) else None
    if isinstance(content, str) and content:
        warnings.extend(_html_warnings(content))

    return ValidationResult(
        valid=not errors,
        size_bytes=size_bytes,
        tier=tier,
        limit_bytes=limit_bytes,
        remaining_bytes=limit_bytes - size_bytes,
        percent_used=percent_used,
        warnings=warnings,
        errors=errors,
    )


def format_validation(result: ValidationResult) -> str:
    """Human-readable report, one fact per line."""
    status = "✓" if result.valid else "✗"
    size_kb = result.size_bytes / 1024
    limit_kb = result.limit_bytes / 1024

    lines = [
        f"{status} Payload: {result.size_bytes} bytes ({size_kb:.2f} KB)",
        f"  Tier: {result.tier} (limit: {limit_kb:.2f} KB)",
        f"  Used: {_format_percent(result.percent_used)}% ({result.remaining_bytes} bytes remaining)",
    ]
    if result.errors:
        lines.extend(["", "Errors:"])
        lines.extend(f"  ✗ {error}" for error in result.errors)
    if result.warnings:
        lines.extend(["", "Warnings:"])
        lines.extend(f"  ⚠ {warning}" for warning in result.warnings)
    return "\n".join(lines)
