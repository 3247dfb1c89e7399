"""Payload builder: raw HTML or JSON input -> canonical webhook payload."""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from trmnl_cli.models import Payload

logger = logging.getLogger(__name__)

COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
INTER_TAG_WS_RE = re.compile(r">\s+<")
WS_RUN_RE = re.compile(r"\s{2,}")


def minify_html(html: str) -> str:
    """Minify HTML content to reduce payload size.

    Strips whitespace that has no effect on rendered output:
     - HTML comments
     - whitespace between tags (> ... <)
     - leading/trailing whitespace
     - runs of whitespace collapsed to a single space

    Textual only; tag nesting is never inspected.
    """
    html = COMMENT_RE.sub("", html)
    html = INTER_TAG_WS_RE.sub("><", html)
    html = WS_RUN_RE.sub(" ", html)
    return html.strip()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def looks_like_html(value: Any) -> bool:
    return isinstance(value, str) and "<" in value and ">" in value


def minify_merge_variables(merge_variables: dict[str, Any]) -> dict[str, Any]:
    """Minify every value that looks like HTML; everything else passes through."""
    result: dict[str, Any] = {}
    for key, value in merge_variables.items():
        if looks_like_html(value):
            result[key] = minify_html(value)
        else:
            result[key] = value
    return result


def _split_parsed(parsed: Any) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return (merge_variables, extra top-level keys) for a parsed JSON value."""
    if not isinstance(parsed, dict):
        # Scalars and arrays carry no named fields.
        logger.debug("JSON input is a %s, not an object; no merge variables", type(parsed).__name__)
        return {}, {}
    merge_variables = parsed.get("merge_variables")
    if isinstance(merge_variables, dict):
        extra = {k: v for k, v in parsed.items() if k != "merge_variables"}
        return dict(merge_variables), extra
    return dict(parsed), {}


def create_payload(content: str, minify: bool = True) -> Payload:
    """Parse content into a webhook payload.

    JSON is tried first: an object with a ``merge_variables`` object is used as is,
    any other object becomes the merge variables. Anything that is not JSON (and a
    bare ``null``) is treated as raw HTML and placed in ``content``.
    """
    try:
        parsed = json.loads(content, parse_constant=_reject_constant)
    except ValueError:
        parsed = None

    if parsed is None:
        logger.debug("Input is not JSON, treating as raw HTML (%s chars)", len(content))
        merge_variables: dict[str, Any] = {"content": content}
        extra: dict[str, Any] = {}
    else:
        merge_variables, extra = _split_parsed(parsed)

    if minify:
        merge_variables = minify_merge_variables(merge_variables)
    return Payload(merge_variables=merge_variables, extra=extra)
