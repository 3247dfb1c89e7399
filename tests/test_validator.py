"""Tests for payload validation: size accounting, structure and markup checks."""
from __future__ import annotations

import copy

import pytest

from trmnl_cli.models import TIER_LIMITS, Payload
from trmnl_cli.payload import create_payload
from trmnl_cli.validator import format_validation, payload_size, validate_payload

# len('{"merge_variables":{"text":""}}')
TEXT_OVERHEAD = 31


def text_payload(n: int) -> Payload:
    return Payload(merge_variables={"text": "x" * n})


def test_valid_layout_has_no_diagnostics(layout_html):
    result = validate_payload(create_payload(layout_html))
    assert result.valid is True
    assert result.warnings == []
    assert result.errors == []
    assert result.tier == "free"
    assert result.limit_bytes == 2048


def test_minimal_layout_is_clean():
    result = validate_payload(create_payload('<div class="layout"><span>hi</span></div>'), "free")
    assert (result.valid, result.warnings, result.errors) == (True, [], [])


def test_size_is_compact_utf8_json():
    assert payload_size(text_payload(0)) == TEXT_OVERHEAD
    assert payload_size(Payload(merge_variables={"text": "é"})) == TEXT_OVERHEAD + 2
    assert payload_size(Payload(merge_variables={"text": "🦊"})) == TEXT_OVERHEAD + 4


def test_size_accounting_fields():
    result = validate_payload(text_payload(1000 - TEXT_OVERHEAD))
    assert result.size_bytes == 1000
    assert result.remaining_bytes == 1048
    assert result.percent_used == 48.8


def test_extra_top_level_keys_count_towards_size():
    plain = Payload(merge_variables={"text": "hi"})
    with_strategy = Payload(merge_variables={"text": "hi"}, extra={"merge_strategy": "deep_merge"})
    assert payload_size(with_strategy) == payload_size(plain) + len(',"merge_strategy":"deep_merge"')


def test_near_limit_warning():
    result = validate_payload(text_payload(1900 - TEXT_OVERHEAD))
    assert result.valid is True
    assert result.percent_used == 92.8
    assert result.warnings == ["Payload is at 92.8% of free tier limit"]


def test_exactly_at_limit_is_valid_with_warning():
    result = validate_payload(text_payload(2048 - TEXT_OVERHEAD))
    assert result.valid is True
    assert result.remaining_bytes == 0
    assert result.warnings == ["Payload is at 100% of free tier limit"]


def test_over_limit_is_an_error_and_not_a_warning():
    result = validate_payload(text_payload(2049 - TEXT_OVERHEAD))
    assert result.valid is False
    assert result.errors == ["Payload exceeds free tier limit: 2049 bytes > 2048 bytes"]
    assert result.warnings == []
    assert result.remaining_bytes == -1


def test_plus_tier_allows_larger_payloads():
    payload = text_payload(3000)
    assert validate_payload(payload, "free").valid is False
    result = validate_payload(payload, "plus")
    assert result.valid is True
    assert result.limit_bytes == 5120


def test_large_html_payload_exceeds_free_tier():
    html = '<div class="layout">' + "<span>word</span> " * 200 + "</div>"
    result = validate_payload(create_payload(html), "free")
    assert result.valid is False
    assert any("exceeds" in e and "free" in e for e in result.errors)


def test_percent_rounds_half_up():
    # 33 / 16 * 1000 == 2062.5 exactly
    result = validate_payload(text_payload(2), "tiny", limits={"tiny": 16})
    assert result.size_bytes == 33
    assert result.percent_used == 206.3


def test_custom_limits_are_used():
    result = validate_payload(text_payload(10), "mini", limits={"mini": 40})
    assert result.limit_bytes == 40
    assert result.valid is False


def test_unknown_tier_raises():
    with pytest.raises(ValueError, match="unknown tier"):
        validate_payload(text_payload(1), "gold")


def test_empty_merge_variables_is_an_error():
    result = validate_payload(Payload())
    assert result.valid is False
    assert result.errors == ["Missing merge_variables object"]
    assert result.warnings == []


def test_no_content_or_text_warns():
    result = validate_payload(Payload(merge_variables={"title": "hello"}))
    assert result.valid is True
    assert result.warnings == ["No content or text field in merge_variables"]


def test_empty_content_counts_as_missing():
    result = validate_payload(Payload(merge_variables={"content": "", "title": "x"}))
    assert result.warnings == ["No content or text field in merge_variables"]


def test_text_only_skips_html_checks():
    result = validate_payload(Payload(merge_variables={"text": "<div>"}))
    assert result.warnings == []


def test_unclosed_divs_warning():
    result = validate_payload(create_payload('<div class="layout"><div><span>hi</span></div>'))
    assert result.valid is True
    assert result.warnings == ["Potential unclosed divs: 2 open, 1 close"]


def test_missing_layout_class_warning():
    result = validate_payload(create_payload('<div class="container"><span>hi</span></div>'))
    assert len(result.warnings) == 1
    assert "Missing .layout class" in result.warnings[0]


@pytest.mark.parametrize(
    "html",
    [
        '<div class="layout">x</div>',
        "<div class='layout'>x</div>",
        '<div class="view layout--col">x</div>',
        '<div class="a layout b">x</div>',
    ],
)
def test_layout_class_detected(html):
    assert validate_payload(create_payload(html)).warnings == []


@pytest.mark.parametrize(
    "html",
    [
        '<div class="mylayoutx">x</div>',
        '<div class="layouts">x</div>',
        '<div id="layout">x</div>',
        "<div>layout</div>",
    ],
)
def test_layout_class_not_detected(html):
    warnings = validate_payload(create_payload(html)).warnings
    assert warnings == ["Missing .layout class - TRMNL requires a root layout element"]


def test_non_string_content_skips_html_checks():
    result = validate_payload(Payload(merge_variables={"content": 42}))
    assert result.valid is True
    assert result.warnings == []


def test_diagnostics_keep_fixed_order():
    html = '<div class="box"><div>' + "x" * 2100
    result = validate_payload(Payload(merge_variables={"content": html}))
    assert result.errors == [
        f"Payload exceeds free tier limit: {result.size_bytes} bytes > 2048 bytes",
    ]
    assert result.warnings == [
        "Potential unclosed divs: 2 open, 0 close",
        "Missing .layout class - TRMNL requires a root layout element",
    ]


def test_validate_does_not_mutate_and_is_repeatable(layout_html):
    payload = create_payload(layout_html, minify=False)
    before = copy.deepcopy(payload.to_dict())
    first = validate_payload(payload)
    second = validate_payload(payload)
    assert payload.to_dict() == before
    assert first == second


def test_minified_payload_is_smaller(layout_html):
    minified = validate_payload(create_payload(layout_html))
    raw = validate_payload(create_payload(layout_html, minify=False))
    assert minified.size_bytes < raw.size_bytes


def test_to_dict_field_names():
    result = validate_payload(create_payload('<div class="layout">x</div>'))
    assert list(result.to_dict()) == [
        "valid",
        "size_bytes",
        "tier",
        "limit_bytes",
        "remaining_bytes",
        "percent_used",
        "warnings",
        "errors",
    ]


def test_tier_limits_are_read_only():
    with pytest.raises(TypeError):
        TIER_LIMITS["free"] = 10**6


def test_format_validation():
    result = validate_payload(text_payload(2049 - TEXT_OVERHEAD))
    text = format_validation(result)
    assert text.splitlines()[0] == "✗ Payload: 2049 bytes (2.00 KB)"
    assert "  Tier: free (limit: 2.00 KB)" in text
    assert "  Used: 100% (-1 bytes remaining)" in text
    assert "Errors:" in text
    assert "Warnings:" not in text


def test_lone_surrogate_is_measured_as_replacement_character():
    payload = create_payload('{"content": "<div class=\\"layout\\">\\ud800</div>"}')
    assert payload.merge_variables["content"] == '<div class="layout">\ud800</div>'

    result = validate_payload(payload)

    replaced = Payload(merge_variables={"content": '<div class="layout">�</div>'})
    assert result.valid is True
    assert result.size_bytes == payload_size(replaced)
    assert payload_size(Payload(merge_variables={"text": "\udfff"})) == TEXT_OVERHEAD + 3
