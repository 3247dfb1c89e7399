"""Shared fixtures: isolated config/history files and a clean environment."""
from __future__ import annotations

from pathlib import Path

import pytest

from trmnl_cli.history import HistoryStore

WEBHOOK_URL = "https://usetrmnl.com/api/custom_plugins/0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TRMNL_WEBHOOK", raising=False)
    monkeypatch.delenv("TRMNL_CONFIG", raising=False)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "config.yaml"
    monkeypatch.setenv("TRMNL_CONFIG", str(path))
    return path


@pytest.fixture
def history(tmp_path: Path) -> HistoryStore:
    return HistoryStore(tmp_path / "history.jsonl")


@pytest.fixture
def layout_html() -> str:
    return """<div class="layout layout--col">
  <div class="item">
    <span class="value">Test</span>
  </div>
</div>
<div class="title_bar">
  <span class="title">Title</span>
</div>"""


@pytest.fixture
def webhook_url() -> str:
    return WEBHOOK_URL
