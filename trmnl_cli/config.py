"""Config store: named webhook plugins, default plugin and history settings (YAML)."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from trmnl_cli.models import TIER_LIMITS, WebhookPlugin, WebhookTarget

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".trmnl"
DEFAULT_CONFIG = CONFIG_DIR / "config.yaml"
DEFAULT_HISTORY_MAX_SIZE_MB = 100
WEBHOOK_ENV = "TRMNL_WEBHOOK"
CONFIG_ENV = "TRMNL_CONFIG"


@dataclass
class PluginListing:
    name: str
    plugin: WebhookPlugin
    is_default: bool


def config_path(path: str | Path | None = None) -> Path:
    """Explicit path, then $TRMNL_CONFIG, then ~/.trmnl/config.yaml."""
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG


def validate_config(config: dict) -> None:
    """Validate plugins, default_plugin and history; raise ValueError on error."""
    plugins = config.get("plugins") or {}
    if not isinstance(plugins, dict):
        raise ValueError("config: plugins must be a dict")
    for name, plugin in plugins.items():
        if not isinstance(plugin, dict):
            raise ValueError(f"config: plugins.{name} must be a dict")
        if not plugin.get("url"):
            raise ValueError(f"config: plugins.{name} missing 'url'")
        tier = plugin.get("tier", "free")
        if tier not in TIER_LIMITS:
            raise ValueError(f"config: plugins.{name} has unknown tier '{tier}'")

    default = config.get("default_plugin")
    if default is not None and default not in plugins:
        raise ValueError(f"config: default_plugin '{default}' not in plugins")

    history = config.get("history") or {}
    if not isinstance(history, dict):
        raise ValueError("config: history must be a dict")
    max_size = history.get("max_size_mb", DEFAULT_HISTORY_MAX_SIZE_MB)
    if not isinstance(max_size, (int, float)) or max_size <= 0:
        raise ValueError("config: history.max_size_mb must be a positive number")


def load_config(path: str | Path | None = None) -> dict:
    """Load YAML config; a missing file is an empty config."""
    path = config_path(path)
    if not path.exists():
        logger.debug("config not found at %s, using empty config", path)
        return {"plugins": {}}
    with open(path, encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"config: cannot parse {path}: {e}") from e
    if not isinstance(config, dict):
        raise ValueError(f"config: {path} must contain a mapping")
    config.setdefault("plugins", {})
    validate_config(config)
    return config


def save_config(config: dict, path: str | Path | None = None) -> Path:
    path = config_path(path)
    validate_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, sort_keys=False, allow_unicode=True)
    logger.debug("config written to %s", path)
    return path


def _plugin_from_dict(data: dict[str, Any]) -> WebhookPlugin:
    return WebhookPlugin(
        url=str(data["url"]),
        tier=data.get("tier") or "free",
        description=data.get("description"),
    )


def list_plugins(path: str | Path | None = None) -> list[PluginListing]:
    config = load_config(path)
    default = config.get("default_plugin")
    return [
        PluginListing(name=name, plugin=_plugin_from_dict(data), is_default=name == default)
        for name, data in config["plugins"].items()
    ]


def get_plugin(name: str, path: str | Path | None = None) -> WebhookPlugin | None:
    data = load_config(path)["plugins"].get(name)
    return _plugin_from_dict(data) if data else None


def set_plugin(
    name: str,
    url: str,
    tier: str = "free",
    description: str | None = None,
    path: str | Path | None = None,
) -> WebhookPlugin:
    """Add or replace a plugin. The first plugin added becomes the default."""
    if tier not in TIER_LIMITS:
        raise ValueError(f"unknown tier '{tier}' (expected one of: {', '.join(TIER_LIMITS)})")
    config = load_config(path)
    plugin = WebhookPlugin(url=url, tier=tier, description=description)
    config["plugins"][name] = plugin.to_dict()
    if not config.get("default_plugin"):
        config["default_plugin"] = name
    save_config(config, path)
    logger.info("plugin '%s' saved (tier=%s)", name, tier)
    return plugin


def remove_plugin(name: str, path: str | Path | None = None) -> bool:
    config = load_config(path)
    if name not in config["plugins"]:
        return False
    del config["plugins"][name]
    if config.get("default_plugin") == name:
        config.pop("default_plugin")
    save_config(config, path)
    logger.info("plugin '%s' removed", name)
    return True


def set_default_plugin(name: str, path: str | Path | None = None) -> bool:
    config = load_config(path)
    if name not in config["plugins"]:
        return False
    config["default_plugin"] = name
    save_config(config, path)
    return True


def history_settings(config: dict, base_dir: Path = CONFIG_DIR) -> tuple[Path, float]:
    """(history file path, max size in MB); the log sits in base_dir unless history.path is set."""
    history = config.get("history") or {}
    raw_path = history.get("path")
    history_path = Path(raw_path).expanduser() if raw_path else base_dir / "history.jsonl"
    return history_path, history.get("max_size_mb", DEFAULT_HISTORY_MAX_SIZE_MB)


def resolve_target(
    config: dict,
    plugin: str | None = None,
    url: str | None = None,
    tier: str | None = None,
) -> WebhookTarget:
    """Pick the webhook for a send.

    Order: explicit URL, named plugin, default plugin, $TRMNL_WEBHOOK. An explicit
    tier overrides the plugin's tier.
    """
    if url:
        return WebhookTarget(name="url", url=url, tier=tier or "free")

    plugins = config.get("plugins") or {}
    name = plugin or config.get("default_plugin")
    if plugin and plugin not in plugins:
        raise ValueError(f"plugin '{plugin}' not found in config")
    if name and name in plugins:
        found = _plugin_from_dict(plugins[name])
        return WebhookTarget(name=name, url=found.url, tier=tier or found.tier)

    env_url = os.environ.get(WEBHOOK_ENV, "").strip()
    if env_url:
        return WebhookTarget(name="env", url=env_url, tier=tier or "free")

    raise ValueError(
        f"no webhook configured: pass --url, add a plugin (trmnl plugin add <name> <url>) or set {WEBHOOK_ENV}"
    )
