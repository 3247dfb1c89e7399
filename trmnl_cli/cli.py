"""CLI entry: trmnl {send,validate,config,plugin,plugins,history} (python -m trmnl_cli)."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv

from trmnl_cli import __version__
from trmnl_cli import config as cfg
from trmnl_cli.history import HistoryStore, format_entry, summarize
from trmnl_cli.models import TIER_LIMITS, HistoryFilter
from trmnl_cli.payload import create_payload
from trmnl_cli.sender import send
from trmnl_cli.validator import format_validation, validate_payload

load_dotenv()

LOG_FILE = "trmnl.log"


def _setup_logging(log_dir: Path, verbose: bool = False) -> None:
    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    formatter = logging.Formatter(fmt)
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not root.handlers:
        h_stderr = logging.StreamHandler(sys.stderr)
        h_stderr.setFormatter(formatter)
        root.addHandler(h_stderr)
        log_dir.mkdir(parents=True, exist_ok=True)
        h_file = logging.FileHandler(log_dir / LOG_FILE, encoding="utf-8")
        h_file.setFormatter(formatter)
        root.addHandler(h_file)


def _read_content(args: argparse.Namespace) -> str:
    """Content from the positional argument, --file, or piped stdin."""
    if args.content is not None:
        return args.content
    if args.file:
        path = Path(args.file)
        if not path.exists():
            raise FileNotFoundError(f"input file not found: {path}")
        return path.read_text(encoding="utf-8")
    if not sys.stdin.isatty():
        return sys.stdin.read()
    raise ValueError("no content: pass it as an argument, with --file, or on stdin")


def _history_store(args: argparse.Namespace, config: dict) -> HistoryStore:
    path, max_size_mb = cfg.history_settings(config, cfg.config_path(args.config).parent)
    return HistoryStore(path, max_size_mb)


def cmd_send(args: argparse.Namespace) -> int:
    config = cfg.load_config(args.config)
    target = cfg.resolve_target(config, plugin=args.plugin, url=args.url, tier=args.tier)
    content = _read_content(args)
    outcome = send(
        content,
        target,
        history=_history_store(args, config),
        minify=not args.no_minify,
        skip_validation=args.skip_validation,
        dry_run=args.dry_run,
    )

    if args.json:
        report = {"validation": outcome.validation.to_dict(), "sent": outcome.result is not None}
        if outcome.result is not None:
            report.update(
                success=outcome.result.success,
                status_code=outcome.result.status_code,
                duration_ms=outcome.result.duration_ms,
                error=outcome.result.error,
            )
        print(json.dumps(report, indent=2, ensure_ascii=False))
    else:
        print(format_validation(outcome.validation))
        print("")
        if outcome.refused:
            print("✗ Not sent: payload is invalid")
        elif outcome.result is None:
            print(f"Dry run: nothing sent to {target.name}")
        elif outcome.result.success:
            print(f"✓ Sent to {target.name} ({outcome.result.duration_ms}ms)")
        else:
            print(f"✗ Send to {target.name} failed: {outcome.result.error}")
    return 0 if outcome.ok else 1


def cmd_validate(args: argparse.Namespace) -> int:
    tier = args.tier
    if tier is None:
        config = cfg.load_config(args.config)
        tier = "free"
        if args.plugin:
            plugin = cfg.get_plugin(args.plugin, args.config)
            if plugin is None:
                raise ValueError(f"plugin '{args.plugin}' not found in config")
            tier = plugin.tier
        elif config.get("default_plugin"):
            tier = config["plugins"][config["default_plugin"]].get("tier") or "free"
    payload = create_payload(_read_content(args), minify=not args.no_minify)
    result = validate_payload(payload, tier)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(format_validation(result))
    return 0 if result.valid else 1


def cmd_config(args: argparse.Namespace) -> int:
    config = cfg.load_config(args.config)
    history_path, max_size_mb = cfg.history_settings(config, cfg.config_path(args.config).parent)
    print(f"Config file: {cfg.config_path(args.config)}")
    print("")
    print("Plugins:")
    plugins = cfg.list_plugins(args.config)
    if not plugins:
        print("  (none configured)")
        print("")
        print("  Add a plugin:")
        print("    trmnl plugin add <name> <url>")
    for item in plugins:
        default_mark = " (default)" if item.is_default else ""
        tier_mark = " [plus]" if item.plugin.tier == "plus" else ""
        print(f"  {item.name}{default_mark}{tier_mark}")
        print(f"    url: {item.plugin.url}")
        if item.plugin.description:
            print(f"    desc: {item.plugin.description}")
    print("")
    print("History:")
    print(f"  path: {history_path}")
    print(f"  max_size_mb: {max_size_mb}")
    print("")
    print("Environment:")
    print(f"  {cfg.WEBHOOK_ENV}: {os.environ.get(cfg.WEBHOOK_ENV) or '(not set)'}")
    return 0


def _show_plugin_list(config_file: str | None) -> int:
    plugins = cfg.list_plugins(config_file)
    if not plugins:
        print("No plugins configured.")
        print("")
        print("Add a plugin:")
        print("  trmnl plugin add <name> <url>")
        return 0
    print("Plugins:")
    for item in plugins:
        default_mark = " ★" if item.is_default else ""
        tier_mark = " [plus]" if item.plugin.tier == "plus" else ""
        print(f"  {item.name}{default_mark}{tier_mark}")
        print(f"    {item.plugin.url}")
        if item.plugin.description:
            print(f"    {item.plugin.description}")
    print("")
    print("★ = default plugin")
    return 0


def cmd_plugin(args: argparse.Namespace) -> int:
    action = args.action or "list"
    if action == "list":
        return _show_plugin_list(args.config)

    if not args.name:
        raise ValueError(f"usage: trmnl plugin {action} <name>")

    if action == "add":
        url = args.url or args.url_option
        if not url:
            raise ValueError("usage: trmnl plugin add <name> <url>")
        cfg.set_plugin(args.name, url, args.tier or "free", args.desc, args.config)
        print(f"✓ Added plugin: {args.name}")
        if args.default:
            cfg.set_default_plugin(args.name, args.config)
            print("✓ Set as default")
        return 0

    if action in ("rm", "remove"):
        if not cfg.remove_plugin(args.name, args.config):
            raise ValueError(f"plugin '{args.name}' not found")
        print(f"✓ Removed plugin: {args.name}")
        return 0

    if action == "default":
        if not cfg.set_default_plugin(args.name, args.config):
            raise ValueError(f"plugin '{args.name}' not found")
        print(f"✓ Default plugin: {args.name}")
        return 0

    # set / update: only the given fields change
    existing = cfg.get_plugin(args.name, args.config)
    if existing is None:
        raise ValueError(f"plugin '{args.name}' not found")
    cfg.set_plugin(
        args.name,
        args.url_option or args.url or existing.url,
        args.tier or existing.tier,
        args.desc if args.desc is not None else existing.description,
        args.config,
    )
    print(f"✓ Updated plugin: {args.name}")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    config = cfg.load_config(args.config)
    store = _history_store(args, config)

    if args.action == "clear":
        if not args.confirm:
            print("This will delete all history. Use --confirm to proceed.")
            print(f"History file: {store.path}")
            return 0
        if store.clear():
            print("✓ History cleared")
        else:
            print("History file does not exist.")
        return 0

    if args.action == "stats":
        stats = store.stats()
        if stats is None:
            print("No history file found.")
            return 0
        summary = summarize(store.query())
        total = summary.total
        print("History Statistics")
        print("")
        print(f"File:     {store.path}")
        print(f"Size:     {stats.size_mb} MB")
        print("")
        print(f"Total:    {total} sends")
        print(f"Success:  {summary.success} ({round(summary.success / total * 100) if total else 0}%)")
        print(f"Failed:   {summary.failed} ({round(summary.failed / total * 100) if total else 0}%)")
        print("")
        print(f"Avg size:     {summary.avg_size_bytes} bytes")
        print(f"Avg duration: {summary.avg_duration_ms}ms")
        if len(summary.by_plugin) > 1:
            print("")
            print("By plugin:")
            for plugin, count in summary.by_plugin.items():
                print(f"  {plugin}: {count} sends")
        week_ago = datetime.now(timezone.utc) - timedelta(days=7)
        print("")
        print(f"Today:     {len(store.query(HistoryFilter(today=True)))} sends")
        print(f"This week: {len(store.query(HistoryFilter(since=week_ago)))} sends")
        return 0

    flt = HistoryFilter(
        last=args.last,
        today=args.today,
        success=args.success,
        failed=args.failed,
        plugin=args.plugin,
    )
    entries = store.query(flt)
    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2, ensure_ascii=False))
        return 0
    if not entries:
        print("No history entries found.")
        print(f"History file: {store.path}")
        return 0

    stats = store.stats()
    if stats is not None:
        print(f"History: {stats.entries} total entries ({stats.size_mb} MB)")
        print("")
    parts = []
    if args.today:
        parts.append("today")
    if args.failed:
        parts.append("failed")
    if args.success:
        parts.append("success")
    if args.plugin:
        parts.append(f"plugin: {args.plugin}")
    if parts:
        print(f"Filter: {', '.join(parts)}")
        print("")
    print(f"Showing {len(entries)} entries (most recent first):")
    print("")
    for entry in entries:
        print(format_entry(entry, args.verbose))
    return 0


def _add_input_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("content", nargs="?", default=None, help="HTML or JSON payload (default: read --file or stdin)")
    p.add_argument("-f", "--file", default=None, help="Read content from file")
    p.add_argument("-t", "--tier", choices=list(TIER_LIMITS), default=None, help="Tier limit to check against")
    p.add_argument("-p", "--plugin", default=None, help="Plugin name from config")
    p.add_argument("--no-minify", action="store_true", help="Send HTML as-is, without minification")
    p.add_argument("--json", action="store_true", help="Output the report as JSON")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trmnl", description="Send content to TRMNL e-ink displays")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=None, help=f"Config file path (default: ${cfg.CONFIG_ENV} or {cfg.DEFAULT_CONFIG})")
    parser.add_argument("--verbose-log", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    send_parser = sub.add_parser("send", help="Send content to a TRMNL webhook")
    _add_input_args(send_parser)
    send_parser.add_argument("-u", "--url", default=None, help="Webhook URL (overrides plugin)")
    send_parser.add_argument("--skip-validation", action="store_true", help="Send even if validation fails")
    send_parser.add_argument("--dry-run", action="store_true", help="Build and validate but do not send")
    send_parser.set_defaults(func=cmd_send)

    validate_parser = sub.add_parser("validate", help="Validate payload without sending")
    _add_input_args(validate_parser)
    validate_parser.set_defaults(func=cmd_validate)

    config_parser = sub.add_parser("config", help="Show configuration")
    config_parser.set_defaults(func=cmd_config)

    plugin_parser = sub.add_parser("plugin", help="Manage webhook plugins")
    plugin_parser.add_argument(
        "action",
        nargs="?",
        choices=["list", "add", "rm", "remove", "default", "set", "update"],
        default=None,
    )
    plugin_parser.add_argument("name", nargs="?", default=None)
    plugin_parser.add_argument("url", nargs="?", default=None)
    plugin_parser.add_argument("-t", "--tier", choices=list(TIER_LIMITS), default=None, help="Tier: free or plus")
    plugin_parser.add_argument("-d", "--desc", default=None, help="Plugin description")
    plugin_parser.add_argument("-u", "--url", dest="url_option", default=None, help="Webhook URL (for set action)")
    plugin_parser.add_argument("--default", action="store_true", help="Set as default plugin")
    plugin_parser.set_defaults(func=cmd_plugin)

    plugins_parser = sub.add_parser("plugins", help="List all plugins")
    plugins_parser.set_defaults(func=lambda args: _show_plugin_list(args.config))

    history_parser = sub.add_parser("history", help="View send history")
    history_parser.add_argument("action", nargs="?", choices=["stats", "clear"], default=None)
    history_parser.add_argument("-n", "--last", type=int, default=10, help="Show last N entries (default: 10)")
    history_parser.add_argument("--today", action="store_true", help="Show only today's entries")
    history_parser.add_argument("--failed", action="store_true", help="Show only failed sends")
    history_parser.add_argument("--success", action="store_true", help="Show only successful sends")
    history_parser.add_argument("-p", "--plugin", default=None, help="Filter by plugin name")
    history_parser.add_argument("--json", action="store_true", help="Output as JSON")
    history_parser.add_argument("-v", "--verbose", action="store_true", help="Show content preview")
    history_parser.add_argument("--confirm", action="store_true", help="Confirm deletion (history clear)")
    history_parser.set_defaults(func=cmd_history)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _setup_logging(cfg.config_path(args.config).parent, args.verbose_log)

    try:
        return args.func(args)
    except FileNotFoundError as e:
        logging.error("%s", e)
        return 1
    except ValueError as e:
        logging.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
