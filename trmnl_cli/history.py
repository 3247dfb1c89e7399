"""Send history: JSON Lines log of every webhook POST, with filters and stats."""
from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from trmnl_cli.models import HistoryEntry, HistoryFilter

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


@dataclass
class HistoryStats:
    entries: int
    size_bytes: int

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)


@dataclass
class HistorySummary:
    total: int
    success: int
    failed: int
    avg_size_bytes: int
    avg_duration_ms: int
    by_plugin: dict[str, int]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def make_preview(merge_variables: dict) -> str | None:
    """First characters of content (or text) for `history --verbose`."""
    for key in ("content", "text"):
        value = merge_variables.get(key)
        if isinstance(value, str) and value:
            return value[:PREVIEW_CHARS]
    return None


class HistoryStore:
    """Append-only JSONL file, trimmed to the newest half once it passes max_size_mb."""

    def __init__(self, path: str | Path, max_size_mb: float = 100) -> None:
        self.path = Path(path)
        self.max_size_mb = max_size_mb

    def append(self, entry: HistoryEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        logger.debug("history entry appended to %s", self.path)
        self._rotate_if_needed()

    def _rotate_if_needed(self) -> None:
        limit = self.max_size_mb * 1024 * 1024
        if self.path.stat().st_size <= limit:
            return
        with open(self.path, encoding="utf-8") as f:
            lines = f.readlines()
        keep = lines[len(lines) // 2:]
        with open(self.path, "w", encoding="utf-8") as f:
            f.writelines(keep)
        logger.info(
            "history exceeded %s MB, dropped %s oldest entries",
            self.max_size_mb,
            len(lines) - len(keep),
        )

    def _read_all(self) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        entries: list[HistoryEntry] = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(HistoryEntry.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("skip malformed history line %s in %s: %s", lineno, self.path, e)
        return entries

    def query(self, flt: HistoryFilter | None = None, now: datetime | None = None) -> list[HistoryEntry]:
        """Entries matching the filter, most recent first; `last` applies after filtering."""
        flt = flt or HistoryFilter()
        now = now or datetime.now(timezone.utc)
        local_today = now.astimezone().date()

        result: list[HistoryEntry] = []
        for entry in reversed(self._read_all()):
            try:
                ts = _parse_timestamp(entry.timestamp)
            except ValueError:
                logger.warning("skip history entry with bad timestamp %r", entry.timestamp)
                continue
            if flt.today and ts.astimezone().date() != local_today:
                continue
            if flt.since is not None and ts < _aware(flt.since):
                continue
            if flt.success and not entry.success:
                continue
            if flt.failed and entry.success:
                continue
            if flt.plugin and entry.plugin != flt.plugin:
                continue
            result.append(entry)

        if flt.last is not None and flt.last >= 0:
            result = result[:flt.last]
        return result

    def stats(self) -> HistoryStats | None:
        if not self.path.exists():
            return None
        return HistoryStats(entries=len(self._read_all()), size_bytes=self.path.stat().st_size)

    def clear(self) -> bool:
        """Delete the log; False when there was nothing to delete."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info("history cleared: %s", self.path)
        return True


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def summarize(entries: list[HistoryEntry]) -> HistorySummary:
    total = len(entries)
    success = sum(1 for e in entries if e.success)
    return HistorySummary(
        total=total,
        success=success,
        failed=total - success,
        avg_size_bytes=round(sum(e.size_bytes for e in entries) / total) if total else 0,
        avg_duration_ms=round(sum(e.duration_ms for e in entries) / total) if total else 0,
        by_plugin=dict(Counter(e.plugin for e in entries)),
    )


def format_entry(entry: HistoryEntry, verbose: bool = False) -> str:
    mark = "✓" if entry.success else "✗"
    try:
        when = _parse_timestamp(entry.timestamp).astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        when = entry.timestamp
    status = entry.status_code if entry.status_code is not None else "-"
    line = f"{mark} {when}  {entry.plugin}  {entry.size_bytes} bytes  {entry.duration_ms}ms  status={status}"
    if entry.error:
        line += f"\n    error: {entry.error}"
    if verbose and entry.preview:
        preview = entry.preview.replace("\n", " ")
        line += f"\n    {preview}"
    return line
