"""Ingestion adapter: raw stat maps (as exported by the game / app IPC) to RunRecord.

The analytics modules never see the loose ``{"Score": ..., "Date Played": ...}``
maps; everything is normalised here.
"""

from __future__ import annotations

import json
import math
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from .constants import RunRecord

FILE_TS_RE = re.compile(r"(\d{4})\.(\d{2})\.(\d{2})-(\d{2})\.(\d{2})\.(\d{2})")
DATE_RE = re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})")
TIME_RE = re.compile(r"(\d{1,2}):(\d{2}):(\d{2})")
TZ_SUFFIX_RE = re.compile(r"([+-]\d{2}:\d{2}|Z)$")

# Formats tried after ISO parsing fails (US order first, as the game writes it)
FALLBACK_DATE_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%d %b %Y %H:%M:%S",
    "%d %b %Y",
)


def to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def scenario_name(file_name: str, stats: dict[str, Any]) -> str:
    direct = stats.get("Scenario")
    if isinstance(direct, str) and direct.strip():
        return direct
    if " - " in file_name:
        return file_name.split(" - ")[0]
    return str(direct if direct is not None else file_name)


def date_played(stats: dict[str, Any]) -> str:
    raw = stats.get("Date Played", stats.get("DatePlayed"))
    return "" if raw is None else str(raw)


def _local_ms(*parts: int) -> float | None:
    try:
        return datetime(*parts).timestamp() * 1000
    except (ValueError, OverflowError):
        return None


def _parse_datetime(raw: str) -> datetime | None:
    s = raw.strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass
    for fmt in FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def parse_record_timestamp(file_name: str, stats: dict[str, Any]) -> float | None:
    """Resolve a run's epoch-ms timestamp.

    Order matters: the file name carries second precision and is trusted
    first; then ``Date Played`` combined with the ``Challenge Start``
    time of day (local time); then the date alone at midnight; then a
    generic parse of ``Date Played``. Returns None when nothing parses.
    """
    m = FILE_TS_RE.search(file_name or "")
    if m:
        y, mo, d, hh, mm, ss = (int(g) for g in m.groups())
        ts = _local_ms(y, mo, d, hh, mm, ss)
        if ts is not None:
            return ts

    date_str = date_played(stats)
    if not date_str:
        return None

    d1 = DATE_RE.search(date_str)
    if d1:
        y, mo, d = (int(g) for g in d1.groups())
        time_str = str(stats.get("Challenge Start") or "")
        t = TIME_RE.search(time_str)
        if t:
            ts = _local_ms(y, mo, d, *(int(g) for g in t.groups()))
            if ts is not None:
                return ts
        ts = _local_ms(y, mo, d)
        if ts is not None:
            return ts

    parsed = _parse_datetime(date_str)
    return parsed.timestamp() * 1000 if parsed else None


def run_duration_ms(stats: dict[str, Any]) -> float:
    """Date Played (end) minus Challenge Start on the same day, 0 when unknown."""
    played = date_played(stats)
    start_time = str(stats.get("Challenge Start") or "")
    end = _parse_datetime(played)
    if end is None or not start_time:
        return 0.0
    # keep the timezone suffix of Date Played when building the start stamp
    tz = TZ_SUFFIX_RE.search(played)
    suffix = tz.group(0) if tz and end.tzinfo is not None else ""
    start = _parse_datetime(f"{played.split('T')[0]}T{start_time}{suffix}")
    if start is None or (start.tzinfo is None) != (end.tzinfo is None):
        return 0.0
    return max(0.0, (end - start).total_seconds() * 1000)


def record_from_stats(file_name: str, stats: dict[str, Any]) -> RunRecord | None:
    """Build a RunRecord; None when the score is present but not numeric."""
    raw_score = stats.get("Score", 0)
    score = to_float(raw_score)
    if score is None:
        return None

    acc = to_float(stats.get("Accuracy", 0)) or 0.0
    if acc > 1:
        acc /= 100  # already a percentage

    return RunRecord(
        scenario=scenario_name(file_name, stats),
        score=score,
        accuracy=acc,
        ttk=to_float(stats.get("Real Avg TTK")),
        ts=parse_record_timestamp(file_name, stats),
        duration_ms=run_duration_ms(stats),
        file_name=file_name,
    )


def records_from_payload(payload: Any) -> tuple[list[RunRecord], int]:
    """Convert a decoded export into records. Returns (records, skipped)."""
    items = payload.get("records") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise ValueError("expected a list of records or an object with a 'records' list")

    records: list[RunRecord] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("stats"), dict):
            skipped += 1
            continue
        rec = record_from_stats(str(item.get("fileName") or ""), item["stats"])
        if rec is None:
            skipped += 1
            continue
        records.append(rec)
    return records, skipped


def load_records(path: Path) -> tuple[list[RunRecord], int]:
    return records_from_payload(json.loads(Path(path).read_text(encoding="utf-8")))
