from __future__ import annotations

import re
from datetime import timedelta


_UNIT_SECONDS: dict[str, int] = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
    "w": 604800,
    "week": 604800,
    "weeks": 604800,
}
_PART_RE = re.compile(r"(\d+)\s*([a-z]+)")


def parse_duration(raw: str) -> timedelta:
    """Parse strings like `2h30m`, `1d 12h` or `90 minutes`. Raises ValueError on junk."""
    text = str(raw or "").strip().lower()
    if not text:
        raise ValueError("empty duration")
    total = 0
    pos = 0
    for match in _PART_RE.finditer(text):
        if text[pos : match.start()].strip(" ,"):
            raise ValueError(f"couldn't understand {raw!r}")
        unit = _UNIT_SECONDS.get(match.group(2))
        if unit is None:
            raise ValueError(f"unknown unit {match.group(2)!r}")
        total += int(match.group(1)) * unit
        pos = match.end()
    if pos == 0 or text[pos:].strip(" ,"):
        raise ValueError(f"couldn't understand {raw!r}")
    try:
        return timedelta(seconds=total)
    except OverflowError as exc:
        raise ValueError(f"{raw!r} is too long") from exc


def format_duration(value: timedelta) -> str:
    seconds = max(0, int(value.total_seconds()))
    if seconds == 0:
        return "0s"
    parts: list[str] = []
    for suffix, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        count, seconds = divmod(seconds, size)
        if count:
            parts.append(f"{count}{suffix}")
    return " ".join(parts)
