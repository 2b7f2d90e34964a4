"""WIB (UTC+7) calendar helpers for the mood journal.

Mood entries are keyed by the user's local calendar day in Western
Indonesian Time. Everything here derives "today" from a fixed +7 hour
offset rather than the server's local zone, so the chart looks the same
wherever the API is deployed.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

WIB = timezone(timedelta(hours=7), "WIB")

# Short Indonesian day names, Sunday first.
DAY_NAMES = ("Min", "Sen", "Sel", "Rab", "Kam", "Jum", "Sab")

CHART_DAYS = 7

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def wib_now(now: Optional[datetime] = None) -> datetime:
    """Return `now` (default: the current instant) expressed in WIB.

    Naive datetimes are taken to be UTC.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(WIB)


def wib_today(now: Optional[datetime] = None) -> date:
    return wib_now(now).date()


def day_name(day: date) -> str:
    # date.weekday() is Monday=0; DAY_NAMES starts on Sunday.
    return DAY_NAMES[(day.weekday() + 1) % 7]


def parse_entry_date(raw: str) -> date:
    """Parse a strict `YYYY-MM-DD` string, raising ValueError otherwise."""
    if not isinstance(raw, str) or not _DATE_RE.match(raw):
        raise ValueError("Format tanggal tidak valid (YYYY-MM-DD)")
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError("Format tanggal tidak valid (YYYY-MM-DD)") from None


def date_key(value) -> Optional[str]:
    """Normalise a stored entry date to its `YYYY-MM-DD` string.

    Accepts `date`, `datetime` (its own calendar day) or an ISO string
    possibly carrying a time part.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).split("T")[0]


def chart_window(today: date, days: int = CHART_DAYS) -> list:
    """Return the `days` calendar days ending at `today`, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def format_mood_chart(entries: Iterable, today: Optional[date] = None) -> list:
    """Bucket mood entries into the last seven WIB days.

    Each bucket is matched to at most one entry by string equality of the
    `YYYY-MM-DD` date. Buckets without an entry carry `None` values and
    `hasEntry=False`. The last bucket is today.
    """
    if today is None:
        today = wib_today()
    today_key = today.isoformat()
    by_date = {}
    for entry in entries:
        key = date_key(getattr(entry, "entry_date", None))
        if key and key not in by_date:
            by_date[key] = entry

    chart = []
    for day in chart_window(today):
        key = day.isoformat()
        entry = by_date.get(key)
        chart.append({
            "day": day_name(day),
            "date": key,
            "mood": entry.mood_level if entry else None,
            "emoji": entry.mood_emoji if entry else None,
            "label": entry.mood_label if entry else None,
            "hasEntry": entry is not None,
            "isToday": key == today_key,
        })
    return chart
