"""Date, time and matching helpers shared by the schedule tools."""
import re
from datetime import date, timedelta
from typing import Iterable, List, Optional

from lifeagent.domain.models.records import BlockStatus, ScheduleBlock

_RELATIVE_DAYS = {
    "today": 0,
    "tomorrow": 1,
    "yesterday": -1,
    "day after tomorrow": 2,
    "the day after tomorrow": 2,
    "day before yesterday": -2,
    "the day before yesterday": -2,
    "今天": 0,
    "明天": 1,
    "昨天": -1,
    "后天": 2,
    "大后天": 3,
    "前天": -2,
}

_IN_N_DAYS = re.compile(r"^in\s+(\d+)\s+days?$")
_N_DAYS_FROM_NOW = re.compile(r"^(\d+)\s+days?\s+(?:from\s+now|later)$")
_N_DAYS_AGO = re.compile(r"^(\d+)\s+days?\s+ago$")
_N_DAYS_LATER_ZH = re.compile(r"^(\d+)\s*天后$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_MONTH_DAY = re.compile(r"^(\d{1,2})-(\d{1,2})$")
_TIME = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_WEEKDAY = re.compile(r"^(?:(this|next)\s+)?(" + "|".join(_WEEKDAYS) + r")$")


class DateParseError(ValueError):
    pass


def parse_date_string(text: Optional[str], today: Optional[date] = None) -> str:
    """Resolve a relative or absolute date expression to YYYY-MM-DD.

    Raises DateParseError with a message suitable for the user when the
    expression is not understood.
    """
    today = today or date.today()
    expr = " ".join((text or "").strip().lower().split())
    if not expr:
        raise DateParseError("Date is empty. Use today, tomorrow, 'in 3 days' or YYYY-MM-DD.")

    if expr in _RELATIVE_DAYS:
        return (today + timedelta(days=_RELATIVE_DAYS[expr])).isoformat()

    for pattern, sign in ((_IN_N_DAYS, 1), (_N_DAYS_FROM_NOW, 1), (_N_DAYS_LATER_ZH, 1), (_N_DAYS_AGO, -1)):
        match = pattern.match(expr)
        if match:
            return (today + timedelta(days=sign * int(match.group(1)))).isoformat()

    match = _WEEKDAY.match(expr)
    if match:
        # A bare or "this" weekday may be today; "next" is always after today
        offset = (_WEEKDAYS.index(match.group(2)) - today.weekday()) % 7
        if match.group(1) == "next" and offset == 0:
            offset = 7
        return (today + timedelta(days=offset)).isoformat()

    match = _ISO_DATE.match(expr)
    if match:
        return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)), text)

    match = _MONTH_DAY.match(expr)
    if match:
        return _build_date(today.year, int(match.group(1)), int(match.group(2)), text)

    raise DateParseError(
        f"Cannot understand date '{text}'. Use today, tomorrow, yesterday, "
        "'in N days', 'N days from now', a weekday such as 'next monday', "
        "YYYY-MM-DD or MM-DD."
    )


def _build_date(year: int, month: int, day: int, original: str) -> str:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        raise DateParseError(f"'{original}' is not a valid calendar date.")


def normalize_time(text: Optional[str]) -> str:
    """Validate HH:MM and zero-pad the hour"""
    match = _TIME.match((text or "").strip())
    if not match:
        raise ValueError(f"Invalid time '{text}', expected HH:MM")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def default_end_time(start_time: str) -> str:
    """One hour after start, capped at the end of the day"""
    hours, minutes = (int(p) for p in start_time.split(":"))
    total = min(hours * 60 + minutes + 60, 23 * 60 + 59)
    return f"{total // 60:02d}:{total % 60:02d}"


def intervals_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Strict overlap of two same-day HH:MM intervals; touching ends do not overlap"""
    return start_a < end_b and start_b < end_a


def find_conflicts(
    blocks: Iterable[ScheduleBlock],
    start_time: str,
    end_time: str,
    exclude_id: Optional[int] = None
) -> List[ScheduleBlock]:
    """Active blocks overlapping the interval, excluding the one being edited"""
    return [
        b for b in blocks
        if b.id != exclude_id
        and b.status != BlockStatus.CANCELLED
        and intervals_overlap(start_time, end_time, b.start_time, b.end_time)
    ]


def match_title(blocks: Iterable[ScheduleBlock], search_title: Optional[str]) -> List[ScheduleBlock]:
    """Case-insensitive substring match in either direction"""
    term = (search_title or "").strip().lower()
    if not term:
        return list(blocks)
    return [b for b in blocks if term in b.title.lower() or b.title.lower() in term]


def format_block(block: ScheduleBlock) -> str:
    return f"- {block.title} ({block.date} {block.start_time}-{block.end_time}) [ID: {block.id}]"


def conflict_warning(conflicts: List[ScheduleBlock]) -> str:
    titles = ", ".join(f'"{b.title}" ({b.start_time}-{b.end_time})' for b in conflicts)
    return f"⚠️ Time overlaps with: {titles}"
