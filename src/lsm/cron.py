# src/lsm/cron.py: Cron expression parsing and evaluation.
# This module turns a service's schedule string into a Schedule object that can
# compute its next firing time. It accepts standard 5-field expressions, a
# 6-field form with a leading seconds field, the usual '@' descriptors, and
# '@every <duration>' for fixed intervals.
#
# When both day fields are restricted a day matches if either one does. A
# field counts as unrestricted only when it contains a bare '*' or '?'; a
# stepped wildcard like '*/2' is a restriction.
#
#   ┌───────────── second (0-59, 6-field form only)
#   │ ┌───────────── minute (0-59)
#   │ │ ┌───────────── hour (0-23)
#   │ │ │ ┌───────────── day of month (1-31)
#   │ │ │ │ ┌───────────── month (1-12 or JAN-DEC)
#   │ │ │ │ │ ┌───────────── day of week (0-7 or SUN-SAT, 0 and 7 are Sunday)
#   │ │ │ │ │ │
#   * * * * * *

import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from .util.errors import CronError

DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

MONTH_NAMES = {
    name: number for number, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"], start=1
    )
}
DAY_NAMES = {
    name: number for number, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])
}

# How far ahead next() searches before declaring a schedule unsatisfiable.
SEARCH_YEARS = 5

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}

class Schedule(ABC):
    """A parsed schedule that can compute its next firing time."""

    def __init__(self, expression: str):
        self.expression = expression

    @abstractmethod
    def next(self, after: datetime) -> datetime:
        """Return the first firing time strictly after 'after'."""

    def __str__(self) -> str:
        return self.expression

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self.expression}')"

class IntervalSchedule(Schedule):
    """Fires every fixed interval ('@every 1h30m')."""

    def __init__(self, expression: str, interval: timedelta):
        super().__init__(expression)
        self.interval = interval

    def next(self, after: datetime) -> datetime:
        return after.replace(microsecond=0) + self.interval

class CronSchedule(Schedule):
    """Field-based cron schedule with Vixie-cron day matching."""

    def __init__(
        self,
        expression: str,
        seconds: FrozenSet[int],
        minutes: FrozenSet[int],
        hours: FrozenSet[int],
        days: FrozenSet[int],
        months: FrozenSet[int],
        weekdays: FrozenSet[int],
        days_unrestricted: bool = False,
        weekdays_unrestricted: bool = False,
    ):
        super().__init__(expression)
        self.seconds = seconds
        self.minutes = minutes
        self.hours = hours
        self.days = days
        self.months = months
        self.weekdays = weekdays
        self.days_unrestricted = days_unrestricted
        self.weekdays_unrestricted = weekdays_unrestricted

    def day_matches(self, dt: datetime) -> bool:
        # Python: Monday=0..Sunday=6. Cron: Sunday=0..Saturday=6.
        dom = dt.day in self.days
        dow = (dt.weekday() + 1) % 7 in self.weekdays
        if self.days_unrestricted or self.weekdays_unrestricted:
            return dom and dow
        return dom or dow

    def matches(self, dt: datetime) -> bool:
        return (
            dt.second in self.seconds
            and dt.minute in self.minutes
            and dt.hour in self.hours
            and dt.month in self.months
            and self.day_matches(dt)
        )

    def next(self, after: datetime) -> datetime:
        t = after.replace(microsecond=0) + timedelta(seconds=1)
        year_limit = t.year + SEARCH_YEARS

        while t.year <= year_limit:
            if t.month not in self.months:
                if t.month == 12:
                    t = t.replace(year=t.year + 1, month=1, day=1, hour=0, minute=0, second=0)
                else:
                    t = t.replace(month=t.month + 1, day=1, hour=0, minute=0, second=0)
                continue
            if not self.day_matches(t):
                t = t.replace(hour=0, minute=0, second=0) + timedelta(days=1)
                continue
            if t.hour not in self.hours:
                t = t.replace(minute=0, second=0) + timedelta(hours=1)
                continue
            if t.minute not in self.minutes:
                t = t.replace(second=0) + timedelta(minutes=1)
                continue
            if t.second not in self.seconds:
                t += timedelta(seconds=1)
                continue
            return t

        raise CronError(
            f"Schedule '{self.expression}' has no firing time within {SEARCH_YEARS} years."
        )

# --- Parsing ---

def parse_schedule(expression: str) -> Schedule:
    """
    Parse a schedule string.

    Raises:
        CronError: If the expression is malformed or can never fire.
    """
    text = (expression or "").strip()
    if not text:
        raise CronError("Empty cron expression.")

    if text.startswith("@"):
        lowered = text.lower()
        if lowered.startswith("@every"):
            return IntervalSchedule(text, parse_duration(text[len("@every"):].strip()))
        if lowered not in DESCRIPTORS:
            raise CronError(f"Unknown schedule descriptor: '{text}'.")
        fields = DESCRIPTORS[lowered].split()
    else:
        fields = text.split()

    if len(fields) == 5:
        fields = ["0"] + fields
    elif len(fields) != 6:
        raise CronError(
            f"Invalid cron expression '{text}': expected 5 or 6 fields, got {len(fields)}."
        )

    second, minute, hour, dom, month, dow = fields
    weekdays = _parse_field(dow, "day of week", 0, 7, DAY_NAMES)
    if 7 in weekdays:
        weekdays = (weekdays - {7}) | {0}

    schedule = CronSchedule(
        text,
        seconds=_parse_field(second, "second", 0, 59),
        minutes=_parse_field(minute, "minute", 0, 59),
        hours=_parse_field(hour, "hour", 0, 23),
        days=_parse_field(dom, "day of month", 1, 31),
        months=_parse_field(month, "month", 1, 12, MONTH_NAMES),
        weekdays=frozenset(weekdays),
        days_unrestricted=_is_unrestricted(dom),
        weekdays_unrestricted=_is_unrestricted(dow),
    )
    # Rejects expressions like '0 0 30 2 *' that can never fire.
    schedule.next(datetime.now())
    return schedule

def _parse_field(
    text: str, name: str, low: int, high: int, names: Optional[Dict[str, int]] = None
) -> FrozenSet[int]:
    values = set()
    for part in text.split(","):
        if not part:
            raise CronError(f"Invalid {name} field '{text}': empty list element.")

        range_text, has_step, step_text = part.partition("/")
        step = 1
        if has_step:
            step = _to_int(step_text, name, text)
            if step < 1:
                raise CronError(f"Invalid {name} field '{text}': step must be >= 1.")

        if range_text in ("*", "?"):
            start, end = low, high
        elif "-" in range_text:
            start_text, end_text = range_text.split("-", 1)
            start = _value(start_text, name, text, names)
            end = _value(end_text, name, text, names)
        else:
            start = _value(range_text, name, text, names)
            end = high if has_step else start

        if start < low or end > high or start > end:
            raise CronError(
                f"Invalid {name} field '{text}': {start}-{end} is outside {low}-{high}."
            )
        values.update(range(start, end + 1, step))
    return frozenset(values)

def _is_unrestricted(text: str) -> bool:
    for part in text.split(","):
        range_text, has_step, step_text = part.partition("/")
        if range_text in ("*", "?") and (not has_step or int(step_text) == 1):
            return True
    return False

def _value(token: str, name: str, field: str, names: Optional[Dict[str, int]]) -> int:
    if names and token.upper() in names:
        return names[token.upper()]
    return _to_int(token, name, field)

def _to_int(token: str, name: str, field: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise CronError(f"Invalid {name} field '{field}': '{token}' is not a number.")

def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration such as '90s', '5m' or '1h30m'."""
    if not text:
        raise CronError("'@every' needs a duration, e.g. '@every 5m'.")
    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise CronError(f"Invalid duration '{text}'.")
    if total < 1:
        raise CronError(f"Duration '{text}' is shorter than one second.")
    return timedelta(seconds=int(total))
