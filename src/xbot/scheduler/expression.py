"""Cron expression parsing and evaluation.

Supports the standard 5-part format ``minute hour day month weekday``.

Field ranges:
    - minute: 0-59
    - hour: 0-23
    - day: 1-31
    - month: 1-12 or JAN-DEC
    - weekday: 0-7 (0 and 7 are Sunday) or SUN-SAT

Special characters:
    - ``*``: every value
    - ``,``: list separator
    - ``-``: inclusive range
    - ``/``: step, applied to 0-based positions within the stepped range
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache

from xbot.scheduler.errors import InvalidExpression, NoMatchFound

logger = logging.getLogger(__name__)


class CronField(str, Enum):
    """One of the five positional fields of a cron expression."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    WEEKDAY = "weekday"

    @property
    def index(self) -> int:
        """Position of the field within the expression."""
        return list(CronField).index(self)

    @property
    def min_value(self) -> int:
        return FIELD_RANGES[self][0]

    @property
    def max_value(self) -> int:
        return FIELD_RANGES[self][1]


FIELD_RANGES: dict[CronField, tuple[int, int]] = {
    CronField.MINUTE: (0, 59),
    CronField.HOUR: (0, 23),
    CronField.DAY: (1, 31),
    CronField.MONTH: (1, 12),
    CronField.WEEKDAY: (0, 7),
}

MONTH_NAMES: dict[str, int] = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4,
    "MAY": 5, "JUN": 6, "JUL": 7, "AUG": 8,
    "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

WEEKDAY_NAMES: dict[str, int] = {
    "SUN": 0, "MON": 1, "TUE": 2, "WED": 3,
    "THU": 4, "FRI": 5, "SAT": 6,
}

_FIELD_NAMES: dict[CronField, dict[str, int]] = {
    CronField.MONTH: MONTH_NAMES,
    CronField.WEEKDAY: WEEKDAY_NAMES,
}


def _substitute_names(field: CronField, text: str) -> str:
    """Replace month or weekday names with their numbers (case-insensitive)."""
    names = _FIELD_NAMES.get(field)
    if not names:
        return text
    text = text.upper()
    for name, number in names.items():
        text = text.replace(name, str(number))
    return text


def _parse_int(field: CronField, text: str, part: str) -> int:
    if not (text.isascii() and text.isdigit()):
        raise InvalidExpression(f"Invalid {field.value} value '{part}'")
    return int(text)


def _expand_range(field: CronField, text: str, part: str) -> list[int]:
    """Expand ``*``, ``a-b`` or ``a`` into an ascending list of values."""
    low, high = FIELD_RANGES[field]
    text = _substitute_names(field, text)

    if text == "*":
        return list(range(low, high + 1))

    if "-" in text:
        start_text, end_text = text.split("-", 1)
        start = _parse_int(field, start_text, part)
        end = _parse_int(field, end_text, part)
        if start > end:
            raise InvalidExpression(f"Invalid {field.value} range '{part}': start is after end")
    else:
        start = _parse_int(field, text, part)
        end = start

    for bound in (start, end):
        if not low <= bound <= high:
            raise InvalidExpression(
                f"Invalid {field.value} value {bound} in '{part}' (must be {low}-{high})"
            )

    return list(range(start, end + 1))


@lru_cache(maxsize=512)
def expand_field(field: CronField, text: str) -> frozenset[int]:
    """Expand a field expression into the set of values it selects.

    Args:
        field: Which field the expression belongs to.
        text: The raw field text, e.g. ``"*/15"`` or ``"MON-FRI"``.

    Returns:
        The selected values.

    Raises:
        InvalidExpression: If any comma-separated part cannot be parsed or
            falls outside the field's range.
    """
    values: set[int] = set()

    for part in text.split(","):
        if not part:
            raise InvalidExpression(f"Empty list item in {field.value} field '{text}'")

        if "/" in part:
            range_text, step_text = part.split("/", 1)
            step = _parse_int(field, step_text, part)
            if step < 1:
                raise InvalidExpression(f"Invalid {field.value} step in '{part}'")
            sequence = _expand_range(field, range_text, part)
            # Positions, not values: "1-10/3" selects 1, 4, 7, 10; "5/20" only 5
            values.update(sequence[::step])
        else:
            values.update(_expand_range(field, part, part))

    return frozenset(values)


def _start_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return moment.replace(year=moment.year + 1, month=1, day=1, hour=0, minute=0)
    return moment.replace(month=moment.month + 1, day=1, hour=0, minute=0)


class CronExpression:
    """A validated 5-field cron expression.

    The raw field texts are kept as written; value sets are expanded when
    a timestamp is tested (and memoised by :func:`expand_field`).

    Example:
        expr = CronExpression("30 2 * * MON-FRI")
        expr.matches(datetime(2024, 1, 1, 2, 30))  # True, a Monday
        expr.next_run_date(datetime(2024, 1, 1))   # 2024-01-01 02:30
    """

    # Four years of minutes
    MAX_ITERATIONS = 4 * 365 * 24 * 60

    def __init__(self, expression: str) -> None:
        """Parse and validate an expression.

        Args:
            expression: Cron text with exactly five whitespace-separated fields.

        Raises:
            InvalidExpression: If the field count is wrong or a field does
                not expand to values within its range.
        """
        self._expression = expression.strip()
        parts = self._expression.split()

        if len(parts) != 5:
            raise InvalidExpression(
                f'Invalid cron expression "{self._expression}": '
                f"must have exactly 5 parts, got {len(parts)}"
            )

        self._parts: tuple[str, ...] = tuple(parts)

        for field, text in zip(CronField, self._parts):
            if text != "*":
                expand_field(field, text)

    @staticmethod
    def is_valid(expression: str) -> bool:
        """Check whether ``expression`` parses without raising."""
        try:
            CronExpression(expression)
            return True
        except InvalidExpression:
            return False

    @property
    def expression(self) -> str:
        return self._expression

    @property
    def fields(self) -> tuple[str, ...]:
        return self._parts

    @property
    def minute(self) -> str:
        return self._parts[CronField.MINUTE.index]

    @property
    def hour(self) -> str:
        return self._parts[CronField.HOUR.index]

    @property
    def day(self) -> str:
        return self._parts[CronField.DAY.index]

    @property
    def month(self) -> str:
        return self._parts[CronField.MONTH.index]

    @property
    def weekday(self) -> str:
        return self._parts[CronField.WEEKDAY.index]

    def field_values(self, field: CronField) -> frozenset[int]:
        """Return the expanded value set of one field."""
        text = self._parts[field.index]
        if text == "*":
            return frozenset(range(field.min_value, field.max_value + 1))
        return expand_field(field, text)

    def _field_matches(self, field: CronField, value: int) -> bool:
        text = self._parts[field.index]
        if text == "*":
            return True

        values = expand_field(field, text)
        if field is CronField.WEEKDAY and value == 7 and 0 in values:
            return True
        return value in values

    def matches(self, moment: datetime) -> bool:
        """Check whether ``moment`` falls on this schedule.

        Seconds are ignored. Day of month and weekday must both match.
        """
        return (
            self._field_matches(CronField.MINUTE, moment.minute)
            and self._field_matches(CronField.HOUR, moment.hour)
            and self._field_matches(CronField.DAY, moment.day)
            and self._field_matches(CronField.MONTH, moment.month)
            and self._field_matches(CronField.WEEKDAY, moment.isoweekday())
        )

    def next_run_date(self, from_time: datetime | None = None) -> datetime:
        """Find the first matching minute strictly after ``from_time``.

        The search covers at most :attr:`MAX_ITERATIONS` minutes. Months, days
        and hours that cannot match are stepped over whole.

        Args:
            from_time: Reference time (defaults to now, local time).

        Returns:
            The next matching time, truncated to the minute.

        Raises:
            NoMatchFound: If nothing matches within the search window.
        """
        start = (from_time or datetime.now()).replace(second=0, microsecond=0)
        current = start + timedelta(minutes=1)
        deadline = current + timedelta(minutes=self.MAX_ITERATIONS)

        while current < deadline:
            if not self._field_matches(CronField.MONTH, current.month):
                current = _start_of_next_month(current)
            elif not (
                self._field_matches(CronField.DAY, current.day)
                and self._field_matches(CronField.WEEKDAY, current.isoweekday())
            ):
                current = current.replace(hour=0, minute=0) + timedelta(days=1)
            elif not self._field_matches(CronField.HOUR, current.hour):
                current = current.replace(minute=0) + timedelta(hours=1)
            elif not self._field_matches(CronField.MINUTE, current.minute):
                current += timedelta(minutes=1)
            else:
                return current

        logger.debug(f"No match for '{self._expression}' after {start.isoformat()}")
        raise NoMatchFound(f'Unable to calculate next run date for "{self._expression}"')

    def next_run_dates(self, count: int, from_time: datetime | None = None) -> list[datetime]:
        """Return the next ``count`` matching times after ``from_time``."""
        runs: list[datetime] = []
        current = from_time or datetime.now()
        for _ in range(count):
            current = self.next_run_date(current)
            runs.append(current)
        return runs

    def __str__(self) -> str:
        return self._expression

    def __repr__(self) -> str:
        return f"CronExpression({self._expression!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CronExpression):
            return NotImplemented
        return self._expression == other._expression

    def __hash__(self) -> int:
        return hash(self._expression)
