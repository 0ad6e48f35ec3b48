"""Cron expression parsing and next-fire computation.

Supports the classic 5-field format::

    minute  hour  day-of-month  month  day-of-week
    0-59    0-23  1-31          1-12   0-6 (0 = Sunday)

Each field accepts ``*``, comma lists, ``start-end`` ranges and
``range/step``.  There is no seconds field and no ``@daily`` style aliases.

A field that cannot be parsed becomes an empty set instead of raising, so a
single bad definition never takes the scheduler down.  Callers check
:attr:`CronFields.is_schedulable` (or use :func:`validate`) before arming a
timer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from cadence.scheduler.errors import InvalidCronExpression

# (name, min, max) in expression order
FIELD_SPECS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day_of_month", 1, 31),
    ("month", 1, 12),
    ("day_of_week", 0, 6),
)

# Give up on expressions that can never fire (e.g. "0 0 31 2 *").
SEARCH_HORIZON_YEARS = 8


@dataclass(frozen=True)
class CronFields:
    """Expanded value sets for each of the five cron fields.

    ``dom_restricted`` / ``dow_restricted`` record whether the day fields
    were written as something other than a ``*`` form; they decide how the
    two day fields combine.
    """

    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]
    dom_restricted: bool = False
    dow_restricted: bool = False

    @property
    def is_schedulable(self) -> bool:
        """False when any field failed to parse (empty set)."""
        return all(
            (
                self.minutes,
                self.hours,
                self.days_of_month,
                self.months,
                self.days_of_week,
            )
        )

    def empty_fields(self) -> list[str]:
        """Names of the fields that parsed to an empty set."""
        values = (
            self.minutes,
            self.hours,
            self.days_of_month,
            self.months,
            self.days_of_week,
        )
        return [spec[0] for spec, vals in zip(FIELD_SPECS, values) if not vals]

    def matches_day(self, moment: datetime) -> bool:
        """Apply cron's day-of-month / day-of-week combination rule.

        When both fields are restricted either one may match.  When only one
        is restricted it alone decides.
        """
        dom_match = moment.day in self.days_of_month
        dow_match = cron_weekday(moment) in self.days_of_week
        if self.dom_restricted and self.dow_restricted:
            return dom_match or dow_match
        if self.dom_restricted:
            return dom_match
        if self.dow_restricted:
            return dow_match
        return True

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and self.matches_day(moment)
        )


def cron_weekday(moment: datetime) -> int:
    """Day of week in cron numbering (0 = Sunday)."""
    return (moment.weekday() + 1) % 7


# -- Parsing -------------------------------------------------------------------


def _expand_range(item: str, lo: int, hi: int) -> list[int]:
    if item == "*":
        return list(range(lo, hi + 1))
    if "-" in item:
        start_str, end_str = item.split("-", 1)
        start, end = int(start_str), int(end_str)
        if start > end:
            msg = f"range start {start} greater than end {end}"
            raise ValueError(msg)
        return list(range(start, end + 1))
    return [int(item)]


def _expand_item(item: str, lo: int, hi: int) -> list[int]:
    if "/" in item:
        base, step_str = item.split("/", 1)
        step = int(step_str)
        if step <= 0:
            msg = f"invalid step {step}"
            raise ValueError(msg)
        values = _expand_range(base or "*", lo, hi)
        # "5/15" means "from 5 to the end of the field, every 15"
        if len(values) == 1 and base != "*":
            values = list(range(values[0], hi + 1))
        return values[::step]
    return _expand_range(item, lo, hi)


def parse_field(token: str, lo: int, hi: int) -> frozenset[int]:
    """Expand one cron field into its set of values.

    Returns an empty set for anything malformed or out of range.
    """
    values: set[int] = set()
    try:
        for item in token.split(","):
            values.update(_expand_item(item.strip(), lo, hi))
    except ValueError:
        return frozenset()
    if not values or any(v < lo or v > hi for v in values):
        return frozenset()
    return frozenset(values)


def parse(expression: str) -> CronFields:
    """Parse a 5-field cron expression.

    Raises:
        InvalidCronExpression: when the field count is not exactly 5.
    """
    parts = expression.split() if expression else []
    if len(parts) != len(FIELD_SPECS):
        raise InvalidCronExpression(
            expression, f"expected 5 fields, got {len(parts)}"
        )
    sets = [parse_field(part, lo, hi) for part, (_, lo, hi) in zip(parts, FIELD_SPECS)]
    return CronFields(
        minutes=sets[0],
        hours=sets[1],
        days_of_month=sets[2],
        months=sets[3],
        days_of_week=sets[4],
        dom_restricted=not parts[2].startswith("*"),
        dow_restricted=not parts[4].startswith("*"),
    )


def validate(expression: str) -> CronFields:
    """Parse and reject expressions with an unparsable field."""
    fields = parse(expression)
    if not fields.is_schedulable:
        raise InvalidCronExpression(
            expression, "unparsable field(s): " + ", ".join(fields.empty_fields())
        )
    return fields


# -- Next fire time ------------------------------------------------------------


def _first_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return moment.replace(year=moment.year + 1, month=1, day=1, hour=0, minute=0)
    return moment.replace(month=moment.month + 1, day=1, hour=0, minute=0)


def next_run(fields: CronFields, after: datetime) -> datetime:
    """Return the first minute strictly after *after* that matches *fields*.

    Pure function.  Seconds and microseconds are dropped; a tz-aware *after*
    yields a result in the same tzinfo.

    Raises:
        InvalidCronExpression: if *fields* is not schedulable or nothing
            matches within :data:`SEARCH_HORIZON_YEARS`.
    """
    if not fields.is_schedulable:
        raise InvalidCronExpression(
            "<parsed>", "unparsable field(s): " + ", ".join(fields.empty_fields())
        )

    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    last_year = candidate.year + SEARCH_HORIZON_YEARS
    minutes = sorted(fields.minutes)

    while candidate.year <= last_year:
        if candidate.month not in fields.months:
            candidate = _first_of_next_month(candidate)
            continue

        if not fields.matches_day(candidate):
            candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
            continue

        if candidate.hour not in fields.hours:
            candidate = (candidate + timedelta(hours=1)).replace(minute=0)
            continue

        if candidate.minute not in fields.minutes:
            later = [m for m in minutes if m > candidate.minute]
            if later:
                candidate = candidate.replace(minute=later[0])
            else:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
            continue

        return candidate

    raise InvalidCronExpression(
        "<parsed>", f"no matching time within {SEARCH_HORIZON_YEARS} years"
    )


def next_run_from_expression(expression: str, after: datetime) -> datetime:
    """Parse *expression* and compute its next fire time after *after*."""
    return next_run(validate(expression), after)
