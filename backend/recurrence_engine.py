"""
Recurring event materialization: which calendar dates a stored monthly/yearly
rule lands on, after per-date skips and overrides are applied.

Everything here is pure. Callers fetch a rule snapshot once (see
backend/rule_store.py) and pass it in; nothing in this module touches storage.
"""
import calendar
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class Recurrence(str, Enum):
    MONTHLY = 'MONTHLY'
    YEARLY = 'YEARLY'


@dataclass(frozen=True)
class Override:
    """Per-date title/notes substitution. None means "keep the rule's value"."""
    day: date
    title: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self):
        data = {'date': self.day.isoformat()}
        if self.title is not None:
            data['title'] = self.title
        if self.notes is not None:
            data['notes'] = self.notes
        return data


@dataclass(frozen=True)
class RecurringRule:
    """
    Canonical in-memory rule.

    `recurrence` keeps the stored string as-is; anything other than
    MONTHLY/YEARLY is legacy data and never matches. `overrides` keeps
    stored order, which decides ties between entries for the same date.
    """
    id: int
    owner_id: Optional[int]
    title: str
    base_day: date
    recurrence: str
    notes: Optional[str] = None
    skips: frozenset = field(default_factory=frozenset)
    overrides: Tuple[Override, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'skips', frozenset(self.skips))
        object.__setattr__(self, 'overrides', tuple(self.overrides))

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'baseDate': self.base_day.isoformat(),
            'recurrence': self.recurrence,
            'notes': self.notes,
            'skips': [d.isoformat() for d in sorted(self.skips)],
            'overrides': [ov.to_dict() for ov in self.overrides],
        }


@dataclass(frozen=True)
class Occurrence:
    rule_id: int
    title: str
    notes: Optional[str]
    day: date

    def to_dict(self):
        return {
            'id': self.rule_id,
            'title': self.title,
            'notes': self.notes,
            'date': self.day.isoformat(),
        }


def days_in_month(year, month):
    return calendar.monthrange(year, month)[1]


def matches(rule: RecurringRule, day_value: date) -> bool:
    """
    True when `rule` lands on `day_value`, ignoring skips.

    No lower bound at base_day: a rule created in 2024 still matches 2019.
    A day-31 rule has no occurrence in a 30-day month (no rollover).
    """
    if rule.recurrence == Recurrence.YEARLY:
        return (day_value.month, day_value.day) == (rule.base_day.month, rule.base_day.day)
    if rule.recurrence == Recurrence.MONTHLY:
        return day_value.day == rule.base_day.day
    return False


def is_skipped(rule: RecurringRule, day_value: date) -> bool:
    return day_value in rule.skips


def find_override(rule: RecurringRule, day_value: date) -> Optional[Override]:
    """First override stored for `day_value`; later duplicates never win."""
    for ov in rule.overrides:
        if ov.day == day_value:
            return ov
    return None


def resolve_override(rule: RecurringRule, day_value: date) -> Tuple[str, Optional[str]]:
    """Return (title, notes) for `day_value`, field by field over the rule's base values."""
    title, notes = rule.title, rule.notes
    ov = find_override(rule, day_value)
    if ov is not None:
        if ov.title is not None:
            title = ov.title
        if ov.notes is not None:
            notes = ov.notes
    return title, notes


def occurs_on(rule: RecurringRule, day_value: date) -> bool:
    # Skip wins over any override registered for the same date.
    return matches(rule, day_value) and not is_skipped(rule, day_value)


def candidate_day(rule: RecurringRule, year, month) -> Optional[date]:
    """The single date in (year, month) the rule could land on, if any."""
    if rule.recurrence == Recurrence.YEARLY:
        if rule.base_day.month != month:
            return None
    elif rule.recurrence != Recurrence.MONTHLY:
        return None
    if rule.base_day.day > days_in_month(year, month):
        return None
    return date(year, month, rule.base_day.day)


def _check_month(year, month):
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")


def compute_month_presence(rules: Iterable[RecurringRule], year, month) -> frozenset:
    """
    Dates in the month with at least one visible occurrence.

    Works per rule (each rule has at most one candidate date per month), so
    cost is O(rules). Overrides are not resolved; a badge needs no content.
    """
    _check_month(year, month)
    hits = set()
    for rule in rules:
        day_value = candidate_day(rule, year, month)
        if day_value is not None and not is_skipped(rule, day_value):
            hits.add(day_value)
    return frozenset(hits)


def scan_month_presence(rules: Iterable[RecurringRule], year, month) -> frozenset:
    """Day-by-day O(days x rules) form of compute_month_presence. Same output."""
    _check_month(year, month)
    rules = list(rules)
    hits = set()
    for dom in range(1, days_in_month(year, month) + 1):
        day_value = date(year, month, dom)
        if any(occurs_on(rule, day_value) for rule in rules):
            hits.add(day_value)
    return frozenset(hits)


def compute_day_occurrences(rules: Iterable[RecurringRule], day_value: date) -> List[Occurrence]:
    """Fully resolved occurrences for one date, newest rule (highest id) first."""
    result = []
    for rule in sorted(rules, key=lambda r: r.id, reverse=True):
        if not occurs_on(rule, day_value):
            continue
        title, notes = resolve_override(rule, day_value)
        result.append(Occurrence(rule_id=rule.id, title=title, notes=notes, day=day_value))
    return result
