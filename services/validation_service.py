import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple

from backend.recurrence_engine import Override, Recurrence, RecurringRule


ISO_DAY_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
ISO_MONTH_RE = re.compile(r"^[0-9]{4}-[0-9]{2}$")
TITLE_MAX = 120
NOTES_MAX = 500


class RuleValidationError(ValueError):
    """Bad rule input. `errors` maps field path -> message, e.g. {'skips[1]': 'Invalid date'}."""

    def __init__(self, errors):
        self.errors = dict(errors)
        super().__init__(", ".join(f"{k}: {v}" for k, v in self.errors.items()))


@dataclass(frozen=True)
class RuleDraft:
    """A fully validated rule that has not been stored yet."""
    title: str
    base_day: date
    recurrence: str
    notes: Optional[str] = None
    skips: Tuple[date, ...] = ()
    overrides: Tuple[Override, ...] = ()

    def to_rule(self, rule_id, owner_id=None):
        return RecurringRule(
            id=rule_id,
            owner_id=owner_id,
            title=self.title,
            base_day=self.base_day,
            recurrence=self.recurrence,
            notes=self.notes,
            skips=frozenset(self.skips),
            overrides=self.overrides,
        )


def parse_day_value(raw):
    """Parse a YYYY-MM-DD calendar date. No time-of-day, no timezone shift; None on failure."""
    if isinstance(raw, datetime):
        return None
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not ISO_DAY_RE.match(raw):
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_month_value(raw):
    """Parse YYYY-MM into (year, month); None on failure."""
    if not isinstance(raw, str) or not ISO_MONTH_RE.match(raw):
        return None
    year, month = int(raw[:4]), int(raw[5:])
    if not (1 <= month <= 12) or year < 1:
        return None
    return year, month


def _clean_text(raw, field, max_len, errors, required=False):
    if raw is None:
        if required:
            errors[field] = 'Required'
        return None
    if not isinstance(raw, str):
        errors[field] = 'Must be a string'
        return None
    value = raw.strip()
    if not value:
        if required:
            errors[field] = 'Must not be empty'
        return None
    if len(value) > max_len:
        errors[field] = f'Must be at most {max_len} characters'
        return None
    return value


def _clean_recurrence(raw, field, errors):
    value = str(raw or '').strip().upper()
    if value not in {r.value for r in Recurrence}:
        errors[field] = 'Must be MONTHLY or YEARLY'
        return None
    return value


def _clean_skips(raw, errors):
    if raw is None:
        return ()
    if not isinstance(raw, list):
        errors['skips'] = 'Must be a list of YYYY-MM-DD dates'
        return ()
    days = []
    seen = set()
    for idx, item in enumerate(raw):
        day_value = parse_day_value(item)
        if day_value is None:
            errors[f'skips[{idx}]'] = 'Invalid date (expected YYYY-MM-DD)'
            continue
        if day_value not in seen:
            seen.add(day_value)
            days.append(day_value)
    return tuple(days)


def _clean_overrides(raw, errors, title_max, notes_max):
    if raw is None:
        return ()
    if not isinstance(raw, list):
        errors['overrides'] = 'Must be a list of {date, title?, notes?} objects'
        return ()
    # Duplicate dates are kept in order; the first one wins at read time.
    overrides = []
    for idx, item in enumerate(raw):
        prefix = f'overrides[{idx}]'
        if not isinstance(item, dict):
            errors[prefix] = 'Must be an object'
            continue
        day_value = parse_day_value(item.get('date'))
        if day_value is None:
            errors[f'{prefix}.date'] = 'Invalid date (expected YYYY-MM-DD)'
        title = _clean_text(item.get('title'), f'{prefix}.title', title_max, errors)
        notes = _clean_text(item.get('notes'), f'{prefix}.notes', notes_max, errors)
        if day_value is not None:
            overrides.append(Override(day=day_value, title=title, notes=notes))
    return tuple(overrides)


def _collect(data, partial, title_max, notes_max):
    if not isinstance(data, dict):
        raise RuleValidationError({'body': 'Expected a JSON object'})

    errors = {}
    values = {}
    if not partial or 'title' in data:
        values['title'] = _clean_text(data.get('title'), 'title', title_max, errors, required=True)
    if not partial or 'baseDate' in data:
        base_day = parse_day_value(data.get('baseDate'))
        if base_day is None:
            errors['baseDate'] = 'Invalid date (expected YYYY-MM-DD)'
        values['base_day'] = base_day
    kind_key = 'recurrenceKind' if 'recurrenceKind' in data and 'recurrence' not in data else 'recurrence'
    if not partial or kind_key in data:
        values['recurrence'] = _clean_recurrence(data.get(kind_key), kind_key, errors)
    if not partial or 'notes' in data:
        values['notes'] = _clean_text(data.get('notes'), 'notes', notes_max, errors)
    if not partial or 'skips' in data:
        values['skips'] = _clean_skips(data.get('skips'), errors)
    if not partial or 'overrides' in data:
        values['overrides'] = _clean_overrides(data.get('overrides'), errors, title_max, notes_max)

    if errors:
        raise RuleValidationError(errors)
    return values


def validate_recurring_payload(data, title_max=TITLE_MAX, notes_max=NOTES_MAX):
    """Validate a create payload into a RuleDraft, or raise RuleValidationError with every failing field."""
    return RuleDraft(**_collect(data, False, title_max, notes_max))


def validate_recurring_changes(data, title_max=TITLE_MAX, notes_max=NOTES_MAX):
    """Partial validation for updates: only keys present in `data` are checked and returned."""
    return _collect(data, True, title_max, notes_max)


def validate_override_entry(data, title_max=TITLE_MAX, notes_max=NOTES_MAX):
    if not isinstance(data, dict):
        raise RuleValidationError({'body': 'Expected a JSON object'})
    errors = {}
    overrides = _clean_overrides([data], errors, title_max, notes_max)
    if errors:
        raise RuleValidationError({k.replace('overrides[0].', ''): v for k, v in errors.items()})
    return overrides[0]


def validate_skip_entry(data):
    if not isinstance(data, dict):
        raise RuleValidationError({'body': 'Expected a JSON object'})
    day_value = parse_day_value(data.get('date'))
    if day_value is None:
        raise RuleValidationError({'date': 'Invalid date (expected YYYY-MM-DD)'})
    return day_value
