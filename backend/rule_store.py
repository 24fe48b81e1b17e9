"""
Storage boundary for recurring rules.

Rows are turned into frozen RecurringRule values here, once; the engine never
sees ORM objects. Any SQLAlchemy failure surfaces as RuleStoreError so callers
can tell "storage unavailable" apart from "no rules" (an empty list).
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from backend.recurrence_engine import Override, Recurrence, RecurringRule
from models import RecurrenceOverride, RecurrenceSkip, RecurringEvent

logger = logging.getLogger(__name__)

KNOWN_RECURRENCES = {r.value for r in Recurrence}


class RuleStoreError(RuntimeError):
    """The rule store could not be read or written."""


def _row_to_rule(row):
    if row.recurrence not in KNOWN_RECURRENCES:
        logger.warning("Recurring rule %s has unknown recurrence %r; it will never match", row.id, row.recurrence)
    return RecurringRule(
        id=row.id,
        owner_id=row.user_id,
        title=row.title,
        base_day=row.base_day,
        recurrence=row.recurrence,
        notes=row.notes,
        skips=frozenset(s.day for s in row.skips),
        overrides=tuple(Override(day=o.day, title=o.title, notes=o.notes) for o in row.overrides),
    )


class RuleStore:
    def __init__(self, db):
        self._db = db

    @contextmanager
    def _guard(self, action, owner_id):
        try:
            yield
        except SQLAlchemyError as exc:
            self._db.session.rollback()
            logger.error("Rule store %s failed for owner %s: %s", action, owner_id, exc)
            raise RuleStoreError(f"Rule store {action} failed") from exc

    def _owned_query(self, owner_id):
        query = RecurringEvent.query.options(
            selectinload(RecurringEvent.skips),
            selectinload(RecurringEvent.overrides)
        )
        if owner_id is None:
            return query.filter(RecurringEvent.user_id.is_(None))
        return query.filter(RecurringEvent.user_id == owner_id)

    def _get_row(self, rule_id, owner_id):
        return self._owned_query(owner_id).filter(RecurringEvent.id == rule_id).first()

    def list_rules_for_owner(self, owner_id):
        """Every rule for the owner (None = anonymous), newest first, in one fetch."""
        with self._guard('list', owner_id):
            rows = self._owned_query(owner_id).order_by(RecurringEvent.id.desc()).all()
            return [_row_to_rule(r) for r in rows]

    def get_rule(self, rule_id, owner_id):
        with self._guard('get', owner_id):
            row = self._get_row(rule_id, owner_id)
            return _row_to_rule(row) if row else None

    def create_rule(self, draft, owner_id):
        """Persist a validated RuleDraft and return it with its new id."""
        with self._guard('create', owner_id):
            row = RecurringEvent(
                user_id=owner_id,
                title=draft.title,
                base_day=draft.base_day,
                recurrence=draft.recurrence,
                notes=draft.notes,
                skips=[RecurrenceSkip(day=d) for d in draft.skips],
                overrides=[RecurrenceOverride(day=o.day, title=o.title, notes=o.notes) for o in draft.overrides],
            )
            self._db.session.add(row)
            self._db.session.commit()
            logger.info("Created recurring rule %s (%s) for owner %s", row.id, row.recurrence, owner_id)
            return _row_to_rule(row)

    def update_rule(self, rule_id, owner_id, changes):
        """Apply validated partial changes. Returns None when the rule is not the owner's."""
        with self._guard('update', owner_id):
            row = self._get_row(rule_id, owner_id)
            if not row:
                return None
            for key in ('title', 'base_day', 'recurrence', 'notes'):
                if key in changes:
                    setattr(row, key, changes[key])
            if 'skips' in changes:
                wanted = set(changes['skips'])
                for skip in list(row.skips):
                    if skip.day not in wanted:
                        row.skips.remove(skip)
                existing = {s.day for s in row.skips}
                for day_value in changes['skips']:
                    if day_value not in existing:
                        row.skips.append(RecurrenceSkip(day=day_value))
            if 'overrides' in changes:
                row.overrides = [
                    RecurrenceOverride(day=o.day, title=o.title, notes=o.notes) for o in changes['overrides']
                ]
            self._db.session.commit()
            return _row_to_rule(row)

    def delete_rule(self, rule_id, owner_id):
        """Delete the rule with its skips and overrides. False when nothing matched."""
        with self._guard('delete', owner_id):
            row = self._get_row(rule_id, owner_id)
            if not row:
                return False
            self._db.session.delete(row)
            self._db.session.commit()
            logger.info("Deleted recurring rule %s for owner %s", rule_id, owner_id)
            return True

    def add_skip(self, rule_id, owner_id, day_value):
        """Suppress one date. Adding the same date twice is a no-op."""
        with self._guard('add_skip', owner_id):
            row = self._get_row(rule_id, owner_id)
            if not row:
                return None
            if all(s.day != day_value for s in row.skips):
                row.skips.append(RecurrenceSkip(day=day_value))
                self._db.session.commit()
            return _row_to_rule(row)

    def add_override(self, rule_id, owner_id, override):
        """Append an override after any existing ones, so earlier entries for the same date keep winning."""
        with self._guard('add_override', owner_id):
            row = self._get_row(rule_id, owner_id)
            if not row:
                return None
            row.overrides.append(RecurrenceOverride(day=override.day, title=override.title, notes=override.notes))
            self._db.session.commit()
            return _row_to_rule(row)
