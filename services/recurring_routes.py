"""Recurring event route handlers, registered on the app in app.py."""
from flask import current_app, jsonify, request

from backend.recurrence_engine import compute_day_occurrences, compute_month_presence
from backend.rule_store import RuleStoreError
from services.validation_service import (
    RuleValidationError,
    parse_day_value,
    parse_month_value,
    validate_override_entry,
    validate_recurring_changes,
    validate_recurring_payload,
    validate_skip_entry,
)


def _limits():
    return {
        'title_max': current_app.config.get('RECURRING_TITLE_MAX', 120),
        'notes_max': current_app.config.get('RECURRING_NOTES_MAX', 500),
    }


def _invalid(exc):
    current_app.logger.info(f"Rejected recurring payload, fields: {sorted(exc.errors)}")
    return jsonify({'error': 'Invalid payload', 'fields': exc.errors}), 400


def _storage_unavailable(exc):
    current_app.logger.error(f"Recurring rule storage failure: {exc}")
    return jsonify({'error': 'Storage unavailable'}), 503


def recurring_collection():
    """GET ?month=YYYY-MM for badge dates, GET ?date=YYYY-MM-DD for one day, POST to create."""
    import app as a
    owner_id = a.current_owner_id()
    store = a.rule_store

    if request.method == 'POST':
        try:
            draft = validate_recurring_payload(request.get_json(silent=True), **_limits())
            rule = store.create_rule(draft, owner_id)
        except RuleValidationError as exc:
            return _invalid(exc)
        except RuleStoreError as exc:
            return _storage_unavailable(exc)
        return jsonify({'ok': True, 'recurring': rule.to_dict()}), 201

    month_raw = request.args.get('month')
    if month_raw:
        parsed = parse_month_value(month_raw)
        if not parsed:
            return jsonify({'error': 'Invalid month (expected YYYY-MM)'}), 400
        year, month = parsed
        try:
            rules = store.list_rules_for_owner(owner_id)
        except RuleStoreError as exc:
            return _storage_unavailable(exc)
        dates = sorted(compute_month_presence(rules, year, month))
        return jsonify({'month': month_raw, 'dates': [d.isoformat() for d in dates]})

    day_value = parse_day_value(request.args.get('date'))
    if not day_value:
        return jsonify({'error': 'Missing/invalid date (YYYY-MM-DD)'}), 400
    try:
        rules = store.list_rules_for_owner(owner_id)
    except RuleStoreError as exc:
        return _storage_unavailable(exc)
    occurrences = compute_day_occurrences(rules, day_value)
    return jsonify({'date': day_value.isoformat(), 'occurrences': [o.to_dict() for o in occurrences]})


def list_recurring_rules():
    """All recurring rules for the current owner, newest first."""
    import app as a
    try:
        rules = a.rule_store.list_rules_for_owner(a.current_owner_id())
    except RuleStoreError as exc:
        return _storage_unavailable(exc)
    return jsonify({'rules': [r.to_dict() for r in rules]})


def recurring_detail(rule_id):
    """PATCH to update provided fields, DELETE to remove the rule with its skips and overrides."""
    import app as a
    owner_id = a.current_owner_id()
    store = a.rule_store

    if request.method == 'DELETE':
        try:
            deleted = store.delete_rule(rule_id, owner_id)
        except RuleStoreError as exc:
            return _storage_unavailable(exc)
        if not deleted:
            return jsonify({'error': 'Not found'}), 404
        return jsonify({'ok': True})

    try:
        changes = validate_recurring_changes(request.get_json(silent=True), **_limits())
        rule = store.update_rule(rule_id, owner_id, changes)
    except RuleValidationError as exc:
        return _invalid(exc)
    except RuleStoreError as exc:
        return _storage_unavailable(exc)
    if rule is None:
        return jsonify({'error': 'Not found'}), 404
    return jsonify({'ok': True, 'recurring': rule.to_dict()})


def add_recurring_skip(rule_id):
    import app as a
    try:
        day_value = validate_skip_entry(request.get_json(silent=True))
        rule = a.rule_store.add_skip(rule_id, a.current_owner_id(), day_value)
    except RuleValidationError as exc:
        return _invalid(exc)
    except RuleStoreError as exc:
        return _storage_unavailable(exc)
    if rule is None:
        return jsonify({'error': 'Not found'}), 404
    return jsonify({'ok': True, 'recurring': rule.to_dict()})


def add_recurring_override(rule_id):
    import app as a
    try:
        override = validate_override_entry(request.get_json(silent=True), **_limits())
        rule = a.rule_store.add_override(rule_id, a.current_owner_id(), override)
    except RuleValidationError as exc:
        return _invalid(exc)
    except RuleStoreError as exc:
        return _storage_unavailable(exc)
    if rule is None:
        return jsonify({'error': 'Not found'}), 404
    return jsonify({'ok': True, 'recurring': rule.to_dict()})
