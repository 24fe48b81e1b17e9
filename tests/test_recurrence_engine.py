from datetime import date

import pytest

from backend.recurrence_engine import (
    Override,
    RecurringRule,
    candidate_day,
    compute_day_occurrences,
    compute_month_presence,
    is_skipped,
    matches,
    resolve_override,
    scan_month_presence,
)


def make_rule(rule_id=1, recurrence='MONTHLY', base_day=date(2020, 1, 10), title='Rent', notes=None,
              skips=(), overrides=()):
    return RecurringRule(
        id=rule_id,
        owner_id=None,
        title=title,
        base_day=base_day,
        recurrence=recurrence,
        notes=notes,
        skips=frozenset(skips),
        overrides=tuple(overrides),
    )


@pytest.mark.parametrize('day_value,expected', [
    (date(2025, 3, 15), True),
    (date(1999, 3, 15), True),
    (date(2020, 3, 16), False),
    (date(2020, 4, 15), False),
])
def test_yearly_matches_month_and_day_in_any_year(day_value, expected):
    rule = make_rule(recurrence='YEARLY', base_day=date(2020, 3, 15))
    assert matches(rule, day_value) is expected


@pytest.mark.parametrize('day_value,expected', [
    (date(2020, 1, 10), True),
    (date(2025, 6, 10), True),
    (date(2011, 12, 10), True),
    (date(2025, 6, 11), False),
])
def test_monthly_matches_day_of_month_in_any_month(day_value, expected):
    rule = make_rule(recurrence='MONTHLY', base_day=date(2020, 1, 10))
    assert matches(rule, day_value) is expected


def test_matches_before_base_year():
    rule = make_rule(recurrence='YEARLY', base_day=date(2024, 7, 4))
    assert matches(rule, date(2001, 7, 4))


def test_monthly_day_31_never_matches_short_months():
    rule = make_rule(recurrence='MONTHLY', base_day=date(2024, 1, 31))
    for month in (2, 4, 6, 9, 11):
        assert compute_month_presence([rule], 2025, month) == frozenset()
    assert not matches(rule, date(2025, 4, 30))
    assert matches(rule, date(2025, 5, 31))


def test_yearly_feb_29_only_in_leap_years():
    rule = make_rule(recurrence='YEARLY', base_day=date(2024, 2, 29))
    assert compute_month_presence([rule], 2025, 2) == frozenset()
    assert compute_month_presence([rule], 2028, 2) == {date(2028, 2, 29)}
    assert not matches(rule, date(2025, 2, 28))
    assert not matches(rule, date(2025, 3, 1))


@pytest.mark.parametrize('kind', ['WEEKLY', 'monthly', '', None])
def test_unknown_recurrence_never_matches(kind):
    rule = make_rule(recurrence=kind, base_day=date(2020, 1, 10))
    assert not matches(rule, date(2020, 1, 10))
    assert candidate_day(rule, 2020, 1) is None
    assert compute_day_occurrences([rule], date(2020, 1, 10)) == []


def test_is_skipped_uses_calendar_date_equality():
    rule = make_rule(skips=[date(2025, 6, 10), date(2025, 6, 10)])
    assert is_skipped(rule, date(2025, 6, 10))
    assert not is_skipped(rule, date(2025, 7, 10))
    assert len(rule.skips) == 1


def test_skip_that_never_matches_is_harmless():
    rule = make_rule(skips=[date(2025, 6, 11)])
    assert compute_month_presence([rule], 2025, 6) == {date(2025, 6, 10)}


def test_resolve_override_without_entry_returns_base_values():
    rule = make_rule(title='Rent', notes='landlord')
    assert resolve_override(rule, date(2025, 6, 10)) == ('Rent', 'landlord')


def test_resolve_override_replaces_only_present_fields():
    rule = make_rule(title='Rent', notes='landlord', overrides=[
        Override(day=date(2025, 6, 10), title='Rent (late)'),
        Override(day=date(2025, 8, 10), notes='paid cash'),
    ])
    assert resolve_override(rule, date(2025, 6, 10)) == ('Rent (late)', 'landlord')
    assert resolve_override(rule, date(2025, 8, 10)) == ('Rent', 'paid cash')


def test_first_stored_override_wins_for_duplicate_dates():
    rule = make_rule(overrides=[
        Override(day=date(2025, 6, 10), title='first'),
        Override(day=date(2025, 6, 10), title='second', notes='second notes'),
    ])
    assert resolve_override(rule, date(2025, 6, 10)) == ('first', None)


def test_skip_takes_precedence_over_override():
    rule = make_rule(skips=[date(2025, 6, 10)], overrides=[Override(day=date(2025, 6, 10), title='moved')])
    assert compute_day_occurrences([rule], date(2025, 6, 10)) == []
    assert date(2025, 6, 10) not in compute_month_presence([rule], 2025, 6)


def test_presence_ignores_skip_when_another_rule_matches():
    skipped = make_rule(rule_id=1, skips=[date(2025, 6, 10)])
    other = make_rule(rule_id=2, title='Gym')
    assert compute_month_presence([skipped, other], 2025, 6) == {date(2025, 6, 10)}
    assert [o.rule_id for o in compute_day_occurrences([skipped, other], date(2025, 6, 10))] == [2]


def test_day_occurrences_ordered_by_rule_id_descending():
    rules = [make_rule(rule_id=i, title=f'r{i}') for i in (3, 7, 1)]
    result = compute_day_occurrences(rules, date(2025, 6, 10))
    assert [o.rule_id for o in result] == [7, 3, 1]
    assert result[0].to_dict() == {'id': 7, 'title': 'r7', 'notes': None, 'date': '2025-06-10'}


def test_direct_presence_equals_day_scan():
    rules = [
        make_rule(rule_id=1, recurrence='MONTHLY', base_day=date(2020, 1, 1)),
        make_rule(rule_id=2, recurrence='MONTHLY', base_day=date(2020, 1, 29), skips=[date(2024, 2, 29)]),
        make_rule(rule_id=3, recurrence='MONTHLY', base_day=date(2020, 1, 30)),
        make_rule(rule_id=4, recurrence='MONTHLY', base_day=date(2021, 5, 31), skips=[date(2025, 12, 31)]),
        make_rule(rule_id=5, recurrence='YEARLY', base_day=date(2020, 2, 29)),
        make_rule(rule_id=6, recurrence='YEARLY', base_day=date(2019, 12, 25), skips=[date(2024, 12, 25)]),
        make_rule(rule_id=7, recurrence='WEEKLY', base_day=date(2020, 1, 15)),
    ]
    for year in (2023, 2024, 2025):
        for month in range(1, 13):
            assert compute_month_presence(rules, year, month) == scan_month_presence(rules, year, month)


def test_presence_rejects_invalid_month():
    with pytest.raises(ValueError):
        compute_month_presence([], 2025, 13)


def test_rule_accepts_plain_set_and_list_collections():
    rule = RecurringRule(
        id=1,
        owner_id=None,
        title='Rent',
        base_day=date(2020, 1, 10),
        recurrence='MONTHLY',
        skips={date(2025, 6, 10)},
        overrides=[Override(day=date(2025, 7, 10), title='Rent (late)')],
    )
    assert isinstance(rule.skips, frozenset)
    assert isinstance(rule.overrides, tuple)
    assert hash(rule) == hash(make_rule(skips=[date(2025, 6, 10)],
                                        overrides=[Override(day=date(2025, 7, 10), title='Rent (late)')]))
    assert compute_month_presence([rule], 2025, 6) == frozenset()
    assert compute_month_presence([rule], 2025, 7) == {date(2025, 7, 10)}
    assert compute_day_occurrences([rule], date(2025, 7, 10))[0].title == 'Rent (late)'


def test_scenario_a_yearly_presence():
    rule = make_rule(recurrence='YEARLY', base_day=date(2020, 3, 15))
    assert date(2025, 3, 15) in compute_month_presence([rule], 2025, 3)


def test_scenario_b_monthly_31_in_february():
    rule = make_rule(recurrence='MONTHLY', base_day=date(2024, 1, 31))
    assert compute_month_presence([rule], 2025, 2) == frozenset()


def test_scenario_c_skipped_yearly_date():
    rule = make_rule(recurrence='YEARLY', base_day=date(2020, 12, 25), skips=[date(2025, 12, 25)])
    assert compute_day_occurrences([rule], date(2025, 12, 25)) == []
    assert date(2025, 12, 25) not in compute_month_presence([rule], 2025, 12)


def test_scenario_d_monthly_override():
    rule = make_rule(recurrence='MONTHLY', base_day=date(2020, 1, 10), title='Rent',
                     overrides=[Override(day=date(2025, 6, 10), title='Rent (late)')])
    assert compute_day_occurrences([rule], date(2025, 6, 10))[0].title == 'Rent (late)'
    assert compute_day_occurrences([rule], date(2025, 7, 10))[0].title == 'Rent'
