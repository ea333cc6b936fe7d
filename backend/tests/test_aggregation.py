from datetime import date

import pytest

from backend.app.aggregation import Delta, aggregate_batch
from backend.app.events import EventType
from backend.app.models import COUNTER_COLUMNS


def _event(company_id=1, event_type="PROFILE_VIEW", created_at="2026-10-17T09:15:00Z", **extra):
    event = {"companyId": company_id, "type": event_type, "createdAt": created_at, "meta": {"src": "test"}}
    event.update(extra)
    return event


def test_same_group_same_type_counts_every_event():
    deltas = aggregate_batch([_event(event_type="CLICK_PHONE") for _ in range(7)])

    assert list(deltas) == [(1, date(2026, 10, 17))]
    counters = deltas[(1, date(2026, 10, 17))].counters
    assert counters["clicks_phone"] == 7
    assert sum(counters.values()) == 7


def test_groups_are_isolated_by_company_and_day():
    deltas = aggregate_batch(
        [
            _event(company_id=1, event_type="PROFILE_VIEW"),
            _event(company_id=2, event_type="PROFILE_VIEW"),
            _event(company_id=1, event_type="FORM_SUBMIT", created_at="2026-10-18T00:00:01Z"),
            _event(company_id=1, event_type="PROFILE_VIEW"),
        ]
    )

    assert deltas[(1, date(2026, 10, 17))].counters["views_profile"] == 2
    assert deltas[(2, date(2026, 10, 17))].counters["views_profile"] == 1
    assert deltas[(1, date(2026, 10, 18))].counters["leads_form"] == 1
    assert deltas[(1, date(2026, 10, 18))].counters["views_profile"] == 0


def test_invalid_events_are_skipped_without_failing_the_batch():
    deltas = aggregate_batch(
        [
            _event(event_type="SEARCH_IMPRESSION"),
            {"type": "PROFILE_VIEW", "createdAt": "2026-10-17T10:00:00Z"},
            _event(event_type="MAP_IMPRESSION"),
            _event(event_type="NEWSLETTER_SIGNUP"),
            _event(event_type="CLICK_SITE"),
        ]
    )

    counters = deltas[(1, date(2026, 10, 17))].counters
    assert counters["impressions_search"] == 1
    assert counters["impressions_map"] == 1
    assert counters["clicks_site"] == 1
    assert sum(counters.values()) == 3


def test_unknown_type_still_opens_its_group():
    deltas = aggregate_batch([_event(company_id=9, event_type="SOMETHING_NEW")])

    assert deltas[(9, date(2026, 10, 17))].counters == {column: 0 for column in COUNTER_COLUMNS}


@pytest.mark.parametrize(
    "event",
    [
        {"companyId": 1, "type": "PROFILE_VIEW"},
        {"companyId": None, "type": "PROFILE_VIEW", "createdAt": "2026-10-17T10:00:00Z"},
        {"companyId": "acme", "type": "PROFILE_VIEW", "createdAt": "2026-10-17T10:00:00Z"},
        {"companyId": 1, "type": "PROFILE_VIEW", "createdAt": "yesterday"},
    ],
)
def test_events_without_usable_key_are_dropped(event):
    assert aggregate_batch([event]) == {}


def test_digit_string_company_ids_are_accepted():
    deltas = aggregate_batch([_event(company_id="42")])

    assert (42, date(2026, 10, 17)) in deltas


def test_non_object_bodies_are_skipped_alongside_valid_events():
    deltas = aggregate_batch([None, _event(), "PROFILE_VIEW", [1, "PROFILE_VIEW"], 42, _event()])

    assert list(deltas) == [(1, date(2026, 10, 17))]
    assert deltas[(1, date(2026, 10, 17))].counters["views_profile"] == 2


def test_empty_batch_gives_no_deltas():
    assert aggregate_batch([]) == {}


def test_duplicate_events_are_not_deduplicated():
    event = _event(event_type="CLICK_EMAIL")
    deltas = aggregate_batch([event, event])

    assert deltas[(1, date(2026, 10, 17))].counters["clicks_email"] == 2


def test_event_type_vocabularies():
    assert EventType.parse("CLICK_DIRECTIONS") is EventType.CLICK_DIRECTIONS
    assert EventType.parse("click_directions") is EventType.UNKNOWN
    assert EventType.parse(None) is EventType.UNKNOWN
    assert EventType.from_legacy("lead_form") is EventType.FORM_SUBMIT
    assert EventType.from_legacy("FORM_SUBMIT") is EventType.UNKNOWN
    assert EventType.FORM_SUBMIT.counter == "leads_form"

    with pytest.raises(ValueError):
        EventType.UNKNOWN.counter


def test_single_delta_increments_one_counter():
    delta = Delta.single(3, date(2026, 10, 18), EventType.CLICK_PHONE)

    assert delta.key == (3, date(2026, 10, 18))
    assert delta.counters["clicks_phone"] == 1
    assert sum(delta.counters.values()) == 1
