from datetime import datetime, timezone

import pytest

from huddle.domain.activities import expander
from huddle.domain.activities.exceptions import ValidationError
from huddle.domain.activities.schemas import ActivityDraftRequest


def _payload(**overrides) -> ActivityDraftRequest:
    data = {
        "title": "Sunday Pickup",
        "sport": "Soccer",
        "address_text": "100 Park Ave",
        "city": "Orlando",
        "state": "FL",
        "dates": ["2030-05-01T18:00"],
        "timezone": "UTC",
    }
    data.update(overrides)
    return ActivityDraftRequest(**data)


def test_one_draft_per_date_with_identical_content():
    dates = ["2030-05-01T18:00", "2030-05-08T18:00", "2030-05-15T18:00"]
    drafts = expander.expand("owner-1", _payload(dates=dates, capacity="10", price_usd="12.5"))

    assert len(drafts) == 3
    assert [d.start_at for d in drafts] == [
        datetime(2030, 5, 1, 18, tzinfo=timezone.utc),
        datetime(2030, 5, 8, 18, tzinfo=timezone.utc),
        datetime(2030, 5, 15, 18, tzinfo=timezone.utc),
    ]
    assert {d.content for d in drafts} == {drafts[0].content}
    assert drafts[0].content.capacity == 10
    assert drafts[0].content.price_cents == 1250
    assert all(d.owner_id == "owner-1" for d in drafts)


def test_blank_dates_are_ignored_but_one_is_required():
    drafts = expander.expand("owner-1", _payload(dates=["", "2030-05-01T18:00", "   "]))
    assert len(drafts) == 1

    with pytest.raises(ValidationError) as excinfo:
        expander.expand("owner-1", _payload(dates=["", " "]))
    assert excinfo.value.detail == "Add at least 1 date & time."


def test_duplicate_dates_reject_whole_submission():
    with pytest.raises(ValidationError) as excinfo:
        expander.expand("owner-1", _payload(dates=["2030-05-01T18:00", "2030-05-02T18:00", "2030-05-01T18:00"]))
    assert "duplicate" in excinfo.value.detail


def test_equivalent_spellings_collapse_to_one_instant():
    drafts = expander.expand("owner-1", _payload(dates=["2030-05-01T18:00", "2030-05-01T18:00:00"]))
    assert len(drafts) == 1


def test_naive_dates_are_read_in_the_submitted_zone():
    drafts = expander.expand("owner-1", _payload(dates=["2030-01-15T09:00"], timezone="America/New_York"))
    assert drafts[0].start_at == datetime(2030, 1, 15, 14, tzinfo=timezone.utc)


def test_zulu_suffix_is_read_as_utc():
    drafts = expander.expand(
        "owner-1", _payload(dates=["2030-05-01T18:00Z", "2030-05-02T09:30:00z"], timezone="America/Chicago")
    )
    assert [d.start_at for d in drafts] == [
        datetime(2030, 5, 1, 18, tzinfo=timezone.utc),
        datetime(2030, 5, 2, 9, 30, tzinfo=timezone.utc),
    ]


def test_unknown_zone_is_a_validation_error():
    with pytest.raises(ValidationError):
        expander.expand("owner-1", _payload(timezone="Mars/Olympus"))


@pytest.mark.parametrize(
    "field, value",
    [
        ("title", "ab"),
        ("sport", " "),
        ("address_text", "1 A"),
        ("city", "X"),
        ("state", ""),
        ("organizer_whatsapp", "123"),
    ],
)
def test_short_text_fields_are_rejected(field, value):
    with pytest.raises(ValidationError):
        expander.expand("owner-1", _payload(**{field: value}))


@pytest.mark.parametrize("value", ["0", "-3", "2.5", "ten", 0])
def test_capacity_must_be_positive_whole_number(value):
    with pytest.raises(ValidationError):
        expander.parse_capacity(value)


def test_capacity_blank_means_unlimited():
    assert expander.parse_capacity(None) is None
    assert expander.parse_capacity("  ") is None
    assert expander.parse_capacity("4") == 4
    assert expander.parse_capacity(4.0) == 4


def test_waitlist_defaults_to_zero_and_rejects_negative():
    assert expander.parse_waitlist(None) == 0
    assert expander.parse_waitlist("3") == 3
    with pytest.raises(ValidationError):
        expander.parse_waitlist("-1")


def test_price_rounds_half_up_to_cents():
    assert expander.parse_price_cents(None) == 0
    assert expander.parse_price_cents("0") == 0
    assert expander.parse_price_cents("10.005") == 1001
    assert expander.parse_price_cents(7) == 700
    with pytest.raises(ValidationError):
        expander.parse_price_cents("-1")
    with pytest.raises(ValidationError):
        expander.parse_price_cents("free")


def test_invalid_date_string_is_rejected():
    with pytest.raises(ValidationError):
        expander.expand("owner-1", _payload(dates=["next tuesday"]))
