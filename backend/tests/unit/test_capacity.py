from huddle.domain.activities.capacity import Verdict, evaluate, position_verdict, spots_left, waitlisted_count


def test_unlimited_capacity_always_accepts():
    assert evaluate(None, 0, 0) is Verdict.ACCEPTED
    assert evaluate(None, 0, 10_000) is Verdict.ACCEPTED
    assert spots_left(None, 500) is None
    assert waitlisted_count(None, 500) == 0


def test_accepts_until_capacity_is_reached():
    assert evaluate(3, 0, 0) is Verdict.ACCEPTED
    assert evaluate(3, 0, 2) is Verdict.ACCEPTED
    assert evaluate(3, 0, 3) is Verdict.REJECTED


def test_waitlist_absorbs_overflow_then_rejects():
    assert evaluate(2, 2, 2) is Verdict.WAITLISTED
    assert evaluate(2, 2, 3) is Verdict.WAITLISTED
    assert evaluate(2, 2, 4) is Verdict.REJECTED


def test_spots_left_never_negative():
    assert spots_left(5, 3) == 2
    assert spots_left(5, 5) == 0
    assert spots_left(5, 7) == 0
    assert waitlisted_count(5, 7) == 2


def test_position_verdict_splits_seats_and_waitlist():
    assert position_verdict(2, 0) is Verdict.ACCEPTED
    assert position_verdict(2, 1) is Verdict.ACCEPTED
    assert position_verdict(2, 2) is Verdict.WAITLISTED
    assert position_verdict(None, 99) is Verdict.ACCEPTED
