"""Capacity and waitlist arithmetic for attendance confirmations.

Entries are not tagged as confirmed or waitlisted in storage. The first
``capacity`` entries (by ``confirmed_at``) hold seats and any beyond that
are waitlisted, so a cancellation implicitly moves the next entry up.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class Verdict(str, Enum):
	ACCEPTED = "accepted"
	WAITLISTED = "waitlisted"
	REJECTED = "rejected"


def spots_left(capacity: Optional[int], confirmed_count: int) -> Optional[int]:
	"""Seats still open; None means unlimited."""
	if capacity is None:
		return None
	return max(0, capacity - confirmed_count)


def waitlisted_count(capacity: Optional[int], confirmed_count: int) -> int:
	if capacity is None:
		return 0
	return max(0, confirmed_count - capacity)


def evaluate(capacity: Optional[int], waitlist_capacity: int, confirmed_count: int) -> Verdict:
	"""Decide whether one more confirmation fits.

	``confirmed_count`` must come from the store at the time of the attempt.
	"""
	if capacity is None:
		return Verdict.ACCEPTED
	if confirmed_count < capacity:
		return Verdict.ACCEPTED
	if waitlisted_count(capacity, confirmed_count) < max(0, waitlist_capacity):
		return Verdict.WAITLISTED
	return Verdict.REJECTED


def position_verdict(capacity: Optional[int], position: int) -> Verdict:
	"""Verdict for an existing entry at zero-based ``position`` in confirmation order."""
	if capacity is None or position < capacity:
		return Verdict.ACCEPTED
	return Verdict.WAITLISTED
