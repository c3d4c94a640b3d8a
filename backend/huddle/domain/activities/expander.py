"""Multi-date publication expander.

Turns one authoring submission (content plus a list of local date/time
strings) into one ``ActivityDraft`` per unique start instant. Validation
happens once, up front; nothing here touches storage, so a failure can never
leave a partial set of siblings behind.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from huddle.domain.activities.exceptions import ValidationError
from huddle.domain.activities.models import ActivityContent, ActivityDraft
from huddle.domain.activities.schemas import ActivityDraftRequest, FormNumber
from huddle.settings import settings

TITLE_MIN = 3
SPORT_MIN = 2
ADDRESS_MIN = 5
CITY_MIN = 2
STATE_MIN = 2
WHATSAPP_MIN = 6


def _require_text(value: Optional[str], minimum: int, message: str) -> str:
	text = (value or "").strip()
	if len(text) < minimum:
		raise ValidationError(message)
	return text


def _is_blank(value: FormNumber) -> bool:
	return value is None or (isinstance(value, str) and not value.strip())


def _to_decimal(value: FormNumber) -> Optional[Decimal]:
	if isinstance(value, bool):
		return None
	try:
		number = Decimal(str(value).strip())
	except InvalidOperation:
		return None
	if not number.is_finite():
		return None
	return number


def _to_whole(value: FormNumber) -> Optional[int]:
	number = _to_decimal(value)
	if number is None or number != number.to_integral_value():
		return None
	return int(number)


def parse_capacity(value: FormNumber) -> Optional[int]:
	"""Blank means unlimited; anything else must be a whole number above zero."""
	if _is_blank(value):
		return None
	capacity = _to_whole(value)
	if capacity is None or capacity <= 0:
		raise ValidationError("Capacity must be empty (unlimited) or a whole number greater than 0.")
	return capacity


def parse_waitlist(value: FormNumber) -> int:
	if _is_blank(value):
		return 0
	waitlist = _to_whole(value)
	if waitlist is None or waitlist < 0:
		raise ValidationError("Waitlist must be empty or a whole number of 0 or more.")
	return waitlist


def parse_price_cents(value: FormNumber) -> int:
	"""Dollar amount to cents, rounding half up; blank means free."""
	if _is_blank(value):
		return 0
	amount = _to_decimal(value)
	if amount is None or amount < 0:
		raise ValidationError("Price must be a non-negative amount in USD.")
	return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def resolve_zone(name: Optional[str]) -> ZoneInfo:
	zone_name = (name or "").strip() or settings.default_timezone
	try:
		return ZoneInfo(zone_name)
	except (ZoneInfoNotFoundError, ValueError):
		raise ValidationError(f"Unknown time zone: {zone_name}.")


def clean_dates(raw_dates: Iterable[Optional[str]]) -> List[str]:
	"""Drop blank entries and reject duplicates, comparing the raw strings."""
	cleaned = [(value or "").strip() for value in raw_dates]
	cleaned = [value for value in cleaned if value]
	if not cleaned:
		raise ValidationError("Add at least 1 date & time.")
	if len(set(cleaned)) != len(cleaned):
		raise ValidationError("You added duplicate dates. Remove the duplicates.")
	return cleaned


def to_instant(local_value: str, zone: ZoneInfo) -> datetime:
	"""Interpret a date/time string in ``zone`` and return it in UTC.

	Strings that already carry an offset keep it.
	"""
	# fromisoformat only accepts a trailing "Z" from Python 3.11 on.
	normalised = local_value[:-1] + "+00:00" if local_value[-1:] in ("Z", "z") else local_value
	try:
		parsed = datetime.fromisoformat(normalised)
	except ValueError:
		raise ValidationError(f"One of the dates is invalid: {local_value}.")
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=zone)
	return parsed.astimezone(timezone.utc)


def resolve_instants(raw_dates: Sequence[Optional[str]], tz_name: Optional[str]) -> List[datetime]:
	"""Clean, parse and de-duplicate start instants, preserving submission order."""
	cleaned = clean_dates(raw_dates)
	zone = resolve_zone(tz_name)
	instants: List[datetime] = []
	seen: set[datetime] = set()
	for value in cleaned:
		instant = to_instant(value, zone)
		# Distinct strings can still name the same instant ("18:00" vs "18:00:00").
		if instant in seen:
			continue
		seen.add(instant)
		instants.append(instant)
	return instants


def build_content(payload: ActivityDraftRequest, *, image_ref: Optional[str] = None) -> ActivityContent:
	whatsapp = (payload.organizer_whatsapp or "").strip() or None
	if whatsapp is not None and len(whatsapp) < WHATSAPP_MIN:
		raise ValidationError("WhatsApp number is invalid (e.g. +14075551234).")
	description = (payload.description or "").strip() or None
	return ActivityContent(
		title=_require_text(payload.title, TITLE_MIN, "Title is required (at least 3 characters)."),
		sport=_require_text(payload.sport, SPORT_MIN, "Sport is required."),
		address_text=_require_text(payload.address_text, ADDRESS_MIN, "Address is required."),
		city=_require_text(payload.city, CITY_MIN, "City is required."),
		state=_require_text(payload.state, STATE_MIN, "State is required."),
		description=description,
		capacity=parse_capacity(payload.capacity),
		waitlist_capacity=parse_waitlist(payload.waitlist_capacity),
		price_cents=parse_price_cents(payload.price_usd),
		image_ref=image_ref,
		organizer_whatsapp=whatsapp,
		published=bool(payload.published),
		is_public=bool(payload.is_public),
	)


def expand(owner_id: str, payload: ActivityDraftRequest, *, image_ref: Optional[str] = None) -> List[ActivityDraft]:
	"""Validate a submission and return one draft per unique start instant."""
	content = build_content(payload, image_ref=image_ref)
	instants = resolve_instants(payload.dates, payload.timezone)
	return [ActivityDraft(owner_id=owner_id, start_at=instant, content=content) for instant in instants]
