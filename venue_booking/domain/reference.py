"""
Booking references: ``PREFIX-YYYYMMDD-XXXXXX``.

The date segment is the UTC calendar date the reference was issued on and the
suffix is six random characters from ``A-Z0-9``.
"""

import re
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime, timezone

from venue_booking.domain.exceptions import (
    InvalidCalendarDateError,
    MalformedReferenceError,
)

DEFAULT_PREFIX = "NCB"
SUFFIX_LENGTH = 6
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

_REFERENCE_RE = re.compile(r"^([A-Z]+)-(\d{8})-([A-Z0-9]{6})$")


@dataclass(frozen=True)
class ParsedReference:
    prefix: str
    date_segment: str
    suffix: str
    issued_on: date


def generate_reference(at: datetime | None = None, prefix: str = DEFAULT_PREFIX) -> str:
    moment = at or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    date_segment = moment.astimezone(timezone.utc).strftime("%Y%m%d")
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}-{date_segment}-{suffix}"


def parse_reference(reference: str, prefix: str = DEFAULT_PREFIX) -> ParsedReference:
    if not isinstance(reference, str):
        raise MalformedReferenceError("Invalid booking reference format")

    match = _REFERENCE_RE.match(reference)
    if not match or match.group(1) != prefix:
        raise MalformedReferenceError("Invalid booking reference format")

    prefix_part, date_segment, suffix = match.groups()
    try:
        issued_on = datetime.strptime(date_segment, "%Y%m%d").date()
    except ValueError as exc:
        raise InvalidCalendarDateError("Invalid date in booking reference") from exc

    return ParsedReference(
        prefix=prefix_part,
        date_segment=date_segment,
        suffix=suffix,
        issued_on=issued_on,
    )


def validate_reference(reference: str | None, prefix: str = DEFAULT_PREFIX) -> bool:
    if not reference or not isinstance(reference, str) or not reference.strip():
        return False
    try:
        parse_reference(reference, prefix=prefix)
    except (MalformedReferenceError, InvalidCalendarDateError):
        return False
    return True
