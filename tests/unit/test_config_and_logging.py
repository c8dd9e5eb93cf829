import json
import logging
from datetime import time

import pytest

from venue_booking.config import get_settings
from venue_booking.logging_config import RedactingJsonFormatter, redact_pii


def test_defaults(monkeypatch):
    for name in ["VENUE_TIMEZONE", "BOOKABLE_WEEKDAYS", "DEFAULT_CUTOFF_TIME", "REFERENCE_PREFIX"]:
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.venue_timezone == "Europe/London"
    assert settings.bookable_weekdays == frozenset({4, 5})
    assert settings.default_cutoff_time == time(23, 0)
    assert settings.reference_prefix == "NCB"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BOOKABLE_WEEKDAYS", "3,4,5")
    monkeypatch.setenv("DEFAULT_CUTOFF_TIME", "21:30")
    monkeypatch.setenv("BOOKING_CURRENCY", "EUR")

    settings = get_settings()

    assert settings.bookable_weekdays == frozenset({3, 4, 5})
    assert settings.default_cutoff_time == time(21, 30)
    assert settings.currency == "eur"


@pytest.mark.parametrize(
    "name, value",
    [
        ("BOOKABLE_WEEKDAYS", "fri,sat"),
        ("BOOKABLE_WEEKDAYS", "7"),
        ("DEFAULT_CUTOFF_TIME", "late"),
        ("REFERENCE_MAX_ATTEMPTS", "0"),
    ],
)
def test_invalid_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        get_settings()


def test_redact_pii():
    assert redact_pii("sent to ada@example.com") == "sent to [REDACTED_EMAIL]"


def test_json_formatter_masks_pii():
    record = logging.LogRecord(
        name="venue_booking.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Booking for %s",
        args=("ada@example.com",),
        exc_info=None,
    )
    record.extra = {"guest_email": "ada@example.com", "reference": "NCB-20300605-AAAAAA"}

    payload = json.loads(RedactingJsonFormatter().format(record))

    assert payload["message"] == "Booking for [REDACTED_EMAIL]"
    assert payload["guest_email"] == "[REDACTED]"
    assert payload["reference"] == "NCB-20300605-AAAAAA"
    assert payload["level"] == "INFO"
