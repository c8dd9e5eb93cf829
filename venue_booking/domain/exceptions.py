

class VenueBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the venue booking core.

    ``reason`` is the stable machine-readable code returned to clients,
    ``status_code`` the HTTP status the API layer maps it to.
    """

    reason = "VenueBookingError"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ---------------------
# VALIDATION
# ---------------------

class ValidationError(VenueBookingError):
    """Malformed or missing input."""

    reason = "ValidationError"
    status_code = 400


class InvalidDateError(ValidationError):
    reason = "InvalidDate"


class UnsupportedDayError(ValidationError):
    reason = "UnsupportedDay"


class PastDateError(ValidationError):
    reason = "PastDate"


class BlackoutDateError(ValidationError):
    """Raised when the requested date is blacked out."""

    reason = "BlackoutDate"

    def __init__(self, event_date, blackout_reason: str | None):
        self.event_date = event_date
        self.blackout_reason = blackout_reason
        message = f"Bookings are not available on {event_date.isoformat()}"
        if blackout_reason:
            message = f"{message}: {blackout_reason}"
        super().__init__(
            message,
            details={"date": event_date.isoformat(), "blackout_reason": blackout_reason},
        )


class PastCutoffError(ValidationError):
    reason = "PastCutoff"


class InvalidCustomerError(ValidationError):
    reason = "InvalidCustomer"


class InvalidPromoCodeError(ValidationError):
    """
    Raised when a promo code cannot be applied.
    ``code`` tells which rule rejected it.
    """

    reason = "InvalidPromoCode"

    def __init__(self, message: str, code: str):
        self.code = code
        super().__init__(message, details={"code": code})


class NoPricingAvailableError(ValidationError):
    reason = "NoPricingAvailable"


class MalformedReferenceError(ValidationError):
    reason = "MalformedReference"


class InvalidCalendarDateError(ValidationError):
    reason = "InvalidCalendarDate"


# ---------------------
# NOT FOUND
# ---------------------

class NotFoundError(VenueBookingError):
    reason = "NotFound"
    status_code = 404


class BookingNotFoundError(NotFoundError):
    reason = "BookingNotFound"


class ItemNotFoundError(NotFoundError):
    reason = "ItemNotFound"


# ---------------------
# CONFLICT
# ---------------------

class ConflictError(VenueBookingError):
    """Something else won: inventory, reference or state changed underneath us."""

    reason = "Conflict"
    status_code = 409


class InsufficientAvailabilityError(ConflictError):
    """Raised when fewer units are left than requested."""

    reason = "InsufficientAvailability"

    def __init__(self, item_ref: str, item_name: str, requested: int, available: int):
        self.item_ref = item_ref
        self.requested = requested
        self.available = available
        super().__init__(
            f"Only {available} of {item_name} left, {requested} requested",
            details={"item_ref": item_ref, "requested": requested, "available": available},
        )


class ItemUnavailableError(ConflictError):
    reason = "ItemUnavailable"

    def __init__(self, item_ref: str, message: str):
        self.item_ref = item_ref
        super().__init__(message, details={"item_ref": item_ref})


class InventoryConflictError(ConflictError):
    """Raised when a concurrent reservation took the inventory first."""

    reason = "InventoryConflict"


class DuplicateReferenceError(ConflictError):
    reason = "DuplicateReference"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    reason = "InvalidStateTransition"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


# ---------------------
# WEBHOOK SIGNATURES
# ---------------------

class SignatureError(VenueBookingError):
    reason = "SignatureError"
    status_code = 400


class MissingSignatureError(SignatureError):
    reason = "MissingSignature"


class WebhookSecretNotConfiguredError(SignatureError):
    reason = "WebhookSecretNotConfigured"
    status_code = 500


class SignatureVerificationFailedError(SignatureError):
    reason = "InvalidSignature"


# ---------------------
# INFRASTRUCTURE
# ---------------------

class PersistenceError(VenueBookingError):
    reason = "PersistenceError"
    status_code = 500


class PaymentProviderError(VenueBookingError):
    reason = "PaymentProviderError"
    status_code = 502
