import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from venue_booking.config import Settings
from venue_booking.domain import calendar
from venue_booking.domain.exceptions import (
    BlackoutDateError,
    InsufficientAvailabilityError,
    InvalidDateError,
    InventoryConflictError,
    ItemNotFoundError,
    ItemUnavailableError,
    PastCutoffError,
    PastDateError,
    UnsupportedDayError,
    ValidationError,
)
from venue_booking.domain.values import ItemKind, RequestedItem, Reservation, ReservedLine
from venue_booking.infrastructure.repositories.catalog_repository import CatalogRepository
from venue_booking.infrastructure.repositories.inventory_repository import InventoryRepository

logger = logging.getLogger(__name__)

DEFAULT_DATE_RANGE_DAYS = 90
NO_AVAILABILITY_DATA = "No availability data"


@dataclass(frozen=True)
class ItemAvailability:
    item_kind: ItemKind
    item_ref: str
    name: str
    is_available: bool
    available_quantity: int
    message: str | None = None


@dataclass(frozen=True)
class DateAvailability:
    event_date: date
    is_blackout: bool
    blackout_reason: str | None
    is_past_cutoff: bool
    items: list[ItemAvailability]


@dataclass(frozen=True)
class BookableDate:
    event_date: date
    day_of_week: str
    cutoff_time: time
    is_blackout: bool
    blackout_reason: str | None
    is_past_cutoff: bool
    timezone: str


class AvailabilityResolver:
    """
    Date rules and dated inventory for packages and extras.

    ``check_and_reserve`` mutates inventory in the caller's transaction and
    never commits; the caller owns commit and rollback.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        clock: Callable[[], datetime] = calendar.utc_now,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.catalog_repository = CatalogRepository(db)
        self.inventory_repository = InventoryRepository(db)

    # -----------------------------
    # Reservation
    # -----------------------------
    def check_and_reserve(
        self,
        event_date: date,
        items: Iterable[RequestedItem],
    ) -> Reservation:
        requested = merge_requested_items(items)
        if not requested:
            raise ValidationError("At least one item is required")

        self._ensure_date_bookable(event_date)

        # Every line is checked before any inventory is touched.
        lines = [self._check_line(event_date, line) for line in requested]

        for line in lines:
            reserved = self.inventory_repository.try_decrement(
                line.item_kind,
                line.item_ref,
                event_date,
                line.quantity,
            )
            if not reserved:
                logger.warning(
                    "Inventory race lost for %s %s on %s",
                    line.item_kind.value,
                    line.item_ref,
                    event_date.isoformat(),
                )
                raise InventoryConflictError(
                    f"{line.item_name} was reserved by another booking, please try again",
                    details={"item_ref": line.item_ref},
                )

        return Reservation(event_date=event_date, lines=tuple(lines))

    def _ensure_date_bookable(self, event_date: date) -> None:
        self._ensure_weekday_and_not_past(event_date)

        blackout = self.catalog_repository.get_blackout(event_date)
        if blackout is not None:
            raise BlackoutDateError(event_date, blackout.reason)

        cutoff_time = self.cutoff_time_for(event_date)
        if calendar.is_past_cutoff(event_date, cutoff_time, self.clock(), self.settings.venue_tz):
            raise PastCutoffError(
                f"Booking cutoff of {cutoff_time.strftime('%H:%M')} "
                f"for {event_date.isoformat()} has passed",
                details={"date": event_date.isoformat(), "cutoff_time": cutoff_time.strftime("%H:%M")},
            )

    def _ensure_weekday_and_not_past(self, event_date: date) -> None:
        if not calendar.is_bookable_weekday(event_date, self.settings.bookable_weekdays):
            allowed = sorted(self.settings.bookable_weekdays)
            raise UnsupportedDayError(
                f"Bookings are not available on {calendar.day_name(event_date)}",
                details={"date": event_date.isoformat(), "bookable_weekdays": allowed},
            )

        if calendar.is_past_date(event_date, self.clock(), self.settings.venue_tz):
            raise PastDateError(
                f"{event_date.isoformat()} is in the past",
                details={"date": event_date.isoformat()},
            )

    def _check_line(self, event_date: date, line: RequestedItem) -> ReservedLine:
        item = self.catalog_repository.get_item(line.item_kind, line.item_ref)
        if item is None:
            raise ItemNotFoundError(
                f"{line.item_kind.value.title()} {line.item_ref} not found",
                details={"item_ref": line.item_ref},
            )

        if not item.is_active:
            raise ItemUnavailableError(line.item_ref, f"{item.name} is no longer offered")

        inventory = self.inventory_repository.get(line.item_kind, item.id, event_date)
        if inventory is None:
            raise ItemUnavailableError(line.item_ref, f"{item.name}: {NO_AVAILABILITY_DATA}")

        if not inventory.is_available:
            raise ItemUnavailableError(
                line.item_ref,
                f"{item.name} is not available on {event_date.isoformat()}",
            )

        if line.quantity > inventory.available_quantity:
            raise InsufficientAvailabilityError(
                item_ref=line.item_ref,
                item_name=item.name,
                requested=line.quantity,
                available=inventory.available_quantity,
            )

        return ReservedLine(
            item_kind=line.item_kind,
            item_ref=item.id,
            item_name=item.name,
            quantity=line.quantity,
            item=item,
        )

    # -----------------------------
    # Read side
    # -----------------------------
    def cutoff_time_for(self, event_date: date) -> time:
        rule = self.catalog_repository.get_cutoff_rule(event_date.weekday())
        if rule is not None:
            return rule.cutoff_time
        return self.settings.default_cutoff_time

    def describe_date(self, event_date: date) -> DateAvailability:
        self._ensure_weekday_and_not_past(event_date)

        blackout = self.catalog_repository.get_blackout(event_date)
        is_past_cutoff = calendar.is_past_cutoff(
            event_date,
            self.cutoff_time_for(event_date),
            self.clock(),
            self.settings.venue_tz,
        )
        inventory = {
            (row.item_kind, row.item_id): row
            for row in self.inventory_repository.list_for_date(event_date)
        }

        items = []
        for item_kind in (ItemKind.PACKAGE, ItemKind.EXTRA):
            for item in self.catalog_repository.list_active(item_kind):
                row = inventory.get((item_kind, item.id))
                if blackout is not None:
                    items.append(ItemAvailability(item_kind, item.id, item.name, False, 0))
                elif row is None:
                    items.append(
                        ItemAvailability(item_kind, item.id, item.name, False, 0, NO_AVAILABILITY_DATA)
                    )
                else:
                    is_available = row.is_available and row.available_quantity > 0 and not is_past_cutoff
                    items.append(
                        ItemAvailability(
                            item_kind,
                            item.id,
                            item.name,
                            is_available,
                            row.available_quantity if row.is_available else 0,
                        )
                    )

        return DateAvailability(
            event_date=event_date,
            is_blackout=blackout is not None,
            blackout_reason=blackout.reason if blackout is not None else None,
            is_past_cutoff=is_past_cutoff,
            items=items,
        )

    def available_dates(
        self,
        start: date | None = None,
        end: date | None = None,
        include_blackouts: bool = False,
    ) -> list[BookableDate]:
        tz = self.settings.venue_tz
        now = self.clock()
        start = start or calendar.local_today(now, tz)
        end = end or start + timedelta(days=DEFAULT_DATE_RANGE_DAYS)
        if end < start:
            raise InvalidDateError("End date must be after start date")

        blackouts = {
            row.event_date: row.reason
            for row in self.catalog_repository.list_blackouts_between(start, end)
        }

        dates = []
        for day in calendar.bookable_dates_between(start, end, self.settings.bookable_weekdays):
            is_blackout = day in blackouts
            if is_blackout and not include_blackouts:
                continue
            cutoff_time = self.cutoff_time_for(day)
            dates.append(
                BookableDate(
                    event_date=day,
                    day_of_week=calendar.day_name(day),
                    cutoff_time=cutoff_time,
                    is_blackout=is_blackout,
                    blackout_reason=blackouts.get(day),
                    is_past_cutoff=calendar.is_past_cutoff(day, cutoff_time, now, tz),
                    timezone=self.settings.venue_timezone,
                )
            )
        return dates


def merge_requested_items(items: Iterable[RequestedItem]) -> list[RequestedItem]:
    """Sum quantities of repeated (kind, ref) lines, keeping first-seen order."""
    merged: dict[tuple[ItemKind, str], int] = {}
    for item in items:
        if item.quantity < 1:
            raise ValidationError(
                "Quantity must be at least 1",
                details={"item_ref": item.item_ref},
            )
        key = (item.item_kind, item.item_ref)
        merged[key] = merged.get(key, 0) + item.quantity
    return [
        RequestedItem(item_kind=kind, item_ref=ref, quantity=quantity)
        for (kind, ref), quantity in merged.items()
    ]
