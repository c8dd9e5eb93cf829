from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from venue_booking.domain.values import ItemKind, PriceQuote, to_money
from venue_booking.infrastructure.repositories.catalog_repository import CatalogRepository


class PricingResolver:
    """Resolves the unit price of a package or extra on a given date."""

    def __init__(self, db: Session):
        self.db = db
        self.catalog_repository = CatalogRepository(db)

    def resolve_price(self, item_kind: ItemKind, item, event_date: date) -> PriceQuote:
        """
        A dated override wins over the item's default price. With neither,
        the quote carries ``has_pricing=False`` and a zero price; callers
        decide whether that is acceptable.
        """
        override = self.catalog_repository.get_dated_price(item_kind, item.id, event_date)
        if override is not None:
            return PriceQuote(price=to_money(override.price), is_override=True)

        if item.default_price is not None:
            return PriceQuote(price=to_money(item.default_price), is_override=False)

        return PriceQuote(price=Decimal("0.00"), is_override=False, has_pricing=False)

    def quote_date(self, event_date: date) -> list[tuple[ItemKind, object, PriceQuote]]:
        quotes = []
        for item_kind in (ItemKind.PACKAGE, ItemKind.EXTRA):
            for item in self.catalog_repository.list_active(item_kind):
                quotes.append((item_kind, item, self.resolve_price(item_kind, item, event_date)))
        return quotes
