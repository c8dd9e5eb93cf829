# venue_booking/infrastructure/repositories/inventory_repository.py

from datetime import date

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from venue_booking.infrastructure.db.models import DatedInventory
from venue_booking.domain.values import ItemKind


class InventoryRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(
        self,
        item_kind: ItemKind,
        item_id: str,
        event_date: date,
    ) -> DatedInventory | None:
        stmt = select(DatedInventory).where(
            DatedInventory.item_kind == item_kind,
            DatedInventory.item_id == item_id,
            DatedInventory.event_date == event_date,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_date(self, event_date: date) -> list[DatedInventory]:
        stmt = select(DatedInventory).where(DatedInventory.event_date == event_date)
        return list(self.db.execute(stmt).scalars())

    def try_decrement(
        self,
        item_kind: ItemKind,
        item_id: str,
        event_date: date,
        quantity: int,
    ) -> bool:
        """
        Conditional decrement. Returns False when no row matched, meaning
        another transaction took the units (or closed the item) first.
        """

        stmt = (
            update(DatedInventory)
            .where(
                DatedInventory.item_kind == item_kind,
                DatedInventory.item_id == item_id,
                DatedInventory.event_date == event_date,
                DatedInventory.is_available.is_(True),
                DatedInventory.available_quantity >= quantity,
            )
            .values(available_quantity=DatedInventory.available_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def create_or_reset_inventory(
        self,
        item_kind: ItemKind,
        item_id: str,
        event_date: date,
        total_quantity: int,
        is_available: bool = True,
    ) -> DatedInventory:
        inventory = self.get(item_kind, item_id, event_date)

        if inventory:
            inventory.total_quantity = total_quantity
            inventory.available_quantity = total_quantity
            inventory.is_available = is_available
            return inventory

        inventory = DatedInventory(
            item_kind=item_kind,
            item_id=item_id,
            event_date=event_date,
            total_quantity=total_quantity,
            available_quantity=total_quantity,
            is_available=is_available,
        )
        self.db.add(inventory)
        return inventory
