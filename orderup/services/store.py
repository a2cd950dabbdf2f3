"""Persistence store for shops, menus, order sessions and selections.

Two interchangeable backends share one async interface: an in-memory store
for local development and tests, and a SQLAlchemy store used whenever
``DATABASE_URL`` is configured.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    delete,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from orderup.db import Base, get_session_factory
from orderup.services.aggregation import SelectionLine

logger = logging.getLogger(__name__)

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"


class StoreError(RuntimeError):
    """Raised when the backing store rejects or fails an operation."""


class ShareCodeConflict(StoreError):
    """Raised when an order is inserted with a share code already in use."""

    def __init__(self, share_code: str) -> None:
        super().__init__(f"Share code already in use: {share_code}")
        self.share_code = share_code


@dataclass(frozen=True)
class ShopRecord:
    id: str
    name: str
    address: str | None
    is_temporary: bool
    created_at: datetime


@dataclass(frozen=True)
class MenuItemRecord:
    id: str
    shop_id: str
    name: str
    description: str | None
    price: float
    created_at: datetime


@dataclass(frozen=True)
class OrderRecord:
    """Stored order session. Expiry is derived from ``expires_at`` on read."""

    id: str
    shop_id: str
    share_code: str
    status: str
    title: str | None
    created_at: datetime
    expires_at: datetime | None = None
    closed_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def state(self, now: datetime) -> str:
        """Return ``open``, ``expired`` or ``closed`` for display."""

        if self.status == STATUS_CLOSED:
            return STATUS_CLOSED
        if self.is_expired(now):
            return "expired"
        return STATUS_OPEN

    def accepts_selections(self, now: datetime) -> bool:
        return self.status == STATUS_OPEN and not self.is_expired(now)

    def remaining_seconds(self, now: datetime) -> int | None:
        """Return whole seconds until expiry, or ``None`` without a deadline."""

        if self.expires_at is None:
            return None
        remaining = (self.expires_at - now).total_seconds()
        return int(remaining) if remaining > 0 else 0


@dataclass(frozen=True)
class SelectionRecord:
    id: str
    order_id: str
    menu_item_id: str
    participant_name: str
    quantity: int
    created_at: datetime
    position: int = 0


class Shop(Base):
    """SQLAlchemy mapping for shops."""

    __tablename__ = "shops"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_temporary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MenuItem(Base):
    """SQLAlchemy mapping for menu items."""

    __tablename__ = "menu_items"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    shop_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Order(Base):
    """SQLAlchemy mapping for order sessions."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    shop_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    share_code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN)
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class OrderSelection(Base):
    """SQLAlchemy mapping for participant selections."""

    __tablename__ = "order_selections"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False
    )
    participant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class InMemoryOrderStore:
    """Ephemeral store used when no database is available."""

    def __init__(self) -> None:
        self._shops: Dict[str, ShopRecord] = {}
        self._menu_items: Dict[str, MenuItemRecord] = {}
        self._orders: Dict[str, OrderRecord] = {}
        self._selections: Dict[str, SelectionRecord] = {}

    # Shops

    async def insert_shop(self, shop: ShopRecord) -> None:
        self._shops[shop.id] = shop

    async def get_shop(self, shop_id: str) -> ShopRecord | None:
        return self._shops.get(shop_id)

    async def list_shops(self) -> List[ShopRecord]:
        return sorted(self._shops.values(), key=lambda shop: shop.created_at, reverse=True)

    async def update_shop(self, shop_id: str, **changes: object) -> ShopRecord | None:
        shop = self._shops.get(shop_id)
        if shop is None:
            return None
        updated = replace(shop, **changes)
        self._shops[shop_id] = updated
        return updated

    async def delete_shop(self, shop_id: str) -> bool:
        if self._shops.pop(shop_id, None) is None:
            return False
        for order in [o for o in self._orders.values() if o.shop_id == shop_id]:
            await self.delete_order(order.id)
        await self.delete_menu_items_for_shop(shop_id)
        return True

    # Menu items

    async def insert_menu_items(self, items: Sequence[MenuItemRecord]) -> None:
        for item in items:
            if item.shop_id not in self._shops:
                raise StoreError(f"Unknown shop: {item.shop_id}")
        for item in items:
            self._menu_items[item.id] = item

    async def get_menu_item(self, item_id: str) -> MenuItemRecord | None:
        return self._menu_items.get(item_id)

    async def list_menu_items(self, shop_id: str) -> List[MenuItemRecord]:
        items = [item for item in self._menu_items.values() if item.shop_id == shop_id]
        return sorted(items, key=lambda item: item.name)

    async def update_menu_item(self, item_id: str, **changes: object) -> MenuItemRecord | None:
        item = self._menu_items.get(item_id)
        if item is None:
            return None
        updated = replace(item, **changes)
        self._menu_items[item_id] = updated
        return updated

    async def delete_menu_item(self, item_id: str) -> bool:
        if self._menu_items.pop(item_id, None) is None:
            return False
        self._drop_selections(lambda sel: sel.menu_item_id == item_id)
        return True

    async def delete_menu_items_for_shop(self, shop_id: str) -> int:
        doomed = [item_id for item_id, item in self._menu_items.items() if item.shop_id == shop_id]
        for item_id in doomed:
            await self.delete_menu_item(item_id)
        return len(doomed)

    # Orders

    async def insert_order(self, order: OrderRecord) -> None:
        if order.shop_id not in self._shops:
            raise StoreError(f"Unknown shop: {order.shop_id}")
        if await self.share_code_exists(order.share_code):
            raise ShareCodeConflict(order.share_code)
        self._orders[order.id] = order

    async def share_code_exists(self, share_code: str) -> bool:
        return any(order.share_code == share_code for order in self._orders.values())

    async def get_order(self, order_id: str) -> OrderRecord | None:
        return self._orders.get(order_id)

    async def get_order_by_share_code(self, share_code: str) -> OrderRecord | None:
        for order in self._orders.values():
            if order.share_code == share_code:
                return order
        return None

    async def list_orders(self, shop_id: str) -> List[OrderRecord]:
        orders = [order for order in self._orders.values() if order.shop_id == shop_id]
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    async def close_order(self, order_id: str, closed_at: datetime) -> OrderRecord | None:
        order = self._orders.get(order_id)
        if order is None:
            return None
        if order.status != STATUS_CLOSED:
            order = replace(order, status=STATUS_CLOSED, closed_at=closed_at)
            self._orders[order_id] = order
        return order

    async def delete_order(self, order_id: str) -> bool:
        if self._orders.pop(order_id, None) is None:
            return False
        self._drop_selections(lambda sel: sel.order_id == order_id)
        return True

    # Selections

    async def insert_selections(self, selections: Sequence[SelectionRecord]) -> None:
        for selection in selections:
            if selection.order_id not in self._orders:
                raise StoreError(f"Unknown order: {selection.order_id}")
            if selection.menu_item_id not in self._menu_items:
                raise StoreError(f"Unknown menu item: {selection.menu_item_id}")
        for selection in selections:
            self._selections[selection.id] = selection

    async def get_selection(self, selection_id: str) -> SelectionRecord | None:
        return self._selections.get(selection_id)

    async def list_selection_lines(self, order_id: str) -> List[SelectionLine]:
        lines: List[SelectionLine] = []
        for selection in self._selections.values():
            if selection.order_id != order_id:
                continue
            item = self._menu_items[selection.menu_item_id]
            lines.append(
                SelectionLine(
                    selection_id=selection.id,
                    participant_name=selection.participant_name,
                    menu_item_id=item.id,
                    name=item.name,
                    unit_price=item.price,
                    quantity=selection.quantity,
                    created_at=selection.created_at,
                )
            )
        return lines

    async def delete_selection(self, selection_id: str) -> bool:
        return self._selections.pop(selection_id, None) is not None

    def _drop_selections(self, predicate) -> None:
        for selection_id in [key for key, sel in self._selections.items() if predicate(sel)]:
            self._selections.pop(selection_id, None)

    def reset(self) -> None:
        self._shops.clear()
        self._menu_items.clear()
        self._orders.clear()
        self._selections.clear()


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except StoreError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("Database error while trying to %s", action)
        raise StoreError(f"Failed to {action}") from exc


class DatabaseOrderStore:
    """Persist shops, menus and order sessions via SQLAlchemy."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def insert_shop(self, shop: ShopRecord) -> None:
        with _translate_errors("insert shop"):
            async with self._session_factory() as session:
                session.add(
                    Shop(
                        id=shop.id,
                        name=shop.name,
                        address=shop.address,
                        is_temporary=shop.is_temporary,
                        created_at=shop.created_at,
                    )
                )
                await session.commit()

    async def get_shop(self, shop_id: str) -> ShopRecord | None:
        with _translate_errors("load shop"):
            async with self._session_factory() as session:
                row = await session.get(Shop, shop_id)
                return _shop_record(row) if row is not None else None

    async def list_shops(self) -> List[ShopRecord]:
        with _translate_errors("list shops"):
            async with self._session_factory() as session:
                result = await session.execute(select(Shop).order_by(Shop.created_at.desc()))
                return [_shop_record(row) for row in result.scalars().all()]

    async def update_shop(self, shop_id: str, **changes: object) -> ShopRecord | None:
        with _translate_errors("update shop"):
            async with self._session_factory() as session:
                row = await session.get(Shop, shop_id)
                if row is None:
                    return None
                for key, value in changes.items():
                    setattr(row, key, value)
                await session.commit()
                return _shop_record(row)

    async def delete_shop(self, shop_id: str) -> bool:
        with _translate_errors("delete shop"):
            async with self._session_factory() as session:
                order_ids = select(Order.id).where(Order.shop_id == shop_id)
                await session.execute(
                    delete(OrderSelection).where(OrderSelection.order_id.in_(order_ids))
                )
                await session.execute(delete(Order).where(Order.shop_id == shop_id))
                await session.execute(delete(MenuItem).where(MenuItem.shop_id == shop_id))
                result = await session.execute(delete(Shop).where(Shop.id == shop_id))
                await session.commit()
                return result.rowcount > 0

    async def insert_menu_items(self, items: Sequence[MenuItemRecord]) -> None:
        with _translate_errors("insert menu items"):
            async with self._session_factory() as session:
                session.add_all(
                    [
                        MenuItem(
                            id=item.id,
                            shop_id=item.shop_id,
                            name=item.name,
                            description=item.description,
                            price=item.price,
                            created_at=item.created_at,
                        )
                        for item in items
                    ]
                )
                await session.commit()

    async def get_menu_item(self, item_id: str) -> MenuItemRecord | None:
        with _translate_errors("load menu item"):
            async with self._session_factory() as session:
                row = await session.get(MenuItem, item_id)
                return _menu_item_record(row) if row is not None else None

    async def list_menu_items(self, shop_id: str) -> List[MenuItemRecord]:
        with _translate_errors("list menu items"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(MenuItem).where(MenuItem.shop_id == shop_id).order_by(MenuItem.name)
                )
                return [_menu_item_record(row) for row in result.scalars().all()]

    async def update_menu_item(self, item_id: str, **changes: object) -> MenuItemRecord | None:
        with _translate_errors("update menu item"):
            async with self._session_factory() as session:
                row = await session.get(MenuItem, item_id)
                if row is None:
                    return None
                for key, value in changes.items():
                    setattr(row, key, value)
                await session.commit()
                return _menu_item_record(row)

    async def delete_menu_item(self, item_id: str) -> bool:
        with _translate_errors("delete menu item"):
            async with self._session_factory() as session:
                await session.execute(
                    delete(OrderSelection).where(OrderSelection.menu_item_id == item_id)
                )
                result = await session.execute(delete(MenuItem).where(MenuItem.id == item_id))
                await session.commit()
                return result.rowcount > 0

    async def delete_menu_items_for_shop(self, shop_id: str) -> int:
        with _translate_errors("reset menu"):
            async with self._session_factory() as session:
                item_ids = select(MenuItem.id).where(MenuItem.shop_id == shop_id)
                await session.execute(
                    delete(OrderSelection).where(OrderSelection.menu_item_id.in_(item_ids))
                )
                result = await session.execute(delete(MenuItem).where(MenuItem.shop_id == shop_id))
                await session.commit()
                return result.rowcount

    async def insert_order(self, order: OrderRecord) -> None:
        with _translate_errors("insert order"):
            async with self._session_factory() as session:
                session.add(
                    Order(
                        id=order.id,
                        shop_id=order.shop_id,
                        share_code=order.share_code,
                        status=order.status,
                        title=order.title,
                        created_at=order.created_at,
                        expires_at=order.expires_at,
                        closed_at=order.closed_at,
                    )
                )
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if await self.share_code_exists(order.share_code):
                        raise ShareCodeConflict(order.share_code)
                    raise

    async def share_code_exists(self, share_code: str) -> bool:
        with _translate_errors("check share code"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Order.id).where(Order.share_code == share_code).limit(1)
                )
                return result.first() is not None

    async def get_order(self, order_id: str) -> OrderRecord | None:
        with _translate_errors("load order"):
            async with self._session_factory() as session:
                row = await session.get(Order, order_id)
                return _order_record(row) if row is not None else None

    async def get_order_by_share_code(self, share_code: str) -> OrderRecord | None:
        with _translate_errors("load order"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Order).where(Order.share_code == share_code)
                )
                row: Optional[Order] = result.scalars().first()
                return _order_record(row) if row is not None else None

    async def list_orders(self, shop_id: str) -> List[OrderRecord]:
        with _translate_errors("list orders"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Order).where(Order.shop_id == shop_id).order_by(Order.created_at.desc())
                )
                return [_order_record(row) for row in result.scalars().all()]

    async def close_order(self, order_id: str, closed_at: datetime) -> OrderRecord | None:
        with _translate_errors("close order"):
            async with self._session_factory() as session:
                await session.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.status != STATUS_CLOSED)
                    .values(status=STATUS_CLOSED, closed_at=closed_at)
                )
                await session.commit()
                row = await session.get(Order, order_id)
                return _order_record(row) if row is not None else None

    async def delete_order(self, order_id: str) -> bool:
        with _translate_errors("delete order"):
            async with self._session_factory() as session:
                await session.execute(
                    delete(OrderSelection).where(OrderSelection.order_id == order_id)
                )
                result = await session.execute(delete(Order).where(Order.id == order_id))
                await session.commit()
                return result.rowcount > 0

    async def insert_selections(self, selections: Sequence[SelectionRecord]) -> None:
        with _translate_errors("insert selections"):
            async with self._session_factory() as session:
                session.add_all(
                    [
                        OrderSelection(
                            id=selection.id,
                            order_id=selection.order_id,
                            menu_item_id=selection.menu_item_id,
                            participant_name=selection.participant_name,
                            quantity=selection.quantity,
                            position=selection.position,
                            created_at=selection.created_at,
                        )
                        for selection in selections
                    ]
                )
                await session.commit()

    async def get_selection(self, selection_id: str) -> SelectionRecord | None:
        with _translate_errors("load selection"):
            async with self._session_factory() as session:
                row = await session.get(OrderSelection, selection_id)
                if row is None:
                    return None
                return SelectionRecord(
                    id=row.id,
                    order_id=row.order_id,
                    menu_item_id=row.menu_item_id,
                    participant_name=row.participant_name,
                    quantity=row.quantity,
                    created_at=row.created_at,
                    position=row.position,
                )

    async def list_selection_lines(self, order_id: str) -> List[SelectionLine]:
        with _translate_errors("list selections"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(OrderSelection, MenuItem.name, MenuItem.price)
                    .join(MenuItem, MenuItem.id == OrderSelection.menu_item_id)
                    .where(OrderSelection.order_id == order_id)
                    .order_by(OrderSelection.created_at, OrderSelection.position)
                )
                return [
                    SelectionLine(
                        selection_id=selection.id,
                        participant_name=selection.participant_name,
                        menu_item_id=selection.menu_item_id,
                        name=name,
                        unit_price=float(price or 0),
                        quantity=selection.quantity,
                        created_at=selection.created_at,
                    )
                    for selection, name, price in result.all()
                ]

    async def delete_selection(self, selection_id: str) -> bool:
        with _translate_errors("delete selection"):
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(OrderSelection).where(OrderSelection.id == selection_id)
                )
                await session.commit()
                return result.rowcount > 0

    def reset(self) -> None:  # pragma: no cover - tests rely on memory store
        pass


def _shop_record(row: Shop) -> ShopRecord:
    return ShopRecord(
        id=row.id,
        name=row.name,
        address=row.address,
        is_temporary=row.is_temporary,
        created_at=row.created_at,
    )


def _menu_item_record(row: MenuItem) -> MenuItemRecord:
    return MenuItemRecord(
        id=row.id,
        shop_id=row.shop_id,
        name=row.name,
        description=row.description,
        price=float(row.price or 0),
        created_at=row.created_at,
    )


def _order_record(row: Order) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        shop_id=row.shop_id,
        share_code=row.share_code,
        status=row.status,
        title=row.title,
        created_at=row.created_at,
        expires_at=row.expires_at,
        closed_at=row.closed_at,
    )


OrderStore = InMemoryOrderStore | DatabaseOrderStore


def build_store() -> OrderStore:
    """Return a database-backed store when configured, else an in-memory one."""

    session_factory = get_session_factory()
    if session_factory is not None:
        return DatabaseOrderStore(session_factory)
    return InMemoryOrderStore()
