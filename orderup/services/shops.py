"""Shop and menu management, including the quick-order flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence
from uuid import uuid4

from orderup.services.aggregation import SessionSummary
from orderup.services.extraction import coerce_price
from orderup.services.orders import (
    SERVICE_FAILURE_MESSAGE,
    OrderSessionService,
)
from orderup.services.results import ErrorKind, OperationResult
from orderup.services.store import MenuItemRecord, OrderRecord, ShopRecord, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MenuItemDraft:
    """Menu item as submitted by a caller; ``price`` is coerced on save."""

    name: str
    description: str | None = None
    price: object = 0


@dataclass(frozen=True)
class SessionOverview:
    order: OrderRecord
    state: str
    remaining_seconds: int | None
    summary: SessionSummary


@dataclass(frozen=True)
class ShopOverview:
    shop: ShopRecord
    menu_items: List[MenuItemRecord] = field(default_factory=list)
    sessions: List[SessionOverview] = field(default_factory=list)


class ShopService:
    """CRUD for shops and their menus."""

    def __init__(self, orders: OrderSessionService) -> None:
        self._orders = orders
        self._store = orders.store
        self._clock = orders.clock

    async def create_shop(
        self,
        name: str,
        address: str | None = None,
        *,
        is_temporary: bool = False,
    ) -> OperationResult:
        if not name or not name.strip():
            return OperationResult.fail(ErrorKind.VALIDATION, "Shop name is required.")

        shop = ShopRecord(
            id=uuid4().hex,
            name=name.strip(),
            address=(address or "").strip() or None,
            is_temporary=is_temporary,
            created_at=self._clock(),
        )
        try:
            await self._store.insert_shop(shop)
        except StoreError:
            logger.exception("Failed to create shop %r", name)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        logger.info("Registered shop %s (%s)", shop.id, shop.name)
        return OperationResult.ok("Shop registered!", shop)

    async def list_shops(self) -> OperationResult:
        try:
            shops = await self._store.list_shops()
        except StoreError:
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok(data=shops)

    async def get_shop(self, shop_id: str) -> OperationResult:
        try:
            shop = await self._store.get_shop(shop_id)
        except StoreError:
            logger.exception("Failed to load shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        if shop is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")
        return OperationResult.ok(data=shop)

    async def get_shop_overview(self, shop_id: str) -> OperationResult:
        """Return the shop with its menu and every session, newest first."""

        try:
            shop = await self._store.get_shop(shop_id)
            if shop is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")
            menu_items = await self._store.list_menu_items(shop_id)
            now = self._clock()
            sessions = []
            for order in await self._store.list_orders(shop_id):
                sessions.append(
                    SessionOverview(
                        order=order,
                        state=order.state(now),
                        remaining_seconds=order.remaining_seconds(now),
                        summary=await self._orders.summarize_order(order),
                    )
                )
        except StoreError:
            logger.exception("Failed to load shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok(data=ShopOverview(shop, menu_items, sessions))

    async def add_menu_items(
        self, shop_id: str, drafts: Sequence[MenuItemDraft]
    ) -> OperationResult:
        """Insert one or more menu items; nothing is stored if any is invalid."""

        if not drafts:
            return OperationResult.fail(ErrorKind.VALIDATION, "At least one menu item is required.")

        created_at = self._clock()
        records: List[MenuItemRecord] = []
        for draft in drafts:
            failure = _validate_draft(draft)
            if failure is not None:
                return failure
            records.append(
                MenuItemRecord(
                    id=uuid4().hex,
                    shop_id=shop_id,
                    name=draft.name.strip(),
                    description=(draft.description or "").strip() or None,
                    price=coerce_price(draft.price),
                    created_at=created_at,
                )
            )

        try:
            if await self._store.get_shop(shop_id) is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")
            await self._store.insert_menu_items(records)
        except StoreError:
            logger.exception("Failed to add menu items to shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok(f"Added {len(records)} menu item(s).", records)

    async def update_menu_item(
        self,
        shop_id: str,
        item_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        price: object = None,
    ) -> OperationResult:
        changes: dict[str, object] = {}
        if name is not None:
            if not name.strip():
                return OperationResult.fail(ErrorKind.VALIDATION, "Menu item name is required.")
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description.strip() or None
        if price is not None:
            if _is_negative(price):
                return OperationResult.fail(ErrorKind.VALIDATION, "Price cannot be negative.")
            changes["price"] = coerce_price(price)

        try:
            item = await self._store.get_menu_item(item_id)
            if item is None or item.shop_id != shop_id:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Menu item not found.")
            if not changes:
                return OperationResult.ok("Nothing to update.", item)
            updated = await self._store.update_menu_item(item_id, **changes)
        except StoreError:
            logger.exception("Failed to update menu item %s", item_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok("Menu item updated.", updated)

    async def delete_menu_item(self, shop_id: str, item_id: str) -> OperationResult:
        try:
            item = await self._store.get_menu_item(item_id)
            if item is None or item.shop_id != shop_id:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Menu item not found.")
            await self._store.delete_menu_item(item_id)
        except StoreError:
            logger.exception("Failed to delete menu item %s", item_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok("Menu item deleted successfully!")

    async def reset_menu(self, shop_id: str) -> OperationResult:
        """Remove every menu item of the shop."""

        try:
            if await self._store.get_shop(shop_id) is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")
            removed = await self._store.delete_menu_items_for_shop(shop_id)
        except StoreError:
            logger.exception("Failed to reset menu of shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        logger.info("Reset menu of shop %s (%s items)", shop_id, removed)
        return OperationResult.ok(f"Removed {removed} menu item(s).", removed)

    async def promote_shop(self, shop_id: str, address: str | None) -> OperationResult:
        """Turn a temporary quick-order shop into a permanent listing."""

        if not address or not address.strip():
            return OperationResult.fail(ErrorKind.VALIDATION, "An address is required.")
        try:
            shop = await self._store.update_shop(
                shop_id, address=address.strip(), is_temporary=False
            )
        except StoreError:
            logger.exception("Failed to promote shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        if shop is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")
        return OperationResult.ok("The shop is now permanently registered!", shop)

    async def delete_shop(self, shop_id: str) -> OperationResult:
        try:
            deleted = await self._store.delete_shop(shop_id)
        except StoreError:
            logger.exception("Failed to delete shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        if not deleted:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")
        logger.info("Deleted shop %s", shop_id)
        return OperationResult.ok("Shop deleted successfully!")

    async def quick_order(
        self,
        shop_name: str,
        drafts: Sequence[MenuItemDraft],
        *,
        title: str | None = None,
        expires_in_minutes: int | None = None,
    ) -> OperationResult:
        """Create a temporary shop, its menu and an open session in one go."""

        if not shop_name or not shop_name.strip() or not drafts:
            return OperationResult.fail(
                ErrorKind.VALIDATION, "A shop name and at least one menu item are required."
            )
        for draft in drafts:
            failure = _validate_draft(draft)
            if failure is not None:
                return failure

        created = await self.create_shop(shop_name, is_temporary=True)
        if not created.success:
            return created
        shop: ShopRecord = created.data

        added = await self.add_menu_items(shop.id, drafts)
        if not added.success:
            await self._discard_shop(shop.id)
            return added

        opened = await self._orders.create_session(
            shop.id, title=title, expires_in_minutes=expires_in_minutes
        )
        if not opened.success:
            await self._discard_shop(shop.id)
            return opened
        return OperationResult.ok("Quick order created successfully!", (shop, opened.data))

    async def _discard_shop(self, shop_id: str) -> None:
        try:
            await self._store.delete_shop(shop_id)
        except StoreError:
            logger.exception("Could not remove half-created shop %s", shop_id)


def _is_negative(price: object) -> bool:
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        return price < 0
    return isinstance(price, str) and price.strip().startswith("-")


def _validate_draft(draft: MenuItemDraft) -> OperationResult | None:
    if not draft.name or not draft.name.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Menu item name is required.")
    if _is_negative(draft.price):
        return OperationResult.fail(ErrorKind.VALIDATION, "Price cannot be negative.")
    return None
