"""Order session lifecycle: creation, submissions, termination and reads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Sequence
from uuid import uuid4

from orderup.config import settings
from orderup.services.aggregation import SessionSummary, summarize
from orderup.services.results import ErrorKind, OperationResult
from orderup.services.share_code import ShareCodeAllocator, ShareCodeExhausted
from orderup.services.store import (
    STATUS_OPEN,
    MenuItemRecord,
    OrderRecord,
    OrderStore,
    SelectionRecord,
    ShopRecord,
    StoreError,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

SERVICE_FAILURE_MESSAGE = "The service is temporarily unavailable. Please try again."


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class SelectionItem:
    """A requested menu item and how many of it."""

    menu_item_id: str
    quantity: int = 1


@dataclass(frozen=True)
class SessionDetail:
    """Read model of a session with its shop, menu and aggregated selections."""

    order: OrderRecord
    shop: ShopRecord
    menu_items: List[MenuItemRecord]
    summary: SessionSummary
    state: str
    remaining_seconds: int | None


class OrderSessionService:
    """Coordinate the open → closed lifecycle of order sessions."""

    def __init__(
        self,
        store: OrderStore,
        *,
        allocator: ShareCodeAllocator | None = None,
        clock: Clock = utcnow,
        default_minutes: int | None = None,
        max_minutes: int | None = None,
    ) -> None:
        self._store = store
        self._allocator = allocator or ShareCodeAllocator(
            length=settings.share_code_length,
            attempts=settings.share_code_attempts,
        )
        self._clock = clock
        self._default_minutes = default_minutes or settings.default_session_minutes
        self._max_minutes = max_minutes or settings.max_session_minutes

    @property
    def store(self) -> OrderStore:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    async def create_session(
        self,
        shop_id: str,
        title: str | None = None,
        expires_in_minutes: int | None = None,
    ) -> OperationResult:
        """Open a new session for ``shop_id`` under a freshly allocated code."""

        minutes = expires_in_minutes
        if minutes is None or minutes <= 0:
            minutes = self._default_minutes
        if minutes > self._max_minutes:
            return OperationResult.fail(
                ErrorKind.VALIDATION,
                f"Sessions can stay open for at most {self._max_minutes} minutes.",
            )

        try:
            shop = await self._store.get_shop(shop_id)
            if shop is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Shop not found.")

            created_at = self._clock()
            clean_title = title.strip() if title and title.strip() else None

            async def _insert(code: str) -> OrderRecord:
                order = OrderRecord(
                    id=uuid4().hex,
                    shop_id=shop_id,
                    share_code=code,
                    status=STATUS_OPEN,
                    title=clean_title,
                    created_at=created_at,
                    expires_at=created_at + timedelta(minutes=minutes),
                )
                await self._store.insert_order(order)
                return order

            order = await self._allocator.insert_unique(_insert)
        except ShareCodeExhausted as exc:
            logger.warning("Share code allocation exhausted for shop %s", shop_id)
            return OperationResult.fail(ErrorKind.BUSINESS, str(exc))
        except StoreError:
            logger.exception("Failed to create order session for shop %s", shop_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)

        logger.info("Opened session %s for shop %s (%s min)", order.share_code, shop_id, minutes)
        return OperationResult.ok("New order started!", order)

    async def accept_selections(
        self,
        order_id: str,
        participant_name: str,
        items: Sequence[SelectionItem],
    ) -> OperationResult:
        """Append one selection row per requested item while the session is open."""

        if not items:
            return OperationResult.fail(
                ErrorKind.VALIDATION,
                "No menu items were received. Please pick at least one item before submitting.",
            )
        if not participant_name or not participant_name.strip():
            return OperationResult.fail(ErrorKind.VALIDATION, "Please enter your name.")
        for item in items:
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity < 1:
                return OperationResult.fail(
                    ErrorKind.VALIDATION, "Quantities must be positive whole numbers."
                )

        try:
            order = await self._store.get_order(order_id)
            if order is None:
                return OperationResult.fail(
                    ErrorKind.NOT_FOUND, "Order not found or inaccessible."
                )
            now = self._clock()
            rejection = _closed_rejection(order, now)
            if rejection is not None:
                return rejection

            for item in items:
                menu_item = await self._store.get_menu_item(item.menu_item_id)
                if menu_item is None or menu_item.shop_id != order.shop_id:
                    return OperationResult.fail(
                        ErrorKind.VALIDATION,
                        "One of the selected items is not on this shop's menu.",
                    )

            rows = [
                SelectionRecord(
                    id=uuid4().hex,
                    order_id=order.id,
                    menu_item_id=item.menu_item_id,
                    participant_name=participant_name,
                    quantity=item.quantity,
                    created_at=now,
                    position=position,
                )
                for position, item in enumerate(items)
            ]
            await self._store.insert_selections(rows)
        except StoreError:
            logger.exception("Failed to store selections for order %s", order_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)

        logger.info(
            "Stored %s selection(s) from %r for session %s",
            len(rows),
            participant_name,
            order.share_code,
        )
        return OperationResult.ok("Your selections have been submitted!", rows)

    async def terminate(self, order_id: str, *, shop_id: str | None = None) -> OperationResult:
        """Close a session; closing an already closed one is a no-op."""

        try:
            if not await self._owned_by(order_id, shop_id):
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Order not found.")
            order = await self._store.close_order(order_id, self._clock())
        except StoreError:
            logger.exception("Failed to terminate order %s", order_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        if order is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Order not found.")
        logger.info("Terminated session %s", order.share_code)
        return OperationResult.ok("Order terminated successfully!", order)

    async def delete_session(self, order_id: str, *, shop_id: str | None = None) -> OperationResult:
        try:
            deleted = False
            if await self._owned_by(order_id, shop_id):
                deleted = await self._store.delete_order(order_id)
        except StoreError:
            logger.exception("Failed to delete order %s", order_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        if not deleted:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Order not found.")
        logger.info("Deleted order %s", order_id)
        return OperationResult.ok("Order session deleted successfully!")

    async def delete_selection(
        self,
        selection_id: str,
        *,
        order_id: str | None = None,
        shop_id: str | None = None,
    ) -> OperationResult:
        """Remove one selection row, optionally scoped to its session and shop."""

        try:
            selection = await self._store.get_selection(selection_id)
            if selection is None or (order_id is not None and selection.order_id != order_id):
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Selection not found.")
            if not await self._owned_by(selection.order_id, shop_id):
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Selection not found.")
            deleted = await self._store.delete_selection(selection_id)
        except StoreError:
            logger.exception("Failed to delete selection %s", selection_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        if not deleted:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Selection not found.")
        return OperationResult.ok("Order selection deleted successfully!")

    async def _owned_by(self, order_id: str, shop_id: str | None) -> bool:
        if shop_id is None:
            return True
        order = await self._store.get_order(order_id)
        return order is not None and order.shop_id == shop_id

    async def describe(self, share_code: str) -> OperationResult:
        """Load a session by its public share code. Never writes."""

        try:
            order = await self._store.get_order_by_share_code(share_code)
            if order is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Order not found.")
            detail = await self._build_detail(order)
        except StoreError:
            logger.exception("Failed to load session %s", share_code)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok(data=detail)

    async def describe_by_id(self, order_id: str) -> OperationResult:
        try:
            order = await self._store.get_order(order_id)
            if order is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Order not found.")
            detail = await self._build_detail(order)
        except StoreError:
            logger.exception("Failed to load order %s", order_id)
            return OperationResult.fail(ErrorKind.SERVICE, SERVICE_FAILURE_MESSAGE)
        return OperationResult.ok(data=detail)

    async def summarize_order(self, order: OrderRecord) -> SessionSummary:
        lines = await self._store.list_selection_lines(order.id)
        return summarize(lines)

    def state_of(self, order: OrderRecord) -> str:
        return order.state(self._clock())

    async def _build_detail(self, order: OrderRecord) -> SessionDetail:
        shop = await self._store.get_shop(order.shop_id)
        if shop is None:
            raise StoreError(f"Order {order.id} references a missing shop")
        menu_items = await self._store.list_menu_items(order.shop_id)
        summary = await self.summarize_order(order)
        now = self._clock()
        return SessionDetail(
            order=order,
            shop=shop,
            menu_items=menu_items,
            summary=summary,
            state=order.state(now),
            remaining_seconds=order.remaining_seconds(now),
        )


def _closed_rejection(order: OrderRecord, now: datetime) -> OperationResult | None:
    if order.accepts_selections(now):
        return None
    if order.is_expired(now) and order.status == STATUS_OPEN:
        return OperationResult.fail(
            ErrorKind.BUSINESS,
            "This order session has expired. You can no longer submit selections.",
        )
    return OperationResult.fail(
        ErrorKind.BUSINESS,
        "This order session is closed. You can no longer submit selections.",
    )
