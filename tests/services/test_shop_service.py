import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from orderup.services.orders import OrderSessionService, SelectionItem
from orderup.services.results import ErrorKind
from orderup.services.shops import MenuItemDraft, ShopService
from orderup.services.store import InMemoryOrderStore


def run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class StepClock:
    """Clock that moves one minute forward on every reading."""

    def __init__(self):
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def orders(store):
    return OrderSessionService(store)


@pytest.fixture
def shops(orders):
    return ShopService(orders)


def test_create_shop_requires_a_name(shops):
    assert run(shops.create_shop("   ")).error == ErrorKind.VALIDATION

    created = run(shops.create_shop(" Bean There ", "  "))
    assert created.success
    assert created.data.name == "Bean There"
    assert created.data.address is None
    assert created.data.is_temporary is False


def test_add_menu_items_coerces_loose_prices(shops):
    shop = run(shops.create_shop("Bean There")).data

    result = run(
        shops.add_menu_items(
            shop.id,
            [
                MenuItemDraft("Latte", "Milk and espresso", "5,000원"),
                MenuItemDraft("Water", price=None),
            ],
        )
    )

    assert result.success
    assert [(item.name, item.price) for item in result.data] == [("Latte", 5000.0), ("Water", 0.0)]
    assert result.data[0].description == "Milk and espresso"


def test_add_menu_items_is_all_or_nothing(shops, store):
    shop = run(shops.create_shop("Bean There")).data

    result = run(
        shops.add_menu_items(shop.id, [MenuItemDraft("Latte", price=5000), MenuItemDraft("Oops", price=-1)])
    )

    assert result.error == ErrorKind.VALIDATION
    assert run(store.list_menu_items(shop.id)) == []
    assert run(shops.add_menu_items("missing", [MenuItemDraft("Latte")])).error == ErrorKind.NOT_FOUND


def test_update_menu_item_checks_ownership(shops):
    shop = run(shops.create_shop("Bean There")).data
    other = run(shops.create_shop("Elsewhere")).data
    item = run(shops.add_menu_items(shop.id, [MenuItemDraft("Latte", price=5000)])).data[0]

    assert run(shops.update_menu_item(other.id, item.id, price=1)).error == ErrorKind.NOT_FOUND
    assert run(shops.update_menu_item(shop.id, item.id, price=-5)).error == ErrorKind.VALIDATION

    updated = run(shops.update_menu_item(shop.id, item.id, name="Oat Latte", price="5500"))
    assert updated.success
    assert updated.data.name == "Oat Latte"
    assert updated.data.price == 5500.0


def test_reset_menu_removes_items_and_their_selections(shops, orders, store):
    shop = run(shops.create_shop("Bean There")).data
    item = run(shops.add_menu_items(shop.id, [MenuItemDraft("Latte", price=5000)])).data[0]
    session = run(orders.create_session(shop.id)).data
    run(orders.accept_selections(session.id, "Alice", [SelectionItem(item.id)]))

    result = run(shops.reset_menu(shop.id))

    assert result.success
    assert result.data == 1
    assert run(store.list_menu_items(shop.id)) == []
    assert run(store.list_selection_lines(session.id)) == []


def test_promote_shop_requires_address(shops):
    shop = run(shops.create_shop("Pop-up", is_temporary=True)).data

    assert run(shops.promote_shop(shop.id, " ")).error == ErrorKind.VALIDATION
    assert run(shops.promote_shop("missing", "1 Main St")).error == ErrorKind.NOT_FOUND

    promoted = run(shops.promote_shop(shop.id, "1 Main St"))
    assert promoted.success
    assert promoted.data.is_temporary is False
    assert promoted.data.address == "1 Main St"


def test_quick_order_creates_temporary_shop_with_open_session(shops, orders):
    result = run(
        shops.quick_order(
            "Corner Kiosk",
            [MenuItemDraft("Americano", price="4500"), MenuItemDraft("Latte", price=5000)],
            title="Morning run",
        )
    )

    assert result.success
    shop, session = result.data
    assert shop.is_temporary is True
    assert session.shop_id == shop.id
    assert session.title == "Morning run"

    detail = run(orders.describe(session.share_code)).data
    assert [item.name for item in detail.menu_items] == ["Americano", "Latte"]
    assert detail.state == "open"


def test_quick_order_rolls_back_the_shop_when_the_session_fails(shops, store):
    result = run(
        shops.quick_order("Corner Kiosk", [MenuItemDraft("Latte", price=5000)], expires_in_minutes=10**6)
    )

    assert result.error == ErrorKind.VALIDATION
    assert run(store.list_shops()) == []


def test_quick_order_validates_input(shops, store):
    assert run(shops.quick_order("", [MenuItemDraft("Latte")])).error == ErrorKind.VALIDATION
    assert run(shops.quick_order("Kiosk", [])).error == ErrorKind.VALIDATION
    assert run(shops.quick_order("Kiosk", [MenuItemDraft(" ")])).error == ErrorKind.VALIDATION
    assert run(store.list_shops()) == []


def test_shop_overview_lists_sessions_newest_first(store):
    clock = StepClock()
    orders = OrderSessionService(store, clock=clock)
    shops = ShopService(orders)
    shop = run(shops.create_shop("Bean There")).data
    item = run(shops.add_menu_items(shop.id, [MenuItemDraft("Latte", price=5000)])).data[0]
    first = run(orders.create_session(shop.id)).data
    run(orders.accept_selections(first.id, "Alice", [SelectionItem(item.id, quantity=2)]))
    run(orders.terminate(first.id))
    second = run(orders.create_session(shop.id)).data

    overview = run(shops.get_shop_overview(shop.id)).data

    assert [s.order.id for s in overview.sessions] == [second.id, first.id]
    states = {s.order.id: s.state for s in overview.sessions}
    assert states == {first.id: "closed", second.id: "open"}
    totals = {s.order.id: s.summary.total_amount for s in overview.sessions}
    assert totals[first.id] == 10000


def test_delete_shop_cascades(shops, orders, store):
    shop = run(shops.create_shop("Bean There")).data
    item = run(shops.add_menu_items(shop.id, [MenuItemDraft("Latte", price=5000)])).data[0]
    session = run(orders.create_session(shop.id)).data
    run(orders.accept_selections(session.id, "Alice", [SelectionItem(item.id)]))

    assert run(shops.delete_shop(shop.id)).success

    assert run(store.get_order(session.id)) is None
    assert run(store.get_menu_item(item.id)) is None
    assert run(store.list_selection_lines(session.id)) == []
    assert run(shops.delete_shop(shop.id)).error == ErrorKind.NOT_FOUND
