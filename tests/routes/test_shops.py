import pytest
from fastapi.testclient import TestClient

from orderup.main import app
from orderup.routes import deps

client = TestClient(app)


@pytest.fixture(autouse=True)
def reset_store():
    deps._store.reset()
    yield
    deps._store.reset()


def create_cafe():
    shop = client.post("/shops", json={"name": "Test Cafe", "address": "1 Main St"}).json()
    menu = client.post(
        f"/shops/{shop['id']}/menu-items",
        json={
            "items": [
                {"name": "Americano", "price": 4500},
                {"name": "Latte", "description": "Milk and espresso", "price": "5,000원"},
            ]
        },
    ).json()
    return shop, {item["name"]: item for item in menu}


def test_create_and_list_shops():
    response = client.post("/shops", json={"name": "Test Cafe"})
    assert response.status_code == 201
    assert response.json()["is_temporary"] is False

    listing = client.get("/shops")
    assert listing.status_code == 200
    assert [shop["name"] for shop in listing.json()] == ["Test Cafe"]


def test_create_shop_rejects_blank_name():
    response = client.post("/shops", json={"name": "   "})
    assert response.status_code == 400
    assert response.json()["detail"] == "Shop name is required."


def test_menu_items_are_returned_with_coerced_prices():
    shop, menu = create_cafe()
    assert menu["Latte"]["price"] == 5000

    overview = client.get(f"/shops/{shop['id']}").json()
    assert [item["name"] for item in overview["menu"]] == ["Americano", "Latte"]
    assert overview["sessions"] == []


def test_menu_item_update_and_delete():
    shop, menu = create_cafe()
    item_id = menu["Americano"]["id"]

    updated = client.patch(
        f"/shops/{shop['id']}/menu-items/{item_id}", json={"price": 4800}
    )
    assert updated.status_code == 200
    assert updated.json()["price"] == 4800

    negative = client.patch(f"/shops/{shop['id']}/menu-items/{item_id}", json={"price": -1})
    assert negative.status_code == 400

    deleted = client.delete(f"/shops/{shop['id']}/menu-items/{item_id}")
    assert deleted.status_code == 200
    missing = client.delete(f"/shops/{shop['id']}/menu-items/{item_id}")
    assert missing.status_code == 404


def test_reset_menu_clears_items():
    shop, _ = create_cafe()

    response = client.delete(f"/shops/{shop['id']}/menu-items")

    assert response.status_code == 200
    assert client.get(f"/shops/{shop['id']}").json()["menu"] == []


def test_start_order_returns_share_link_and_qr():
    shop, _ = create_cafe()

    response = client.post(f"/shops/{shop['id']}/orders", json={"title": "Afternoon break"})

    assert response.status_code == 201
    payload = response.json()
    session = payload["session"]
    assert session["status"] == "open"
    assert session["state"] == "open"
    assert session["title"] == "Afternoon break"
    assert len(session["share_code"]) == 6
    assert payload["share_url"].endswith(f"/order/{session['share_code']}")
    assert payload["share_qr"].startswith("data:image/png;base64,")
    assert 0 < session["remaining_seconds"] <= 30 * 60


def test_start_order_validates_window_and_shop():
    shop, _ = create_cafe()

    too_long = client.post(f"/shops/{shop['id']}/orders", json={"expires_in_minutes": 100000})
    assert too_long.status_code == 400

    missing = client.post("/shops/nope/orders", json={})
    assert missing.status_code == 404


def test_start_order_can_generate_a_title(monkeypatch):
    shop, _ = create_cafe()
    seen = []

    async def fake_title(shop_name):
        seen.append(shop_name)
        return "커피가 땡겨서 ☕"

    monkeypatch.setattr(deps._menu_service, "generate_session_title", fake_title)

    response = client.post(f"/shops/{shop['id']}/orders", json={"generate_title": True})

    assert response.status_code == 201
    assert response.json()["session"]["title"] == "커피가 땡겨서 ☕"
    assert seen == ["Test Cafe"]


def test_terminate_order_blocks_new_selections():
    shop, menu = create_cafe()
    session = client.post(f"/shops/{shop['id']}/orders", json={}).json()["session"]

    terminated = client.post(f"/shops/{shop['id']}/orders/{session['id']}/terminate")
    assert terminated.status_code == 200
    assert terminated.json()["status"] == "closed"
    assert terminated.json()["closed_at"]

    again = client.post(f"/shops/{shop['id']}/orders/{session['id']}/terminate")
    assert again.status_code == 200
    assert again.json()["closed_at"] == terminated.json()["closed_at"]

    rejected = client.post(
        f"/orders/{session['share_code']}/selections",
        json={"participant_name": "Carol", "items": [{"menu_item_id": menu["Latte"]["id"]}]},
    )
    assert rejected.status_code == 409


def test_order_management_is_scoped_to_the_shop():
    shop, menu = create_cafe()
    other = client.post("/shops", json={"name": "Other Cafe"}).json()
    session = client.post(f"/shops/{shop['id']}/orders", json={}).json()["session"]

    foreign = client.post(f"/shops/{other['id']}/orders/{session['id']}/terminate")
    assert foreign.status_code == 404

    submitted = client.post(
        f"/orders/{session['share_code']}/selections",
        json={"participant_name": "Alice", "items": [{"menu_item_id": menu["Latte"]["id"]}]},
    ).json()
    selection_id = submitted["selection_ids"][0]

    wrong_shop = client.delete(
        f"/shops/{other['id']}/orders/{session['id']}/selections/{selection_id}"
    )
    assert wrong_shop.status_code == 404

    removed = client.delete(
        f"/shops/{shop['id']}/orders/{session['id']}/selections/{selection_id}"
    )
    assert removed.status_code == 200
    detail = client.get(f"/orders/{session['share_code']}").json()
    assert detail["summary"]["total_quantity"] == 0

    deleted = client.delete(f"/shops/{shop['id']}/orders/{session['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/orders/{session['share_code']}").status_code == 404


def test_quick_order_creates_temporary_shop_and_session():
    response = client.post(
        "/quick-order",
        json={
            "shop_name": "Corner Kiosk",
            "menus": [{"name": "Americano", "price": "4500"}, {"name": "Latte", "price": 5000}],
            "title": "Morning run",
        },
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["shop"]["is_temporary"] is True
    assert payload["session"]["shop_id"] == payload["shop"]["id"]
    assert payload["share_url"].endswith(payload["session"]["share_code"])

    detail = client.get(f"/orders/{payload['session']['share_code']}").json()
    assert [item["price"] for item in detail["menu"]] == [4500, 5000]


def test_quick_order_requires_menus():
    response = client.post("/quick-order", json={"shop_name": "Corner Kiosk", "menus": []})
    assert response.status_code == 400
    assert client.get("/shops").json() == []


def test_promote_and_delete_shop():
    quick = client.post(
        "/quick-order",
        json={"shop_name": "Corner Kiosk", "menus": [{"name": "Latte", "price": 5000}]},
    ).json()
    shop_id = quick["shop"]["id"]

    no_address = client.post(f"/shops/{shop_id}/promote", json={})
    assert no_address.status_code == 400

    promoted = client.post(f"/shops/{shop_id}/promote", json={"address": "2 Side St"})
    assert promoted.status_code == 200
    assert promoted.json()["is_temporary"] is False
    assert promoted.json()["address"] == "2 Side St"

    assert client.delete(f"/shops/{shop_id}").status_code == 200
    assert client.get(f"/orders/{quick['session']['share_code']}").status_code == 404
    assert client.get(f"/shops/{shop_id}").status_code == 404
