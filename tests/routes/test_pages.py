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


def start_session():
    shop = client.post("/shops", json={"name": "Test Cafe"}).json()
    menu = client.post(
        f"/shops/{shop['id']}/menu-items",
        json={"items": [{"name": "Americano", "price": 4500}, {"name": "Latte", "price": 5000}]},
    ).json()
    ids = {item["name"]: item["id"] for item in menu}
    session = client.post(
        f"/shops/{shop['id']}/orders", json={"title": "Afternoon break"}
    ).json()["session"]
    for name, picks in (("Alice", ["Americano", "Latte"]), ("Bob", ["Americano"])):
        client.post(
            f"/orders/{session['share_code']}/selections",
            json={"participant_name": name, "items": [{"menu_item_id": ids[p]} for p in picks]},
        )
    return session


def test_home_page_lists_shops():
    client.post("/shops", json={"name": "Test Cafe", "address": "1 Main St"})

    response = client.get("/")

    assert response.status_code == 200
    assert "Order together, pay once" in response.text
    assert "Test Cafe" in response.text
    assert "1 Main St" in response.text


def test_order_page_shows_menu_participants_and_qr():
    session = start_session()

    response = client.get(f"/order/{session['share_code']}")

    assert response.status_code == 200
    assert "Afternoon break" in response.text
    assert "Test Cafe" in response.text
    assert "Alice" in response.text and "Bob" in response.text
    assert "14,000" in response.text
    assert "data:image/png;base64," in response.text
    assert f"/order/{session['share_code']}/receipt" in response.text


def test_receipt_page_shows_merged_lines():
    session = start_session()

    response = client.get(f"/order/{session['share_code']}/receipt")

    assert response.status_code == 200
    assert "RECEIPT" in response.text
    assert "Americano" in response.text
    assert "9,000" in response.text
    assert "14,000" in response.text


@pytest.mark.parametrize("path", ["/order/ZZZZZZ", "/order/ZZZZZZ/receipt"])
def test_unknown_session_pages_are_404(path):
    response = client.get(path)

    assert response.status_code == 404
    assert "Order not found" in response.text
