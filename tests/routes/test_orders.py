import json
from dataclasses import replace
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sse_starlette import sse

from orderup.main import app
from orderup.routes import deps
from orderup.services.orders import utcnow

client = TestClient(app)


@pytest.fixture(autouse=True)
def reset_store(monkeypatch):
    deps._store.reset()
    # sse-starlette keeps a module-level exit event bound to the first event loop.
    if hasattr(sse, "AppStatus"):
        monkeypatch.setattr(sse.AppStatus, "should_exit_event", None, raising=False)
    yield
    deps._store.reset()


def open_cafe_session():
    shop = client.post("/shops", json={"name": "Test Cafe"}).json()
    menu = client.post(
        f"/shops/{shop['id']}/menu-items",
        json={"items": [{"name": "Americano", "price": 4500}, {"name": "Latte", "price": 5000}]},
    ).json()
    session = client.post(f"/shops/{shop['id']}/orders", json={}).json()["session"]
    return shop, {item["name"]: item["id"] for item in menu}, session


def submit(share_code, name, *item_ids):
    return client.post(
        f"/orders/{share_code}/selections",
        json={
            "participant_name": name,
            "items": [{"menu_item_id": item_id, "quantity": 1} for item_id in item_ids],
        },
    )


def parse_events(body):
    events = []
    for block in body.replace("\r\n", "\n").strip().split("\n\n"):
        event = {}
        for row in block.splitlines():
            key, _, value = row.partition(": ")
            if key in {"event", "data"}:
                event[key] = value
        if event:
            events.append(event)
    return events


def test_participants_build_a_merged_tally():
    shop, menu, session = open_cafe_session()
    code = session["share_code"]

    alice = submit(code, "Alice", menu["Americano"], menu["Latte"])
    bob = submit(code, "Bob", menu["Americano"])
    assert alice.status_code == 200
    assert alice.json()["message"] == "Your selections have been submitted!"
    assert len(alice.json()["selection_ids"]) == 2
    assert bob.status_code == 200

    detail = client.get(f"/orders/{code}")
    assert detail.status_code == 200
    payload = detail.json()
    assert payload["shop"]["name"] == "Test Cafe"
    assert payload["session"]["state"] == "open"
    summary = payload["summary"]
    assert [(line["name"], line["quantity"]) for line in summary["tally"]] == [
        ("Americano", 2),
        ("Latte", 1),
    ]
    assert summary["total_quantity"] == 3
    assert summary["total_amount"] == 14000
    assert [(p["participant_name"], p["subtotal"]) for p in summary["participants"]] == [
        ("Alice", 9500),
        ("Bob", 4500),
    ]


def test_submission_errors_map_to_status_codes():
    _, menu, session = open_cafe_session()
    code = session["share_code"]

    empty = client.post(f"/orders/{code}/selections", json={"participant_name": "Alice"})
    assert empty.status_code == 400

    unknown_item = submit(code, "Alice", "not-on-the-menu")
    assert unknown_item.status_code == 400

    unknown_code = submit("ZZZZZZ", "Alice", menu["Latte"])
    assert unknown_code.status_code == 404

    assert client.get(f"/orders/{code}").json()["summary"]["total_quantity"] == 0


def test_expired_session_rejects_selections():
    _, menu, session = open_cafe_session()
    order = deps._store._orders[session["id"]]
    deps._store._orders[session["id"]] = replace(
        order, expires_at=utcnow() - timedelta(minutes=1)
    )

    rejected = submit(session["share_code"], "Alice", menu["Latte"])

    assert rejected.status_code == 409
    assert "expired" in rejected.json()["detail"]
    detail = client.get(f"/orders/{session['share_code']}").json()
    assert detail["session"]["state"] == "expired"
    assert detail["session"]["status"] == "open"


def test_event_stream_ends_with_closed_event():
    shop, menu, session = open_cafe_session()
    submit(session["share_code"], "Alice", menu["Latte"])
    client.post(f"/shops/{shop['id']}/orders/{session['id']}/terminate")

    response = client.get(f"/orders/{session['share_code']}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_events(response.text)
    assert [event["event"] for event in events] == ["tally", "closed"]
    tally = json.loads(events[0]["data"])
    assert tally["summary"]["total_amount"] == 5000
    assert json.loads(events[1]["data"]) == {"state": "closed"}


def test_event_stream_for_unknown_session_is_404():
    response = client.get("/orders/ZZZZZZ/events")
    assert response.status_code == 404
