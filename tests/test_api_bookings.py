# Import testing tools
import pytest
from fastapi.testclient import TestClient
import json  # Import json to parse the payload
from sqlalchemy.orm import Session  # Import Session for db_session typing

# Import models to query the OutboxEvent
from shareit import models
from shareit.config import settings
from shareit.models import MAX_ID


def headers_for(user) -> dict:
    return {settings.USER_ID_HEADER: str(user.id)}


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def booker(make_user):
    return make_user("booker")


@pytest.fixture
def item(make_item, owner):
    return make_item(owner)


def booking_payload(item, start="2030-01-10T10:00:00", end="2030-01-11T10:00:00") -> dict:
    return {"itemId": item.id, "start": start, "end": end}


@pytest.fixture
def created(client: TestClient, booker, item) -> dict:
    response = client.post("/bookings", json=booking_payload(item), headers=headers_for(booker))
    assert response.status_code == 200
    return response.json()


# --- Test Cases ---

def test_create_booking_success(client: TestClient, booker, item, db_session: Session):
    """Test successfully creating a booking."""
    response = client.post("/bookings", json=booking_payload(item), headers=headers_for(booker))

    # --- Assertions for the API Response ---
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "WAITING"
    assert data["start"] == "2030-01-10T10:00:00"
    assert data["end"] == "2030-01-11T10:00:00"
    assert data["booker"]["id"] == booker.id
    assert data["booker"]["email"] == booker.email
    assert data["item"] == {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "available": True,
    }
    assert "id" in data

    # --- Assertions for the Outbox Event ---
    outbox_event = db_session.query(models.OutboxEvent).first()
    assert outbox_event is not None
    assert outbox_event.status == "PENDING"
    assert outbox_event.topic == settings.KAFKA_BOOKING_TOPIC
    payload = json.loads(outbox_event.payload)
    assert payload["booking_id"] == data["id"]
    assert payload["status"] == "WAITING"


def test_create_booking_with_timezone_is_stored_as_utc(client: TestClient, booker, item):
    payload = booking_payload(item, start="2030-01-10T12:00:00+02:00", end="2030-01-11T12:00:00+02:00")
    response = client.post("/bookings", json=payload, headers=headers_for(booker))
    assert response.status_code == 200
    assert response.json()["start"] == "2030-01-10T10:00:00"


def test_create_booking_invalid_dates(client: TestClient, booker, item):
    """Test creating a booking where end is not after start."""
    payload = booking_payload(item, start="2030-01-10T10:00:00", end="2030-01-10T10:00:00")
    response = client.post("/bookings", json=payload, headers=headers_for(booker))
    assert response.status_code == 400
    assert "end must be after" in response.json()["detail"]


def test_create_booking_in_the_past(client: TestClient, booker, item):
    payload = booking_payload(item, start="2029-12-31T10:00:00", end="2030-01-11T10:00:00")
    response = client.post("/bookings", json=payload, headers=headers_for(booker))
    assert response.status_code == 400
    assert "future" in response.json()["detail"]


@pytest.mark.parametrize("body", [
    {"start": "2030-01-10T10:00:00", "end": "2030-01-11T10:00:00"},
    {"itemId": 0, "start": "2030-01-10T10:00:00", "end": "2030-01-11T10:00:00"},
    {"itemId": 1, "start": "not a date", "end": "2030-01-11T10:00:00"},
])
def test_create_booking_malformed_body(client: TestClient, booker, body):
    response = client.post("/bookings", json=body, headers=headers_for(booker))
    assert response.status_code == 400


def test_create_booking_conflict(client: TestClient, created, make_user, item):
    """Test creating a booking that overlaps an existing one."""
    other = make_user("booker")
    payload = booking_payload(item, start="2030-01-10T22:00:00", end="2030-01-12T10:00:00")
    response = client.post("/bookings", json=payload, headers=headers_for(other))

    assert response.status_code == 400
    assert "already booked" in response.json()["detail"]


def test_create_booking_unknown_item(client: TestClient, booker):
    payload = {"itemId": 999999, "start": "2030-01-10T10:00:00", "end": "2030-01-11T10:00:00"}
    response = client.post("/bookings", json=payload, headers=headers_for(booker))
    assert response.status_code == 404


def test_create_booking_unknown_user(client: TestClient, item):
    response = client.post("/bookings", json=booking_payload(item), headers={settings.USER_ID_HEADER: "999999"})
    assert response.status_code == 404


def test_create_booking_unavailable_item(client: TestClient, make_item, owner, booker):
    item = make_item(owner, available=False)
    response = client.post("/bookings", json=booking_payload(item), headers=headers_for(booker))
    assert response.status_code == 400


@pytest.mark.parametrize("headers", [{}, {"X-Sharer-User-Id": "0"}, {"X-Sharer-User-Id": "-3"},
                                     {"X-Sharer-User-Id": "abc"}, {"X-Sharer-User-Id": str(MAX_ID + 1)},
                                     {"X-Sharer-User-Id": str(2**63)}])
def test_requests_without_valid_identity(client: TestClient, item, headers):
    """The identity header is required and must be a positive integer."""
    assert client.post("/bookings", json=booking_payload(item), headers=headers).status_code == 400
    assert client.get("/bookings", headers=headers).status_code == 400
    assert client.get("/bookings/owner", headers=headers).status_code == 400
    assert client.get("/bookings/1", headers=headers).status_code == 400
    assert client.patch("/bookings/1?approved=true", headers=headers).status_code == 400


def test_largest_identity_reaches_user_lookup(client: TestClient):
    response = client.get("/bookings", headers={settings.USER_ID_HEADER: str(MAX_ID)})
    assert response.status_code == 404


@pytest.mark.parametrize("booking_id", [MAX_ID + 1, 2**63])
def test_oversized_booking_id_is_rejected(client: TestClient, booker, booking_id):
    assert client.get(f"/bookings/{booking_id}", headers=headers_for(booker)).status_code == 400
    assert client.patch(f"/bookings/{booking_id}?approved=true", headers=headers_for(booker)).status_code == 400


@pytest.mark.parametrize("item_id", [MAX_ID + 1, 2**63])
def test_create_booking_oversized_item_id(client: TestClient, booker, item_id):
    body = {"itemId": item_id, "start": "2030-01-10T10:00:00", "end": "2030-01-11T10:00:00"}
    response = client.post("/bookings", json=body, headers=headers_for(booker))
    assert response.status_code == 400


def test_get_booking_by_booker_and_owner(client: TestClient, created, booker, owner):
    for user in (booker, owner):
        response = client.get(f"/bookings/{created['id']}", headers=headers_for(user))
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]


def test_get_booking_by_stranger(client: TestClient, created, make_user):
    stranger = make_user("stranger")
    response = client.get(f"/bookings/{created['id']}", headers=headers_for(stranger))
    assert response.status_code == 400


def test_get_unknown_booking(client: TestClient, booker):
    response = client.get("/bookings/999999", headers=headers_for(booker))
    assert response.status_code == 404


@pytest.mark.parametrize("approved, expected", [("true", "APPROVED"), ("TRUE", "APPROVED"),
                                                ("false", "REJECTED"), ("False", "REJECTED")])
def test_owner_updates_state(client: TestClient, created, owner, approved, expected):
    response = client.patch(f"/bookings/{created['id']}?approved={approved}", headers=headers_for(owner))
    assert response.status_code == 200
    assert response.json()["status"] == expected


def test_second_update_fails(client: TestClient, created, owner):
    url = f"/bookings/{created['id']}"
    assert client.patch(f"{url}?approved=true", headers=headers_for(owner)).status_code == 200
    response = client.patch(f"{url}?approved=false", headers=headers_for(owner))
    assert response.status_code == 400

    # The first decision stands
    assert client.get(url, headers=headers_for(owner)).json()["status"] == "APPROVED"


def test_booker_cannot_update_state(client: TestClient, created, booker):
    response = client.patch(f"/bookings/{created['id']}?approved=true", headers=headers_for(booker))
    assert response.status_code == 400


@pytest.mark.parametrize("query", ["", "?approved=yes", "?approved=1"])
def test_update_state_requires_boolean_flag(client: TestClient, created, owner, query):
    response = client.patch(f"/bookings/{created['id']}{query}", headers=headers_for(owner))
    assert response.status_code == 400


def test_update_unknown_booking(client: TestClient, owner):
    response = client.patch("/bookings/999999?approved=true", headers=headers_for(owner))
    assert response.status_code == 404


def test_read_booker_bookings(client: TestClient, created, make_item, owner, booker):
    """Test retrieving bookings only for the calling user, newest first."""
    second_item = make_item(owner, name="Ladder")
    later = client.post(
        "/bookings",
        json=booking_payload(second_item, start="2030-02-01T10:00:00", end="2030-02-05T10:00:00"),
        headers=headers_for(booker),
    ).json()

    response = client.get("/bookings", headers=headers_for(booker))

    assert response.status_code == 200
    data = response.json()
    assert isinstance(data, list)
    assert [b["id"] for b in data] == [later["id"], created["id"]]

    # The owner has booked nothing
    assert client.get("/bookings", headers=headers_for(owner)).json() == []


def test_read_owner_bookings_by_state(client: TestClient, created, owner):
    assert [b["id"] for b in client.get("/bookings/owner", headers=headers_for(owner)).json()] == [created["id"]]
    assert [b["id"] for b in client.get("/bookings/owner?state=FUTURE", headers=headers_for(owner)).json()] == [created["id"]]
    assert client.get("/bookings/owner?state=PAST", headers=headers_for(owner)).json() == []
    assert client.get("/bookings/owner?state=REJECTED", headers=headers_for(owner)).json() == []


def test_read_bookings_unknown_state(client: TestClient, booker):
    response = client.get("/bookings?state=SOMETIME", headers=headers_for(booker))
    assert response.status_code == 400


def test_read_bookings_unknown_user(client: TestClient):
    response = client.get("/bookings", headers={settings.USER_ID_HEADER: "999999"})
    assert response.status_code == 404


def test_health(client: TestClient):
    assert client.get("/health").json()["status"] == "ok"
