from app.models.room import Room, RoomStatus

from conftest import book


def test_admin_creates_room(client, admin_headers):
    resp = client.post("/api/v1/rooms", headers=admin_headers,
                       json={"name": " Board Room ", "capacity": 12})
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["name"] == "Board Room"
    assert data["status"] == "FREE"


def test_users_cannot_create_rooms(client, user_headers):
    assert client.post("/api/v1/rooms", headers=user_headers, json={"name": "X"}).status_code == 403


def test_duplicate_room_name(client, admin_headers, room):
    resp = client.post("/api/v1/rooms", headers=admin_headers, json={"name": "R1"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "DUPLICATE_ENTRY"


def test_invalid_capacity(client, admin_headers):
    resp = client.post("/api/v1/rooms", headers=admin_headers, json={"name": "Tiny", "capacity": 0})
    assert resp.status_code == 422


def test_list_and_get_rooms(client, user_headers, room, second_room):
    listing = client.get("/api/v1/rooms", headers=user_headers, params={"minCapacity": 10}).json()
    assert [r["name"] for r in listing["data"]] == ["R2"]
    assert client.get(f"/api/v1/rooms/{room.id}", headers=user_headers).json()["data"]["name"] == "R1"
    assert client.get("/api/v1/rooms/999", headers=user_headers).status_code == 404


def test_update_room(client, admin_headers, room):
    resp = client.put(f"/api/v1/rooms/{room.id}", headers=admin_headers, json={"capacity": 10})
    assert resp.json()["data"]["capacity"] == 10


def test_availability_lists_blocking_reservations(client, user_headers, room):
    book(client, user_headers, room.id, "2024-01-16T09:00:00Z", "2024-01-16T10:00:00Z")
    busy = client.get(f"/api/v1/rooms/{room.id}/availability", headers=user_headers, params={
        "startTime": "2024-01-16T08:00:00Z", "endTime": "2024-01-16T12:00:00Z",
    }).json()["data"]
    assert busy["available"] is False
    assert len(busy["reservations"]) == 1

    free = client.get(f"/api/v1/rooms/{room.id}/availability", headers=user_headers, params={
        "startTime": "2024-01-16T10:00:00Z", "endTime": "2024-01-16T12:00:00Z",
    }).json()["data"]
    assert free["available"] is True


def test_refresh_status_recomputes_from_reservations(client, admin_headers, room, db_session):
    room.status = RoomStatus.IN_USE
    db_session.commit()
    resp = client.post(f"/api/v1/rooms/{room.id}/refresh-status", headers=admin_headers)
    assert resp.json()["data"]["status"] == "FREE"


def test_room_with_open_reservations_cannot_be_deleted(client, admin_headers, user_headers, room, db_session):
    rid = book(client, user_headers, room.id, "2024-01-16T09:00:00Z",
               "2024-01-16T10:00:00Z").json()["data"]["reservationIds"][0]
    resp = client.delete(f"/api/v1/rooms/{room.id}", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "ROOM_IN_USE"

    client.patch(f"/api/v1/reservations/{rid}/cancel", headers=user_headers)
    assert client.delete(f"/api/v1/rooms/{room.id}", headers=admin_headers).status_code == 200
    db_session.expire_all()
    assert db_session.query(Room).count() == 0


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"
