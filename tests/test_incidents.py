from datetime import timedelta

from app.models.incident import Incident
from app.models.notification import Notification, NotificationType
from app.services.incident_service import split_fields
from app.models.user import UserRole

from conftest import NOW


def report(client, headers, room_id, **extra):
    body = {"title": "Projector broken", "description": "No signal on HDMI", "roomId": room_id,
            "priority": "HIGH", "category": "EQUIPMENT"}
    body.update(extra)
    return client.post("/api/v1/incidents", json=body, headers=headers)


def test_split_fields_by_role():
    submitted = {"title": "New title", "status": "RESOLVED", "assignedToId": 3}
    writable, ignored = split_fields(UserRole.USER, submitted)
    assert writable == {"title": "New title"}
    assert ignored == ["assignedToId", "status"]

    writable, ignored = split_fields(UserRole.ADMIN, submitted)
    assert writable == submitted
    assert ignored == []


def test_report_incident_records_history_and_notifies_admins(client, user_headers, admin_user,
                                                             room, db_session):
    resp = report(client, user_headers, room.id)
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "REPORTED"
    assert data["room"]["name"] == "R1"
    assert len(data["statusHistory"]) == 1
    assert data["statusHistory"][0]["fromStatus"] is None

    n = db_session.query(Notification).filter(Notification.userId == admin_user.id).one()
    assert n.type == NotificationType.INCIDENT_CREATED
    assert n.data["incidentId"] == data["id"]


def test_report_for_unknown_room(client, user_headers):
    assert report(client, user_headers, 404).status_code == 404


def test_blank_title_is_rejected(client, user_headers, room):
    assert report(client, user_headers, room.id, title="   ").status_code == 422


def test_reporter_edits_are_limited_to_descriptive_fields(client, user_headers, room):
    iid = report(client, user_headers, room.id).json()["data"]["id"]
    resp = client.patch(f"/api/v1/incidents/{iid}", headers=user_headers,
                        json={"title": "Projector flickers", "status": "RESOLVED"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["data"]["ignoredFields"] == ["status"]
    assert body["message"] == "Incident updated (ignored: status)"
    assert body["data"]["incident"]["title"] == "Projector flickers"
    assert body["data"]["incident"]["status"] == "REPORTED"


def test_unrelated_user_cannot_edit(client, user_headers, other_headers, room):
    iid = report(client, user_headers, room.id).json()["data"]["id"]
    resp = client.patch(f"/api/v1/incidents/{iid}", headers=other_headers, json={"title": "Mine now"})
    assert resp.status_code == 403


def test_admin_resolution_stamps_time_and_notifies_reporter(client, user_headers, admin_headers,
                                                            regular_user, room, db_session):
    iid = report(client, user_headers, room.id).json()["data"]["id"]
    resp = client.patch(f"/api/v1/incidents/{iid}", headers=admin_headers,
                        json={"status": "RESOLVED", "resolutionNotes": "Cable replaced"})
    incident = resp.json()["data"]["incident"]
    assert incident["status"] == "RESOLVED"
    assert incident["actualResolutionTime"] == "2024-01-15T12:00:00+00:00"
    assert [h["toStatus"] for h in incident["statusHistory"]] == ["REPORTED", "RESOLVED"]
    assert incident["statusHistory"][1]["fromStatus"] == "REPORTED"

    n = db_session.query(Notification).filter(Notification.userId == regular_user.id).one()
    assert n.type == NotificationType.INCIDENT_STATUS_CHANGED


def test_admin_assignment_notifies_assignee(client, user_headers, admin_headers, other_user,
                                            room, db_session):
    iid = report(client, user_headers, room.id).json()["data"]["id"]
    resp = client.patch(f"/api/v1/incidents/{iid}", headers=admin_headers,
                        json={"assignedToId": other_user.id})
    incident = resp.json()["data"]["incident"]
    assert incident["assignedTo"]["id"] == other_user.id
    assert incident["statusHistory"][-1]["notes"] == "Assigned to Other User (other@example.com)"

    n = db_session.query(Notification).filter(Notification.userId == other_user.id).one()
    assert n.type == NotificationType.INCIDENT_ASSIGNED


def test_assignee_may_edit_descriptive_fields(client, user_headers, admin_headers, other_headers,
                                              other_user, room):
    iid = report(client, user_headers, room.id).json()["data"]["id"]
    client.patch(f"/api/v1/incidents/{iid}", headers=admin_headers, json={"assignedToId": other_user.id})
    resp = client.patch(f"/api/v1/incidents/{iid}", headers=other_headers, json={"priority": "CRITICAL"})
    assert resp.status_code == 200
    assert resp.json()["data"]["incident"]["priority"] == "CRITICAL"


def test_list_filters_and_delete(client, user_headers, admin_headers, room, second_room):
    report(client, user_headers, room.id)
    iid = report(client, user_headers, second_room.id, priority="LOW").json()["data"]["id"]

    listing = client.get("/api/v1/incidents", headers=user_headers, params={"roomId": second_room.id}).json()
    assert listing["meta"]["total"] == 1
    assert listing["data"][0]["priority"] == "LOW"

    assert client.delete(f"/api/v1/incidents/{iid}", headers=user_headers).status_code == 403
    assert client.delete(f"/api/v1/incidents/{iid}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/v1/incidents/{iid}", headers=user_headers).status_code == 404


# ─── Statistics ──────────────────────────────────────────────────────────────
def test_incident_stats(client, user_headers, admin_headers, other_user, room, second_room, db_session):
    report(client, user_headers, room.id, priority="CRITICAL")
    report(client, user_headers, room.id, priority="LOW", category="CLEANING")
    iid = report(client, user_headers, second_room.id).json()["data"]["id"]
    client.patch(f"/api/v1/incidents/{iid}", headers=admin_headers, json={"assignedToId": other_user.id})

    # Reported five hours before it gets resolved at the frozen clock time
    db_session.get(Incident, iid).createdAt = NOW - timedelta(hours=5)
    db_session.commit()
    client.patch(f"/api/v1/incidents/{iid}", headers=admin_headers, json={"status": "RESOLVED"})

    resp = client.get("/api/v1/incidents/stats", headers=user_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["overview"] == {"total": 3, "reported": 2, "inAnalysis": 0, "inProgress": 0,
                                "resolved": 1, "cancelled": 0, "activeTotal": 2}
    assert data["priority"] == {"low": 1, "medium": 0, "high": 0, "critical": 1}
    assert data["personal"] == {"reported": 3, "assigned": 0, "assignedResolved": 0}
    assert data["categories"] == [{"category": "CLEANING", "count": 1}, {"category": "EQUIPMENT", "count": 2}]
    assert data["performance"] == {"averageResolutionTimeHours": 5, "resolvedLast30Days": 1}
    assert data["mostAffectedRooms"][0] == {"id": room.id, "name": "R1", "incidents": 2}

    admin_view = client.get("/api/v1/incidents/stats", headers=admin_headers).json()["data"]
    assert admin_view["personal"] is None


def test_assignable_users_lists_admins_first_with_open_work(client, user_headers, admin_headers,
                                                           admin_user, other_user, regular_user, room):
    iid = report(client, user_headers, room.id).json()["data"]["id"]
    client.patch(f"/api/v1/incidents/{iid}", headers=admin_headers, json={"assignedToId": other_user.id})

    assert client.get("/api/v1/incidents/assignable-users", headers=user_headers).status_code == 403
    resp = client.get("/api/v1/incidents/assignable-users", headers=admin_headers)
    assert resp.status_code == 200
    users = resp.json()["data"]
    assert [u["id"] for u in users] == [admin_user.id, other_user.id, regular_user.id]
    assert [u["activeIncidents"] for u in users] == [0, 1, 0]
