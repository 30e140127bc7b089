import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from app.models.incident import Incident, IncidentStatus, IncidentPriority, IncidentStatusHistory
from app.models.notification import NotificationType
from app.models.room import Room
from app.models.user import User, UserRole
from app.schemas.incident import IncidentCreateRequest, IncidentUpdateRequest
from app.services.notification_service import notification_service, admin_ids
from app.utils import clock
from app.utils.audit import log_action
from app.utils.clock import as_utc
from app.utils.exceptions import NotFoundException, ForbiddenException

logger = logging.getLogger(__name__)


# Fields each role may write on PATCH. Anything else sent is ignored and reported back.
_DESCRIPTIVE_FIELDS = frozenset({
    "title", "description", "priority", "category", "estimatedResolutionTime", "resolutionNotes",
})
EDITABLE_FIELDS: dict[UserRole, frozenset[str]] = {
    UserRole.ADMIN: _DESCRIPTIVE_FIELDS | {"status", "assignedToId"},
    UserRole.USER:  _DESCRIPTIVE_FIELDS,
}
_REQUIRED_FIELDS = frozenset({"title", "description", "priority", "category", "status"})
OPEN_STATUSES = (IncidentStatus.REPORTED, IncidentStatus.IN_ANALYSIS, IncidentStatus.IN_PROGRESS)


def split_fields(role: UserRole, submitted: dict) -> tuple[dict, list[str]]:
    """Return (write-set, ignored field names) for a role's submitted fields."""
    allowed = EDITABLE_FIELDS.get(role, frozenset())
    writable = {k: v for k, v in submitted.items() if k in allowed}
    ignored  = sorted(k for k in submitted if k not in allowed)
    return writable, ignored


def _user_ref(u: User | None) -> dict | None:
    return {"id": u.id, "name": u.name, "email": u.email} if u else None


def _iso(value) -> str | None:
    return as_utc(value).isoformat() if value else None


def _serialize(i: Incident, with_history: bool = False) -> dict:
    data = {
        "id":                      i.id,
        "title":                   i.title,
        "description":             i.description,
        "priority":                i.priority.value,
        "status":                  i.status.value,
        "category":                i.category.value,
        "reportedBy":              _user_ref(i.reported_by),
        "assignedTo":              _user_ref(i.assigned_to),
        "room":                    {"id": i.room.id, "name": i.room.name, "status": i.room.status.value},
        "estimatedResolutionTime": _iso(i.estimatedResolutionTime),
        "actualResolutionTime":    _iso(i.actualResolutionTime),
        "resolutionNotes":         i.resolutionNotes,
        "createdAt":               _iso(i.createdAt),
        "updatedAt":               _iso(i.updatedAt),
    }
    if with_history:
        data["statusHistory"] = [{
            "id":         h.id,
            "fromStatus": h.fromStatus.value if h.fromStatus else None,
            "toStatus":   h.toStatus.value,
            "notes":      h.notes,
            "changedBy":  {"id": h.changed_by.id, "name": h.changed_by.name},
            "createdAt":  _iso(h.createdAt),
        } for h in i.status_history]
    return data


class IncidentService:

    def _get(self, db: Session, incident_id: int) -> Incident:
        i = db.query(Incident).filter(Incident.id == incident_id).first()
        if not i:
            raise NotFoundException("Incident")
        return i

    def list_incidents(
        self, db: Session, page: int, limit: int,
        status: str | None, priority: str | None,
        room_id: int | None, assigned_to_id: int | None,
    ) -> tuple[list[dict], int]:
        q = db.query(Incident)
        if status:         q = q.filter(Incident.status == status)
        if priority:       q = q.filter(Incident.priority == priority)
        if room_id:        q = q.filter(Incident.roomId == room_id)
        if assigned_to_id: q = q.filter(Incident.assignedToId == assigned_to_id)

        total = q.count()
        items = q.order_by(Incident.createdAt.desc(), Incident.id.desc())\
                 .offset((page - 1) * limit).limit(limit).all()
        return [_serialize(i) for i in items], total

    def stats(self, db: Session, current_user: User) -> dict:
        """Status / priority overview, 30-day breakdowns, and personal counts for non-admins."""
        incidents = db.query(Incident).all()
        now = clock.utcnow()
        since = now - timedelta(days=30)
        def count_status(s): return sum(1 for i in incidents if i.status == s)
        open_ = [i for i in incidents if i.status in OPEN_STATUSES]

        personal = None
        if not current_user.is_admin:
            personal = {
                "reported":         sum(1 for i in incidents if i.reportedById == current_user.id),
                "assigned":         sum(1 for i in open_ if i.assignedToId == current_user.id),
                "assignedResolved": sum(1 for i in incidents
                                        if i.assignedToId == current_user.id
                                        and i.status == IncidentStatus.RESOLVED),
            }

        recent = [i for i in incidents if i.createdAt and as_utc(i.createdAt) >= since]

        by_category = {}
        for i in recent:
            by_category[i.category.value] = by_category.get(i.category.value, 0) + 1

        resolved_recent = [i for i in recent
                           if i.status == IncidentStatus.RESOLVED and i.actualResolutionTime]
        avg_hours = 0
        if resolved_recent:
            total = sum((as_utc(i.actualResolutionTime) - as_utc(i.createdAt)).total_seconds()
                        for i in resolved_recent)
            avg_hours = round(total / len(resolved_recent) / 3600)

        room_map = {}
        for i in recent:
            entry = room_map.setdefault(i.roomId, {"id": i.roomId, "name": i.room.name, "incidents": 0})
            entry["incidents"] += 1
        most_affected = sorted(room_map.values(), key=lambda x: (-x["incidents"], x["name"]))[:5]

        reported    = count_status(IncidentStatus.REPORTED)
        in_analysis = count_status(IncidentStatus.IN_ANALYSIS)
        in_progress = count_status(IncidentStatus.IN_PROGRESS)
        return {
            "overview": {
                "total":       len(incidents),
                "reported":    reported,
                "inAnalysis":  in_analysis,
                "inProgress":  in_progress,
                "resolved":    count_status(IncidentStatus.RESOLVED),
                "cancelled":   count_status(IncidentStatus.CANCELLED),
                "activeTotal": reported + in_analysis + in_progress,
            },
            "priority": {
                p.value.lower(): sum(1 for i in open_ if i.priority == p) for p in IncidentPriority
            },
            "personal":   personal,
            "categories": [{"category": k, "count": v} for k, v in sorted(by_category.items())],
            "performance": {
                "averageResolutionTimeHours": avg_hours,
                "resolvedLast30Days":         len(resolved_recent),
            },
            "mostAffectedRooms": most_affected,
        }

    def assignable_users(self, db: Session) -> list[dict]:
        """Active users with the number of open incidents assigned to each, admins first."""
        users = db.query(User).filter(User.isActive == True).all()
        open_counts = {}
        for (assignee_id,) in db.query(Incident.assignedToId).filter(
            Incident.assignedToId.isnot(None), Incident.status.in_(OPEN_STATUSES),
        ).all():
            open_counts[assignee_id] = open_counts.get(assignee_id, 0) + 1

        users.sort(key=lambda u: (not u.is_admin, u.name))
        return [{
            "id":              u.id,
            "name":            u.name,
            "email":           u.email,
            "role":            u.role.value,
            "activeIncidents": open_counts.get(u.id, 0),
        } for u in users]

    def get_incident(self, db: Session, incident_id: int) -> dict:
        return _serialize(self._get(db, incident_id), with_history=True)

    def create_incident(self, db: Session, data: IncidentCreateRequest, current_user: User) -> dict:
        room = db.query(Room).filter(Room.id == data.roomId).first()
        if not room:
            raise NotFoundException("Room")

        i = Incident(
            title=data.title,
            description=data.description,
            priority=data.priority,
            category=data.category,
            roomId=room.id,
            reportedById=current_user.id,
            estimatedResolutionTime=as_utc(data.estimatedResolutionTime),
            status=IncidentStatus.REPORTED,
        )
        db.add(i)
        db.flush()
        db.add(IncidentStatusHistory(incidentId=i.id, fromStatus=None, toStatus=IncidentStatus.REPORTED,
                                     notes="Incident reported", changedById=current_user.id))
        log_action(db, current_user.id, "CREATE", "Incident", i.id,
                   f"{current_user.name} reported '{i.title}' in {room.name}")
        db.commit()
        db.refresh(i)

        notification_service.try_notify(
            db, admin_ids(db), NotificationType.INCIDENT_CREATED, "New incident reported",
            f"{current_user.name} reported '{i.title}' in {room.name} ({i.priority.value})",
            {"incidentId": i.id, "roomId": room.id, "priority": i.priority.value},
        )
        return _serialize(i, with_history=True)

    def update_incident(
        self, db: Session, incident_id: int, data: IncidentUpdateRequest, current_user: User,
    ) -> dict:
        i = self._get(db, incident_id)
        if not (current_user.is_admin
                or i.reportedById == current_user.id
                or i.assignedToId == current_user.id):
            raise ForbiddenException("You cannot update this incident")

        changes, ignored = split_fields(current_user.role, data.model_dump(exclude_unset=True))
        old_status, old_assignee = i.status, i.assignedToId
        assignee = None

        if "assignedToId" in changes and changes["assignedToId"] is not None:
            assignee = db.query(User).filter(User.id == changes["assignedToId"]).first()
            if not assignee:
                raise NotFoundException("User")

        for field, value in changes.items():
            if field == "estimatedResolutionTime":
                value = as_utc(value)
            if value is None and field in _REQUIRED_FIELDS:
                continue
            setattr(i, field, value)

        if i.status != old_status:
            if i.status == IncidentStatus.RESOLVED:
                i.actualResolutionTime = clock.utcnow()
            db.add(IncidentStatusHistory(
                incidentId=i.id, fromStatus=old_status, toStatus=i.status,
                notes=f"Status changed from {old_status.value} to {i.status.value}",
                changedById=current_user.id,
            ))
        if i.assignedToId != old_assignee:
            db.add(IncidentStatusHistory(
                incidentId=i.id, fromStatus=i.status, toStatus=i.status,
                notes=f"Assigned to {assignee.name} ({assignee.email})" if assignee else "Assignment removed",
                changedById=current_user.id,
            ))

        if ignored:
            logger.info(f"Incident #{i.id}: ignored fields {ignored} for role {current_user.role.value}")
        log_action(db, current_user.id, "UPDATE", "Incident", i.id,
                   f"Incident #{i.id} updated ({', '.join(sorted(changes)) or 'no changes'})")
        db.commit()
        db.refresh(i)

        if i.status != old_status and i.reportedById != current_user.id:
            notification_service.try_notify(
                db, [i.reportedById], NotificationType.INCIDENT_STATUS_CHANGED, "Incident updated",
                f"'{i.title}' moved from {old_status.value} to {i.status.value}",
                {"incidentId": i.id, "fromStatus": old_status.value, "toStatus": i.status.value},
            )
        if assignee is not None and i.assignedToId != old_assignee:
            notification_service.try_notify(
                db, [assignee.id], NotificationType.INCIDENT_ASSIGNED, "Incident assigned to you",
                f"'{i.title}' in {i.room.name} was assigned to you",
                {"incidentId": i.id, "roomId": i.roomId},
            )

        return {"incident": _serialize(i, with_history=True), "ignoredFields": ignored}

    def delete_incident(self, db: Session, incident_id: int, actor_id: int) -> None:
        i = self._get(db, incident_id)
        log_action(db, actor_id, "DELETE", "Incident", i.id, f"Deleted incident '{i.title}'")
        db.delete(i)
        db.commit()


incident_service = IncidentService()
