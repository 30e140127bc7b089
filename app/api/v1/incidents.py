from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.dependencies import get_current_user, get_admin_user
from app.models.user import User
from app.schemas.incident import IncidentCreateRequest, IncidentUpdateRequest
from app.schemas.common import success_response, paginated_response
from app.services.incident_service import incident_service

router = APIRouter(prefix="/incidents")


@router.get("", summary="List incidents")
def list_incidents(
    page:         int           = Query(1, ge=1),
    limit:        int           = Query(20, ge=1, le=100),
    status:       Optional[str] = Query(None),
    priority:     Optional[str] = Query(None),
    roomId:       Optional[int] = Query(None),
    assignedToId: Optional[int] = Query(None),
    db:           Session       = Depends(get_db),
    _:            User          = Depends(get_current_user),
):
    data, total = incident_service.list_incidents(db, page, limit, status, priority, roomId, assignedToId)
    return paginated_response("Incidents retrieved successfully", data, total, page, limit)


@router.get("/stats", summary="Incident dashboard statistics")
def incident_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return success_response("Incident statistics retrieved", incident_service.stats(db, current_user))


@router.get("/assignable-users", summary="Users an incident can be assigned to (Admin)")
def assignable_users(db: Session = Depends(get_db), _: User = Depends(get_admin_user)):
    return success_response("Assignable users retrieved", incident_service.assignable_users(db))


@router.get("/{incident_id}", summary="Get incident with status history")
def get_incident(incident_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return success_response("Incident retrieved", incident_service.get_incident(db, incident_id))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Report an incident")
def create_incident(
    body: IncidentCreateRequest,
    db:   Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_response("Incident reported", incident_service.create_incident(db, body, current_user))


@router.patch("/{incident_id}", summary="Update incident (fields depend on role)")
def update_incident(
    incident_id: int,
    body:        IncidentUpdateRequest,
    db:          Session = Depends(get_db),
    current_user: User   = Depends(get_current_user),
):
    data = incident_service.update_incident(db, incident_id, body, current_user)
    message = "Incident updated"
    if data["ignoredFields"]:
        message += f" (ignored: {', '.join(data['ignoredFields'])})"
    return success_response(message, data)


@router.delete("/{incident_id}", summary="Delete incident (Admin)")
def delete_incident(
    incident_id: int,
    db:          Session = Depends(get_db),
    current_user: User   = Depends(get_admin_user),
):
    incident_service.delete_incident(db, incident_id, current_user.id)
    return success_response("Incident deleted", None)
