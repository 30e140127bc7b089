"""initial schema: users, rooms, reservations, approval logs, notifications, audit logs, incidents

Revision ID: 0001
Revises:
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

user_role          = sa.Enum("ADMIN", "USER", name="userrole")
room_status        = sa.Enum("FREE", "IN_USE", "RESERVED", name="roomstatus")
reservation_status = sa.Enum("PENDING", "ACTIVE", "APPROVED", "REJECTED", "CANCELLED", "COMPLETED",
                             name="reservationstatus")
recurring_pattern  = sa.Enum("DAILY", "WEEKLY", "MONTHLY", name="recurringpattern")
approval_action    = sa.Enum("APPROVED", "REJECTED", "CANCELLED", name="approvalaction")
notification_type  = sa.Enum(
    "RESERVATION_CREATED", "RESERVATION_APPROVED", "RESERVATION_REJECTED", "RESERVATION_CANCELLED",
    "INCIDENT_CREATED", "INCIDENT_ASSIGNED", "INCIDENT_STATUS_CHANGED", "SYSTEM_ANNOUNCEMENT",
    name="notificationtype",
)
incident_status    = sa.Enum("REPORTED", "IN_ANALYSIS", "IN_PROGRESS", "RESOLVED", "CANCELLED",
                             name="incidentstatus")
incident_priority  = sa.Enum("LOW", "MEDIUM", "HIGH", "CRITICAL", name="incidentpriority")
incident_category  = sa.Enum("EQUIPMENT", "INFRASTRUCTURE", "CLEANING", "SECURITY", "OTHER",
                             name="incidentcategory")


def _timestamps():
    return [
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updatedAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("isActive", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("status", room_status, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_rooms_id", "rooms", ["id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("roomId", sa.Integer(), sa.ForeignKey("rooms.id"), nullable=False),
        sa.Column("startTime", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("endTime", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("status", reservation_status, nullable=False),
        sa.Column("isRecurring", sa.Boolean(), nullable=False),
        sa.Column("recurringPattern", recurring_pattern, nullable=True),
        sa.Column("recurringDaysOfWeek", sa.JSON(), nullable=True),
        sa.Column("recurringEndDate", sa.Date(), nullable=True),
        sa.Column("parentReservationId", sa.Integer(),
                  sa.ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("recurringTemplateId", sa.String(36), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('"startTime" < "endTime"', name="ck_reservations_interval"),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_userId", "reservations", ["userId"])
    op.create_index("ix_reservations_status", "reservations", ["status"])
    op.create_index("ix_reservations_recurringTemplateId", "reservations", ["recurringTemplateId"])
    op.create_index("ix_reservations_room_interval", "reservations", ["roomId", "startTime", "endTime"])

    op.create_table(
        "approval_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reservationId", sa.Integer(),
                  sa.ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("actorId", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", approval_action, nullable=False),
        sa.Column("fromStatus", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_approval_logs_id", "approval_logs", ["id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("isRead", sa.Boolean(), nullable=False),
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_userId", "notifications", ["userId"])
    op.create_index("ix_notifications_isRead", "notifications", ["isRead"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("userId", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entityType", sa.String(100), nullable=False),
        sa.Column("entityId", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_id", "audit_logs", ["id"])

    op.create_table(
        "incidents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("priority", incident_priority, nullable=False),
        sa.Column("status", incident_status, nullable=False),
        sa.Column("category", incident_category, nullable=False),
        sa.Column("reportedById", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assignedToId", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("roomId", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("estimatedResolutionTime", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("actualResolutionTime", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("resolutionNotes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_incidents_id", "incidents", ["id"])
    op.create_index("ix_incidents_status", "incidents", ["status"])

    op.create_table(
        "incident_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("incidentId", sa.Integer(),
                  sa.ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fromStatus", incident_status, nullable=True),
        sa.Column("toStatus", incident_status, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changedById", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("createdAt", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_incident_status_history_id", "incident_status_history", ["id"])
    op.create_index("ix_incident_status_history_incidentId", "incident_status_history", ["incidentId"])


def downgrade():
    op.drop_table("incident_status_history")
    op.drop_table("incidents")
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("approval_logs")
    op.drop_table("reservations")
    op.drop_table("rooms")
    op.drop_table("users")
    for enum in (incident_category, incident_priority, incident_status, notification_type,
                 approval_action, recurring_pattern, reservation_status, room_status, user_role):
        enum.drop(op.get_bind(), checkfirst=True)
