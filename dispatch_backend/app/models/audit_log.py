"""
Audit Log Database Model.

Records dispatch changes for operational history and compliance.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from dispatch_backend.app.db.session import Base, utcnow


class AuditLog(Base):
    """
    Audit log model for tracking dispatch actions.

    Events logged:
    - DISPATCH_CREATED / DISPATCH_UPDATED / DISPATCH_DELETED
    - DISPATCH_STATUS_CHANGED
    - DRIVER_ASSIGNED / DRIVER_UNASSIGNED / EQUIPMENT_ASSIGNED
    - STOP_UPDATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which entity was touched
    entity_type = Column(String(50), nullable=False, default="dispatch_event")
    entity_id = Column(Integer, index=True, nullable=True)
    summary = Column(String(500), nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Request origin
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(255), nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, entity={self.entity_id})>"
