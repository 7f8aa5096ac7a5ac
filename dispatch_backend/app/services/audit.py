"""
Audit logging service for tracking dispatch changes.

Provides centralized logging for operational history and compliance. Audit
rows are written after the business transaction has committed; a failing
audit write never fails the operation it describes.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from dispatch_backend.app.models.audit_log import AuditLog

logger = logging.getLogger("dispatch.audit")


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    DISPATCH_CREATED = "DISPATCH_CREATED"
    DISPATCH_UPDATED = "DISPATCH_UPDATED"
    DISPATCH_STATUS_CHANGED = "DISPATCH_STATUS_CHANGED"
    DISPATCH_DELETED = "DISPATCH_DELETED"
    DISPATCH_GENERATED = "DISPATCH_GENERATED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DRIVER_UNASSIGNED = "DRIVER_UNASSIGNED"
    EQUIPMENT_ASSIGNED = "EQUIPMENT_ASSIGNED"
    STOP_UPDATED = "STOP_UPDATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: str = "dispatch_event",
    entity_id: Optional[int] = None,
    summary: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """
    Log a dispatch event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        entity_type: Kind of record touched
        entity_id: ID of the record touched
        summary: Human readable one-liner
        metadata: Additional context as JSON
        ip_address: IP address of the request
        user_agent: User agent of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        meta_data=metadata,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


class AuditLogWriter:
    """Fire-and-forget audit writer used by the dispatch engine."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        actor: Optional[dict] = None,
        entity_id: Optional[int] = None,
        summary: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        actor = actor or {}
        try:
            return await log_event(
                self.db,
                action=action,
                actor_id=actor.get("user_id"),
                actor_username=actor.get("sub"),
                entity_id=entity_id,
                summary=summary,
                metadata=metadata,
                ip_address=actor.get("ip_address"),
                user_agent=actor.get("user_agent"),
            )
        except Exception as exc:
            await self.db.rollback()
            logger.warning("Audit write failed for %s on %s: %s", action, entity_id, exc)
            return None


async def get_audit_trail(
    db: AsyncSession,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
