from typing import Optional, List
import uuid

from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import ActivityLog
from app.schemas.events import AuditEvent


_event_adapter = TypeAdapter(AuditEvent)


class AuditService:
    """
    Audit service for earnings and brand access changes.

    Entries are added to the caller's session and flushed, so they commit or
    roll back together with the change they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        event: AuditEvent,
        actor_email: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ActivityLog:
        """
        Persist one audit event.

        Args:
            event: One of the event variants from app.schemas.events
            actor_email: Email of the user performing the action, None for system events
            description: Human-readable description

        Returns:
            The created ActivityLog entry
        """
        entry = ActivityLog(
            actor_email=actor_email,
            event_type=event.event_type,
            brand_id=getattr(event, "brand_id", None),
            user_id=getattr(event, "user_id", None),
            payload=event.model_dump(mode="json"),
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_events(
        self,
        brand_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        event_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[ActivityLog]:
        """List audit entries, newest first."""
        query = select(ActivityLog)
        if brand_id:
            query = query.where(ActivityLog.brand_id == brand_id)
        if user_id:
            query = query.where(ActivityLog.user_id == user_id)
        if event_type:
            query = query.where(ActivityLog.event_type == event_type)
        query = query.order_by(ActivityLog.created_at.desc()).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    def parse(entry: ActivityLog) -> AuditEvent:
        """Rebuild the typed event from a stored entry."""
        return _event_adapter.validate_python(entry.payload)
