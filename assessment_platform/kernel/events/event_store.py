"""
Event Store service for append-only audit logging.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_platform.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Appends audit rows to the caller's session. Nothing is flushed here;
    the row commits or rolls back with the change it describes.

    Usage:
        await EventStore(session).log(
            event_type=EventType.ASSESSMENT_STARTED,
            entity_type="assessment_session",
            entity_id=test_session.id,
            user_id=user.id,
            payload={"step": 1},
        )
    """
    
    def __init__(self, session: AsyncSession):
        self.session = session
    
    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EventLog:
        """Append one event; returns the pending EventLog row."""
        event = EventLog(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=_to_json(payload) if payload else {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(event)
        return event
    
    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Events for one entity, newest first."""
        query = select(EventLog).where(
            and_(
                EventLog.entity_type == entity_type,
                EventLog.entity_id == entity_id,
            )
        )
        if event_types:
            query = query.where(EventLog.event_type.in_(event_types))
        
        query = query.order_by(desc(EventLog.created_at)).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
    
    async def count_events(
        self,
        event_type: Optional[EventType] = None,
        user_id: Optional[uuid.UUID] = None,
        since: Optional[datetime] = None,
    ) -> int:
        query = select(func.count(EventLog.id))
        if event_type:
            query = query.where(EventLog.event_type == event_type)
        if user_id:
            query = query.where(EventLog.user_id == user_id)
        if since:
            query = query.where(EventLog.created_at >= since)
        
        result = await self.session.execute(query)
        return result.scalar() or 0


def _to_json(value: Any) -> Any:
    """Recursively convert UUIDs, datetimes and enums to JSON-safe values."""
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
