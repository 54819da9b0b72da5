"""
Issued certificates. Immutable once written.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from assessment_platform.kernel.models.base import Base, generate_uuid, utcnow


class Certificate(Base):
    """Record of the level a user reached in one completed session."""
    
    __tablename__ = "certificates"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("assessment_sessions.id"),
        nullable=False,
        unique=True,
    )
    level_achieved: Mapped[str] = mapped_column(String(2), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[int] = mapped_column(Integer, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    
    def __repr__(self) -> str:
        return f"<Certificate {self.level_achieved} {self.id}>"
