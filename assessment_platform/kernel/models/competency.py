"""
Competency catalog model.
"""

import uuid
from typing import Optional

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from assessment_platform.kernel.models.base import Base, TimestampMixin, generate_uuid


class Competency(Base, TimestampMixin):
    """
    A named skill area that questions are grouped under.

    Names are unique regardless of case; ``name_key`` holds the folded form
    so the constraint is enforced by the database on every backend.
    """
    
    __tablename__ = "competencies"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_key: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        value = value.strip()
        self.name_key = value.casefold()
        return value
    
    def __repr__(self) -> str:
        return f"<Competency {self.name}>"
