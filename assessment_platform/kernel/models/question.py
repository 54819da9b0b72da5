"""
Question bank model.
"""

import uuid
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, JSON, String, Text, Uuid
from sqlalchemy import text as sql_text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assessment_platform.kernel.models.base import Base, TimestampMixin, generate_uuid
from assessment_platform.kernel.models.competency import Competency


class Question(Base, TimestampMixin):
    """
    A four-option multiple-choice question at one level of one competency.

    Rows referenced by an in-progress session are never edited in place;
    an edit retires the row and inserts a replacement pointing back at it
    through ``supersedes_id``.
    """
    
    __tablename__ = "questions"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    competency_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("competencies.id"),
        nullable=False,
        index=True,
    )
    level: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    correct_option_index: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    supersedes_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("questions.id"),
        nullable=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)

    competency: Mapped[Competency] = relationship(lazy="joined")

    __table_args__ = (
        Index(
            "uq_questions_active_competency_level",
            "competency_id",
            "level",
            unique=True,
            sqlite_where=sql_text("is_active = 1"),
            postgresql_where=sql_text("is_active"),
        ),
    )
    
    def __repr__(self) -> str:
        return f"<Question {self.level} {self.id}>"
