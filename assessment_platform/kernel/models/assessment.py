"""
Assessment session aggregate: one attempt at one step, plus its per-question
responses.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from assessment_platform.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class SessionStatus(str, Enum):
    """Lifecycle of an assessment session."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED_NO_RETAKE = "failed_no_retake"
    ABANDONED = "abandoned"


# Tuple, not set: rows loaded from the database hold plain strings, which
# compare equal to the members but do not hash like them.
TERMINAL_STATUSES = (
    SessionStatus.COMPLETED,
    SessionStatus.FAILED_NO_RETAKE,
    SessionStatus.ABANDONED,
)


class ResponseResolution(str, Enum):
    """A response is resolved exactly once, either answered or skipped."""
    UNRESOLVED = "unresolved"
    ANSWERED = "answered"
    SKIPPED = "skipped"


class AssessmentSession(Base, TimestampMixin):
    """
    A user's attempt at one step.

    ``question_order`` is fixed at creation. ``current_question_index`` is
    the cursor; ``furthest_question_index`` only ever grows. Every write
    bumps ``version_id`` and is rejected if another writer got there first.
    """
    
    __tablename__ = "assessment_sessions"
    
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
    step: Mapped[int] = mapped_column(Integer, nullable=False)
    levels_tested: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    question_order: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)

    # Cursor
    current_question_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_question_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True)
    furthest_question_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    questions_answered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Outcome (set on completion)
    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        default=SessionStatus.IN_PROGRESS,
        nullable=False,
    )
    correct_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    level_achieved: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    can_proceed_to_next_step: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    blocks_retake: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_question_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    time_limit_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        # At most one in-progress session per (user, step)
        Index(
            "uq_assessment_sessions_user_step_in_progress",
            "user_id",
            "step",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
        Index("ix_assessment_sessions_user_status", "user_id", "status"),
    )

    @property
    def is_in_progress(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
    
    def __repr__(self) -> str:
        return f"<AssessmentSession step={self.step} {self.status} {self.id}>"


class QuestionResponse(Base):
    """One row per question of a session, created eagerly at session start."""
    
    __tablename__ = "question_responses"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("assessment_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("questions.id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution: Mapped[ResponseResolution] = mapped_column(
        String(20),
        default=ResponseResolution.UNRESOLVED,
        nullable=False,
    )
    selected_option_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_correct: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    question_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    answered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_question_responses_session_question"),
        UniqueConstraint("session_id", "position", name="uq_question_responses_session_position"),
    )

    @property
    def is_resolved(self) -> bool:
        return self.resolution != ResponseResolution.UNRESOLVED
    
    def __repr__(self) -> str:
        return f"<QuestionResponse #{self.position} {self.resolution}>"
