"""
Kernel Data Models

SQLAlchemy models shared by the identity kernel and the engines.
"""

from assessment_platform.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow, ensure_utc
from assessment_platform.kernel.models.user import User, UserRole, AssessmentStatus, RefreshToken
from assessment_platform.kernel.models.competency import Competency
from assessment_platform.kernel.models.question import Question
from assessment_platform.kernel.models.assessment import (
    AssessmentSession,
    SessionStatus,
    QuestionResponse,
    ResponseResolution,
    TERMINAL_STATUSES,
)
from assessment_platform.kernel.models.certificate import Certificate
from assessment_platform.kernel.models.notification import NotificationOutbox, OutboxStatus
from assessment_platform.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    "ensure_utc",
    # User
    "User",
    "UserRole",
    "AssessmentStatus",
    "RefreshToken",
    # Catalog
    "Competency",
    "Question",
    # Assessment
    "AssessmentSession",
    "SessionStatus",
    "QuestionResponse",
    "ResponseResolution",
    "TERMINAL_STATUSES",
    "Certificate",
    # Notifications
    "NotificationOutbox",
    "OutboxStatus",
    # Event Log
    "EventLog",
    "EventType",
]
