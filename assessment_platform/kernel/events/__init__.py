"""
Append-only audit logging.
"""

from assessment_platform.kernel.events.event_store import EventStore

__all__ = ["EventStore"]
