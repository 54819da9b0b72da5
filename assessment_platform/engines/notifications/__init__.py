"""
Email notifications through a transactional outbox.

Import the dispatcher and mailer from their modules; this package only
exposes the outbox writer, which the identity kernel depends on.
"""

from assessment_platform.engines.notifications.outbox import Outbox, TemplateKey

__all__ = ["Outbox", "TemplateKey"]
