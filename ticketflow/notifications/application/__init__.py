"""
Notifications Application Layer
===============================

Delivery contracts (INotifier, IEmailSender) and the NotificationDispatcher.
"""

from ticketflow.notifications.application.services import (
    EmailKind,
    IEmailSender,
    INotifier,
    NotificationDispatcher,
    NotificationEvent,
)

__all__ = [
    "NotificationDispatcher",
    "NotificationEvent",
    "EmailKind",
    "INotifier",
    "IEmailSender",
]
