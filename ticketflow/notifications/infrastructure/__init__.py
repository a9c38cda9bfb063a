"""
Notifications Infrastructure Layer
==================================

httpx-based webhook and email relay clients.
"""

from ticketflow.notifications.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    EmailRelayClient,
    WebhookNotifier,
    render_email,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "WebhookNotifier",
    "EmailRelayClient",
    "render_email",
]
