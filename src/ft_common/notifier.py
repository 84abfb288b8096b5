"""Buyer/vendor notifications.

Delivery (SMS, email, push) belongs to another service; this side only
emits a template name, a recipient and a context dict. Sends happen after the
owning transaction has committed and a failed send never fails the caller.
"""

import logging
from typing import Any, Protocol

logger = logging.getLogger("ft.notify")


class Notifier(Protocol):
    async def send(self, template: str, recipient_id: str, context: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the notification to the log."""

    async def send(self, template: str, recipient_id: str, context: dict[str, Any]) -> None:
        logger.info("Notify %s -> %s %s", template, recipient_id, context)


async def notify_safely(
    notifier: Notifier, template: str, recipient_id: str, context: dict[str, Any]
) -> None:
    try:
        await notifier.send(template, recipient_id, context)
    except Exception:
        logger.exception("Notification %s to %s failed", template, recipient_id)
