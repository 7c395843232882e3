"""Best-effort notification delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import DeliveryError
from .models import NotificationEvent
from .sink import EventSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt; never raised, only returned."""

    delivered: bool
    skipped: bool = False
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def label(self) -> str:
        if self.skipped:
            return "disabled"
        return "delivered" if self.delivered else "failed"


class NotificationEmitter:
    """Sends each event once; failures are logged and returned, never propagated.

    An emitter without a sink is disabled: ``emit`` reports a skipped delivery.
    """

    def __init__(self, sink: Optional[EventSink] = None) -> None:
        self.sink = sink
        self.attempts = 0

    @property
    def enabled(self) -> bool:
        return self.sink is not None

    def emit(self, event: NotificationEvent) -> DeliveryResult:
        self.attempts += 1
        if self.sink is None:
            logger.info("🔕 Notifications disabled, not sending %r", event.title)
            return DeliveryResult(delivered=False, skipped=True)

        try:
            status_code = self.sink.send(event)
        except DeliveryError as exc:
            logger.warning("⚠️  Notification %r not delivered: %s", event.title, exc)
            return DeliveryResult(delivered=False, status_code=exc.status_code, error=str(exc))
        except Exception as exc:
            logger.warning(
                "⚠️  Notification %r not delivered, sink raised %s: %s",
                event.title,
                type(exc).__name__,
                exc,
            )
            return DeliveryResult(delivered=False, error=f"{type(exc).__name__}: {exc}")

        logger.info("📣 Notification %r delivered", event.title)
        return DeliveryResult(delivered=True, status_code=status_code)
