"""Best-effort telemetry notifications."""

from .emitter import DeliveryResult, NotificationEmitter
from .models import NotificationEvent, Severity, build_tags, deployment_event
from .sink import DatadogEventSink, EventSink

__all__ = [
    "DatadogEventSink",
    "DeliveryResult",
    "EventSink",
    "NotificationEmitter",
    "NotificationEvent",
    "Severity",
    "build_tags",
    "deployment_event",
]
