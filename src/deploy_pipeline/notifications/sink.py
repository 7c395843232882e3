"""Event sinks the emitter delivers to."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..errors import DeliveryError
from .models import NotificationEvent

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Abstract destination for notification events."""

    @abstractmethod
    def send(self, event: NotificationEvent) -> int:
        """
        Deliver one event.

        Returns:
            The HTTP status code (or equivalent acknowledgement code).

        Raises:
            DeliveryError: on any transport failure or rejection.
        """


class DatadogEventSink(EventSink):
    """Posts events to the Datadog v1 events API."""

    def __init__(
        self,
        api_key: str,
        app_key: Optional[str] = None,
        endpoint: str = "https://api.datadoghq.com/api/v1/events",
        source_type_name: str = "github",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Datadog API key is required")
        self.endpoint = endpoint
        self.source_type_name = source_type_name
        self.timeout = timeout
        self.session = session or requests.Session()
        self._headers = {
            "Content-Type": "application/json",
            "DD-API-KEY": api_key,
        }
        if app_key:
            self._headers["DD-APPLICATION-KEY"] = app_key

    def send(self, event: NotificationEvent) -> int:
        payload = event.to_payload(self.source_type_name)
        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers=self._headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise DeliveryError(f"Datadog request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"Datadog rejected event with status {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug("Datadog accepted event %r", event.title)
        return response.status_code
