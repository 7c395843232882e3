"""Post-deploy reachability check."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import requests

from .base import HealthChecker

logger = logging.getLogger(__name__)


class HttpHealthChecker(HealthChecker):
    """Waits for propagation once, then issues a single GET.

    There is no retry loop: the wait and the request are both bounded.
    """

    def __init__(
        self,
        propagation_delay: float = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.propagation_delay = propagation_delay
        self.session = session or requests.Session()
        self._sleep = sleep

    def check(self, url: str, timeout: int) -> bool:
        if self.propagation_delay > 0:
            logger.info("⏳ Waiting %ss for deployment to propagate", self.propagation_delay)
            self._sleep(self.propagation_delay)

        logger.info("Testing deployment at: %s", url)
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.RequestException as exc:
            logger.warning("Health check request failed: %s", exc)
            return False
        # curl -f semantics: any status below 400 counts as reachable
        return response.status_code < 400
