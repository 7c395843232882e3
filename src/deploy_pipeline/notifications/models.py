"""Notification event model and tag construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..utils.clock import format_rfc3339, utc_now


class Severity(str, Enum):
    INFO = "info"
    ERROR = "error"


def build_tags(
    source: str,
    env: str,
    repo: str,
    status: str,
    extra: Iterable[str] = (),
) -> List[str]:
    """Required identity tags first, then extras in the order given.

    No deduplication happens here; callers must not pass conflicting keys.
    """
    tags = [
        f"source:{source}",
        f"env:{env}",
        f"repo:{repo}",
        f"status:{status}",
    ]
    tags.extend(extra)
    return tags


@dataclass(frozen=True)
class NotificationEvent:
    """Ephemeral event describing a pipeline or deployment outcome."""

    title: str
    text: str
    tags: Tuple[str, ...]
    severity: Severity = Severity.INFO
    timestamp: str = field(default_factory=lambda: format_rfc3339(utc_now()))

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def tag_set(self) -> frozenset:
        return frozenset(self.tags)

    def to_payload(self, source_type_name: str) -> Dict[str, Any]:
        """JSON body expected by the events API."""
        return {
            "title": self.title,
            "text": self.text,
            "tags": list(self.tags),
            "alert_type": self.severity.value,
            "source_type_name": source_type_name,
        }


def deployment_event(
    environment: str,
    succeeded: bool,
    *,
    source: str,
    repo: str,
    extra_tags: Iterable[str] = (),
    detail: Optional[str] = None,
) -> NotificationEvent:
    """Build the post-deploy status event."""
    status = "success" if succeeded else "failure"
    text = f"Deployment to {environment} completed with status: {status}"
    if detail:
        text = f"{text}\n{detail}"
    return NotificationEvent(
        title=f"Deployment {status}: {environment}",
        text=text,
        tags=tuple(build_tags(source, environment, repo, status, extra_tags)),
        severity=Severity.INFO if succeeded else Severity.ERROR,
    )
