"""
Notifiers invoked once a scan job reaches a terminal state.
"""

import logging
from typing import Dict, List, Optional

import httpx

from .collaborators import Notification, NotificationType, Notifier
from .logging_config import get_scan_logger
from .models import JobStatus, ScanJob

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10.0


def notifications_for_job(job: ScanJob) -> List[Notification]:
    """Notifications describing a finished job.

    A completed job always yields ``scan_complete``, plus a ``security_alert``
    when high severity issues were found. A failed job yields ``error``.
    """
    counts = job.issue_counts
    metadata = {
        'job_id': job.id,
        'repository_id': job.repository_id,
        'issues': counts.to_dict(),
    }

    if job.status == JobStatus.FAILED:
        return [Notification(
            type=NotificationType.ERROR,
            title="Repository Scan Failed",
            message=f"Scan of {job.repository_id} failed: {job.error or 'unknown error'}",
            metadata=dict(metadata, error=job.error),
            priority="high",
        )]

    notifications = [Notification(
        type=NotificationType.SCAN_COMPLETE,
        title="Repository Scan Complete",
        message=(f"Scan of {job.repository_id} finished. Found {counts.high} high, "
                 f"{counts.medium} medium, and {counts.low} low severity issues."),
        metadata=dict(metadata, risk_score=job.summary.risk_score if job.summary else None),
        priority="medium",
    )]
    if counts.high > 0:
        notifications.append(Notification(
            type=NotificationType.SECURITY_ALERT,
            title="High Severity Issues Found",
            message=f"{counts.high} high severity issues in {job.repository_id} need attention.",
            metadata=metadata,
            priority="high",
        ))
    return notifications


class LoggingNotifier(Notifier):
    """Writes notifications to the scan log."""

    def __init__(self):
        self.scan_logger = get_scan_logger()

    async def notify(self, user_id: Optional[str], notification: Notification) -> None:
        self.scan_logger.info(notification.title,
                              user_id=user_id,
                              notification_type=notification.type,
                              priority=notification.priority,
                              notification_message=notification.message,
                              metadata=notification.metadata)


class WebhookNotifier(Notifier):
    """POSTs each notification as JSON to a fixed URL."""

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None,
                 headers: Optional[Dict[str, str]] = None,
                 timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS):
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.headers = dict(headers or {})

    async def notify(self, user_id: Optional[str], notification: Notification) -> None:
        """Deliver one notification.

        Raises:
            httpx.HTTPError: If the request fails or the endpoint answers with an error
        """
        payload = dict(notification.to_dict(), user_id=user_id)
        response = await self._client.post(self.url, json=payload, headers=self.headers)
        response.raise_for_status()
        logger.debug(f"Delivered {notification.type} notification to {self.url}")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
