"""
Failure notification.

Escalates a failed run to on-call (PagerDuty Events API v2, production
only) and to error tracking (Sentry, whenever a DSN is configured).
Delivery problems are logged; they never mask the original failure.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

import httpx
import sentry_sdk

from snapverify.config.models import NotificationConfig, SnapverifyConfig

logger = logging.getLogger(__name__)

PAGERDUTY_TIMEOUT_SECONDS = 10.0


def init_sentry(config: SnapverifyConfig) -> bool:
    """Initialize Sentry error tracking if a DSN is configured.

    Args:
        config: Full configuration (DSN and environment)

    Returns:
        True if Sentry was initialized
    """
    dsn = config.notifications.sentry_dsn
    if dsn is None or not dsn.get_secret_value():
        return False

    sentry_sdk.init(
        dsn=dsn.get_secret_value(),
        environment=config.environment,
        server_name=config.node_name,
    )
    logger.debug("Sentry integration initialized")
    return True


class FailureNotifier:
    """Sends one escalation per failed run.

    Example:
        notifier = FailureNotifier.from_config(config)
        await notifier.notify(exc)
    """

    def __init__(
        self,
        config: NotificationConfig,
        node_name: str,
        environment: str,
        page_on_call: bool,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            config: Paging and error tracking settings
            node_name: This node's name (reported as the alert source)
            environment: Deployment environment label
            page_on_call: Whether failures page on-call (production only)
            client: Optional HTTP client (used by tests)
        """
        self._config = config
        self._node_name = node_name
        self._environment = environment
        self._page_on_call = page_on_call
        self._client = client

    @classmethod
    def from_config(
        cls,
        config: SnapverifyConfig,
        client: httpx.AsyncClient | None = None,
    ) -> FailureNotifier:
        """Build a notifier from the root configuration."""
        return cls(
            config=config.notifications,
            node_name=config.node_name,
            environment=config.environment,
            page_on_call=config.is_production,
            client=client,
        )

    @property
    def title(self) -> str:
        """Alert title."""
        return f"{self._environment} Elasticsearch snapshot verification failed"

    @property
    def pagerduty_enabled(self) -> bool:
        """Whether failures are paged."""
        key = self._config.pagerduty_api_key
        return self._page_on_call and key is not None and bool(key.get_secret_value())

    @property
    def sentry_enabled(self) -> bool:
        """Whether failures are reported to Sentry."""
        dsn = self._config.sentry_dsn
        return dsn is not None and bool(dsn.get_secret_value())

    def build_event(self, exc: BaseException) -> dict[str, Any]:
        """Build the PagerDuty trigger event for a failure."""
        return {
            "routing_key": self._config.pagerduty_api_key.get_secret_value()
            if self._config.pagerduty_api_key
            else "",
            "event_action": "trigger",
            "client": self._node_name,
            "payload": {
                "summary": self.title,
                "source": self._node_name,
                "severity": "critical",
                "custom_details": {
                    "message": str(exc),
                    "error_type": type(exc).__name__,
                    "traceback": "".join(
                        traceback.format_exception(type(exc), exc, exc.__traceback__)
                    ),
                },
            },
        }

    async def notify(self, exc: BaseException) -> None:
        """Escalate a failure.

        Never raises: problems delivering the notification are logged.

        Args:
            exc: The exception that ended the run
        """
        if self.sentry_enabled:
            try:
                sentry_sdk.capture_exception(exc)
            except Exception as e:
                logger.error("Failed to report to Sentry: %s", e)

        if not self._page_on_call:
            logger.debug("Not paging on-call outside production (%s)", self._environment)
            return
        if not self.pagerduty_enabled:
            logger.warning("No PagerDuty API key configured; on-call not paged")
            return

        try:
            await self._send_event(self.build_event(exc))
        except Exception as e:
            logger.error("Failed to page on-call: %s", e)
        else:
            logger.info("Paged on-call: %s", self.title)

    async def _send_event(self, event: dict[str, Any]) -> None:
        """POST an event to the Events API."""
        url = self._config.pagerduty_events_url
        if self._client is not None:
            response = await self._client.post(url, json=event)
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=PAGERDUTY_TIMEOUT_SECONDS) as client:
            response = await client.post(url, json=event)
            response.raise_for_status()
