"""Webhook notifications (Slack-compatible ``{"text": ...}`` body)."""
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class NotificationSink:
    """Fire-and-forget delivery of short text messages to a webhook URL."""

    def __init__(
        self,
        url: Optional[str],
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url or None
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self.url is not None

    def notify(self, text: str) -> None:
        """Post *text* to the webhook. Errors are logged, never raised."""
        if not self.enabled:
            logger.debug("Webhook not configured, skipping: %s", text)
            return

        try:
            response = self.session.post(self.url, json={"text": text}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Webhook post failed: %s", e)
            return

        logger.info("message from webhook: %s", response.text)

    def close(self) -> None:
        self.session.close()
