"""
Base interface for alert notification channels
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from alerts_core.metrics import NOTIFICATIONS
from alerts_core.models import AlertDetails

logger = logging.getLogger(__name__)


def build_alert_blocks(details: AlertDetails) -> List[Dict[str, Any]]:
    """Slack blocks shared by every delivery strategy"""
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*🚨 Alert Triggered: {details.name}*"
            }
        },
        {
            "type": "section",
            "fields": [
                {
                    "type": "mrkdwn",
                    "text": f"*Condition Met:*\n`{details.current_value} {details.operator} {details.threshold}`"
                },
                {
                    "type": "mrkdwn",
                    "text": "*Status:*\n🔥 Triggered"
                }
            ]
        }
    ]


class AlertNotifier(ABC):
    """
    Delivers triggered-alert messages.

    notify() never raises: a delivery problem is logged and reported as False,
    because the rule was still evaluated and recorded correctly.
    """

    channel = 'slack'

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.timeout = timeout
        self._transport = transport
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def validate_config(self) -> bool:
        """Log and return False when credentials are missing"""

    @abstractmethod
    def format_message(self, details: AlertDetails) -> Dict[str, Any]:
        """Build the request body for this strategy"""

    @abstractmethod
    async def _deliver(self, message: Dict[str, Any]) -> None:
        """Send message; raise DeliveryError on failure"""

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def notify(self, details: AlertDetails) -> bool:
        """
        Send a triggered-alert notification

        Returns:
            True if delivered
        """
        if not self.validate_config():
            NOTIFICATIONS.labels(channel=self.channel, result='not_configured').inc()
            return False

        try:
            await self._deliver(self.format_message(details))
        except Exception as e:
            self.logger.error(f"Failed to send Slack notification for rule {details.id}: {e}")
            NOTIFICATIONS.labels(channel=self.channel, result='failed').inc()
            return False

        self.logger.info(f"Slack notification sent successfully for rule {details.id}")
        NOTIFICATIONS.labels(channel=self.channel, result='sent').inc()
        return True

    def __repr__(self):
        return f"{self.__class__.__name__}(channel={self.channel})"
