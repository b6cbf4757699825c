"""
Slack Notifier
==============
Send triggered-alert notifications to Slack via an incoming webhook.

Features:
- Webhook-based messaging (no OAuth required)
- Rich formatting with blocks
- Link back to the alert dashboard
"""
from typing import Any, Dict, Optional

import httpx

from alerts_core.errors import DeliveryError
from alerts_core.models import AlertDetails
from notifications.channels.base import AlertNotifier, build_alert_blocks


class SlackWebhookNotifier(AlertNotifier):
    """
    Send notifications to Slack via webhooks
    """

    channel = 'slack_webhook'

    def __init__(
        self,
        webhook_url: Optional[str],
        dashboard_base_url: str = 'http://localhost:3000',
        **kwargs
    ):
        """
        Initialize Slack webhook notifier

        Args:
            webhook_url: Incoming webhook URL
            dashboard_base_url: Application URL used for the dashboard button
        """
        super().__init__(**kwargs)
        self.webhook_url = webhook_url
        self.dashboard_base_url = dashboard_base_url.rstrip('/')

    def validate_config(self) -> bool:
        if not self.webhook_url:
            self.logger.error("SLACK_WEBHOOK_URL is not defined. Cannot send notification.")
            return False
        return True

    def format_message(self, details: AlertDetails) -> Dict[str, Any]:
        blocks = build_alert_blocks(details)
        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Alert Dashboard"},
                    "url": f"{self.dashboard_base_url}/alert"
                }
            ]
        })

        return {
            "text": f"🚨 Alert Triggered: {details.name}",
            "blocks": blocks
        }

    async def _deliver(self, message: Dict[str, Any]) -> None:
        try:
            async with self._client() as client:
                response = await client.post(self.webhook_url, json=message)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Slack webhook request failed: {e}") from e

        if response.status_code != 200:
            raise DeliveryError(f"Slack API returned an error: {response.status_code} {response.text}")


__all__ = ['SlackWebhookNotifier']
