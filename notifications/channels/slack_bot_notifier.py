"""
Slack Bot Notifier
==================
Post triggered-alert notifications with a bot token through chat.postMessage.
All scheduled alerts go to one configured channel.
"""
from typing import Any, Dict, Optional

import httpx

from alerts_core.errors import DeliveryError
from alerts_core.models import AlertDetails
from notifications.channels.base import AlertNotifier, build_alert_blocks

SLACK_POST_MESSAGE_URL = 'https://slack.com/api/chat.postMessage'


class SlackBotNotifier(AlertNotifier):
    """Send notifications with a Slack bot token"""

    channel = 'slack_bot'

    def __init__(
        self,
        bot_token: Optional[str],
        channel_id: Optional[str],
        api_url: str = SLACK_POST_MESSAGE_URL,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.bot_token = bot_token
        self.channel_id = channel_id
        self.api_url = api_url

    def validate_config(self) -> bool:
        if not self.bot_token:
            self.logger.error("SLACK_BOT_TOKEN is not defined. Cannot send notification.")
            return False
        if not self.channel_id:
            self.logger.error("Slack Channel ID is not defined. Cannot send notification.")
            return False
        return True

    def format_message(self, details: AlertDetails) -> Dict[str, Any]:
        return {
            "channel": self.channel_id,
            "text": f"Alert Triggered: {details.name}",  # Fallback text for notifications
            "blocks": build_alert_blocks(details)
        }

    async def _deliver(self, message: Dict[str, Any]) -> None:
        self.logger.info(f"Sending message to Slack channel {self.channel_id} via Bot Token...")
        try:
            async with self._client() as client:
                response = await client.post(
                    self.api_url,
                    json=message,
                    headers={'Authorization': f'Bearer {self.bot_token}'}
                )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Slack API request failed: {e}") from e

        if response.status_code != 200:
            raise DeliveryError(f"Slack API returned an error: {response.status_code} {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise DeliveryError(f"Slack API returned an unreadable body: {e}") from e

        if not body.get('ok'):
            raise DeliveryError(f"Slack API rejected the message: {body.get('error', 'unknown_error')}")


__all__ = ['SlackBotNotifier']
