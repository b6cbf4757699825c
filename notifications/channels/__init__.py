"""
Alert notification channels
"""
from alerts_core.config import WorkerConfig
from notifications.channels.base import AlertNotifier, build_alert_blocks
from notifications.channels.slack_bot_notifier import SlackBotNotifier
from notifications.channels.slack_notifier import SlackWebhookNotifier


def build_notifier(config: WorkerConfig) -> AlertNotifier:
    """Pick the Slack delivery strategy configured for this worker"""
    if config.slack_delivery == 'webhook':
        return SlackWebhookNotifier(
            webhook_url=config.slack_webhook_url,
            dashboard_base_url=config.app_base_url
        )
    return SlackBotNotifier(
        bot_token=config.slack_bot_token,
        channel_id=config.slack_channel_id
    )


__all__ = [
    'AlertNotifier',
    'SlackBotNotifier',
    'SlackWebhookNotifier',
    'build_alert_blocks',
    'build_notifier',
]
