"""Notification channels and the delivery observer."""

from schoolbell.notifications.channels import NotificationChannel
from schoolbell.notifications.delivery import DeliveryService
from schoolbell.notifications.telegram_channel import TelegramChannel

__all__ = [
    "DeliveryService",
    "NotificationChannel",
    "TelegramChannel",
]
