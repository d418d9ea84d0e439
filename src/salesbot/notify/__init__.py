"""Notification layer -- sale message rendering and delivery."""

from salesbot.notify.discord import DiscordNotifier, render_sale_embed
from salesbot.notify.sink import NotificationSink

__all__ = ["DiscordNotifier", "NotificationSink", "render_sale_embed"]
