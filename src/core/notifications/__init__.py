from src.core.notifications.dispatcher import NotificationDispatcher, notifications

__all__ = ["NotificationDispatcher", "notifications"]
