from .base import Notifier, ResetEmail
from .mailers import (
    LogNotifier,
    NotificationError,
    ResendNotifier,
    SmtpNotifier,
    build_notifier,
)

__all__ = [
    "LogNotifier",
    "NotificationError",
    "Notifier",
    "ResendNotifier",
    "ResetEmail",
    "SmtpNotifier",
    "build_notifier",
]
