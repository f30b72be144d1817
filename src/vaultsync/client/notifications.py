"""Desktop notices for vaultsync.

This module provides:
- send_notification: native OS notification (notify-send, osascript,
  PowerShell toast), logged when none is available
- Notifier: the notify(message) callback handed to the sync engine and the
  config orchestrator
"""

from __future__ import annotations

import logging
import platform
import subprocess
from dataclasses import dataclass
from enum import Enum, auto

logger = logging.getLogger(__name__)

APP_NAME = "vaultsync"


class NotificationType(Enum):
    """Severity of a notice."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()


@dataclass
class Notification:
    """A notice to display."""

    title: str
    message: str
    type: NotificationType = NotificationType.INFO


def _linux_command(notification: Notification) -> list[str]:
    urgency = "critical" if notification.type is NotificationType.ERROR else "normal"
    return [
        "notify-send",
        "--urgency", urgency,
        "--app-name", APP_NAME,
        notification.title,
        notification.message,
    ]


def _macos_command(notification: Notification) -> list[str]:
    title = notification.title.replace('"', '\\"')
    message = notification.message.replace('"', '\\"')
    return ["osascript", "-e", f'display notification "{message}" with title "{title}"']


def _windows_command(notification: Notification) -> list[str]:
    title = notification.title.replace("'", "''")
    message = notification.message.replace("'", "''")
    script = (
        "[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, "
        "ContentType = WindowsRuntime] | Out-Null;"
        "$xml = [Windows.UI.Notifications.ToastNotificationManager]::"
        "GetTemplateContent([Windows.UI.Notifications.ToastTemplateType]::ToastText02);"
        "$text = $xml.GetElementsByTagName('text');"
        f"$text.Item(0).AppendChild($xml.CreateTextNode('{title}')) | Out-Null;"
        f"$text.Item(1).AppendChild($xml.CreateTextNode('{message}')) | Out-Null;"
        "$toast = [Windows.UI.Notifications.ToastNotification]::new($xml);"
        f"[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier('{APP_NAME}').Show($toast)"
    )
    return ["powershell", "-ExecutionPolicy", "Bypass", "-Command", script]


_COMMANDS = {
    "Linux": _linux_command,
    "Darwin": _macos_command,
    "Windows": _windows_command,
}


def send_notification(notification: Notification) -> bool:
    """Show a native notification.

    Args:
        notification: The notice to show.

    Returns:
        True if the platform tool accepted it, False otherwise.
    """
    system = platform.system()
    build = _COMMANDS.get(system)
    if build is None:
        logger.warning(f"Notifications not supported on {system}")
        return False

    try:
        subprocess.run(build(notification), capture_output=True, check=True)
    except FileNotFoundError:
        logger.debug(f"No notification tool on {system}")
        return False
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Notification failed: {e}")
        return False
    return True


def notify(message: str, type: NotificationType = NotificationType.INFO) -> bool:
    """Show a notice titled with the app name."""
    return send_notification(Notification(title=APP_NAME, message=message, type=type))


def notify_notes_synced(count: int) -> bool:
    """Notice for notes written during a cycle; silent when count is 0."""
    if count <= 0:
        return False
    return send_notification(Notification(
        title="vaultsync",
        message=f"Synced {count} note(s)",
    ))


def notify_reauth_required() -> bool:
    """Notice that the refresh token is gone and the user must reconnect."""
    return send_notification(Notification(
        title="vaultsync - Reconnect required",
        message="Auth token expired. Run 'vaultsync connect' with a new token.",
        type=NotificationType.ERROR,
    ))


def notify_error(message: str) -> bool:
    """Error notice.

    Args:
        message: Error message.

    Returns:
        True if notification was sent.
    """
    return send_notification(Notification(
        title="vaultsync - Error",
        message=message,
        type=NotificationType.ERROR,
    ))


class Notifier:
    """notify(message) callback that logs every notice and optionally shows it."""

    def __init__(self, desktop: bool = True) -> None:
        self.desktop = desktop

    def __call__(self, message: str) -> None:
        logger.info(f"Notice: {message}")
        if self.desktop:
            notify(message)
