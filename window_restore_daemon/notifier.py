"""Desktop notifications via notify-send.

The daemon runs inside the user's session, so notify-send reaches the
session bus directly.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class DesktopNotifier:
    """Send desktop notifications for saves, restores and storage problems.

    Example:
        >>> notifier = DesktopNotifier()
        >>> await notifier.notify("Layout saved", "Slot 1: 4 windows")
    """

    def __init__(self, app_name: str = "Window Restore", urgency: str = "low",
                 icon: str = "preferences-desktop-display", timeout_ms: int = 4000):
        """Initialize notifier.

        Args:
            app_name: Application name shown in notification.
            urgency: Notification urgency (low, normal, critical).
            icon: Icon name or path.
            timeout_ms: Display timeout in milliseconds.
        """
        self.app_name = app_name
        self.urgency = urgency
        self.icon = icon
        self.timeout_ms = timeout_ms

    def build_command(self, summary: str, body: str = "") -> list:
        cmd = [
            "notify-send",
            "--app-name",
            self.app_name,
            "--urgency",
            self.urgency,
            "--icon",
            self.icon,
            "--expire-time",
            str(self.timeout_ms),
            summary,
        ]
        if body:
            cmd.append(body)
        return cmd

    async def notify(self, summary: str, body: str = "") -> bool:
        """Send a desktop notification.

        Returns:
            True if notification was sent successfully.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(summary, body),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("notify-send not found")
            return False

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=10)
        except asyncio.TimeoutError:
            proc.kill()
            logger.error("notify-send timed out")
            return False

        if proc.returncode != 0:
            logger.error("notify-send failed: %s", stderr.decode(errors="replace").strip())
            return False

        logger.debug("Notification sent: %s", summary)
        return True
