"""
Desktop notifications.

One ``Notifier`` per platform, picked at runtime. Notifications are a
courtesy: a missing helper binary or a failing command is logged, never
raised.
"""

from __future__ import annotations

import logging
import platform
import subprocess
from abc import ABC, abstractmethod

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger("lazyfav.notify")


class Notifier(ABC):
    """Shows a title + body message to the user."""

    name: str = "base"

    @abstractmethod
    def notify(self, title: str, body: str) -> None:
        ...


class CommandNotifier(Notifier):
    """Notifier that shells out to a platform tool."""

    def command(self, title: str, body: str) -> list[str]:
        raise NotImplementedError

    def notify(self, title: str, body: str) -> None:
        cmd = self.command(title, body)
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("%s notification failed: %s", self.name, e)


class LinuxNotifier(CommandNotifier):
    name = "notify-send"

    def command(self, title: str, body: str) -> list[str]:
        return ["notify-send", title, body]


class MacNotifier(CommandNotifier):
    name = "osascript"

    def command(self, title: str, body: str) -> list[str]:
        script = f"display notification {_applescript_str(body)} with title {_applescript_str(title)}"
        return ["osascript", "-e", script]


class WindowsNotifier(CommandNotifier):
    """Uses the BurntToast PowerShell module."""

    name = "burnttoast"

    def command(self, title: str, body: str) -> list[str]:
        script = f"New-BurntToastNotification -Text {_powershell_str(title)}, {_powershell_str(body)}"
        return ["powershell", "-NoProfile", "-Command", script]


class ConsoleNotifier(Notifier):
    """Prints to the terminal; used when desktop notifications are off."""

    name = "console"

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def notify(self, title: str, body: str) -> None:
        self.console.print(f"[bold]{escape(title)}[/bold]\n{escape(body)}", highlight=False)


_PLATFORM_NOTIFIERS: dict[str, type[Notifier]] = {
    "Linux": LinuxNotifier,
    "Darwin": MacNotifier,
    "Windows": WindowsNotifier,
}


def get_notifier(enabled: bool = True, console: Console | None = None) -> Notifier:
    """Pick the notifier for the running platform."""
    if enabled:
        system = platform.system()
        cls = _PLATFORM_NOTIFIERS.get(system)
        if cls is not None:
            return cls()
        logger.debug("No desktop notifier for platform %r", system)
    return ConsoleNotifier(console)


def _applescript_str(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _powershell_str(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
