"""Alert notification channels."""
import json
import logging
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger("cfalerts.alerts.channels")


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, alert) -> None: ...


class ConsoleChannel:
    """Print alerts to terminal with rich formatting."""

    SEVERITY_STYLES = {
        "high": "bold white on red",
        "medium": "bold yellow",
        "low": "bold blue",
    }

    def __init__(self, console=None):
        self.console = console or Console()

    def send(self, alert):
        sev = alert.severity.value
        style = self.SEVERITY_STYLES.get(sev, "")
        self.console.print(f"[{style}] [{sev.upper()}] {escape(alert.message)}[/]", highlight=False)


class FileChannel:
    """Append alerts to a JSON lines log file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = Path(log_path)
        self._lock = threading.Lock()

    def send(self, alert):
        entry = alert.to_dict()
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock, open(self.log_path, "a") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write alert to file: {e}")


class CallbackChannel:
    """Adapts a plain callable (UI hook, test spy) to the channel interface."""

    def __init__(self, callback):
        self.callback = callback

    def send(self, alert):
        self.callback(alert)


def build_channels(config, interactive=False):
    """Channels named in config['alerts']['channels']."""
    cfg = config.get("alerts", {}).get("channels", {})
    channels = []
    if cfg.get("file"):
        channels.append(FileChannel(cfg["file"]))
    if cfg.get("console", True) and interactive:
        channels.append(ConsoleChannel())
    return channels
