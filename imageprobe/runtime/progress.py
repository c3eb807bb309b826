"""Operator-facing rendering of image pull progress."""

import logging
import threading
from typing import Any

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger(__name__)


class PullProgressSink:
    """Renders Docker pull progress events to the operator stream.

    Many inspection tasks pull concurrently, so writes are serialized with a
    lock to keep lines from interleaving. Rendering problems are logged and
    dropped; progress output is never part of the inspection result.
    """

    def __init__(self, console: Console | None = None, show_layers: bool = False):
        """Initialize PullProgressSink.

        Args:
            console: Console to write to (default: a stderr console)
            show_layers: Also render per-layer download/extract events
        """
        self.console = console or Console(stderr=True)
        self.show_layers = show_layers
        self._lock = threading.Lock()

    def format_event(self, image: str, event: dict[str, Any]) -> str | None:
        """Format a single pull event as a line, or None to skip it."""
        status = event.get("status")
        if not status:
            return None

        layer_id = event.get("id")
        if layer_id and not self.show_layers and "progressDetail" in event:
            # Per-layer progress ticks are noisy
            return None

        parts = [f"[dim]{escape(image)}[/dim]"]
        if layer_id:
            parts.append(escape(f"{layer_id}:"))
        parts.append(escape(str(status)))
        if self.show_layers and event.get("progress"):
            parts.append(escape(str(event["progress"])))
        return " ".join(parts)

    def __call__(self, image: str, event: dict[str, Any]) -> None:
        try:
            line = self.format_event(image, event)
            if line is None:
                return
            with self._lock:
                self.console.print(line, highlight=False)
        except Exception as e:
            logger.debug(f"Failed to render pull progress for {image}: {e}")
