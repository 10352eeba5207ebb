"""
Synaptic Graph Monitoring: Health context and rotating maintenance log.

Two monitoring layers:

1. ``health_context()``: Natural language string describing the store
   (e.g. "SynapticGraph: 1,234 synapses, 310 neurons, mean weight 0.412").
2. ``MaintenanceLogger``: Rotating JSON-line log of maintenance events
   (pruned, decayed, imported, cleared) emitted by a ``SynapseStore``.

Usage::

    from synaptic_config import load_graph_config
    from synaptic_graph import SynapseStore
    from synaptic_monitoring import MaintenanceLogger, health_context

    settings = load_graph_config()
    store = SynapseStore(settings.graph)
    MaintenanceLogger(settings).attach(store)
    print(health_context(store))
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import re
import time
from pathlib import Path
from typing import Any, Dict

from synaptic_config import GraphSettings

logger = logging.getLogger("synaptic_graph.monitoring")

MAINTENANCE_EVENTS = ("pruned", "decayed", "imported", "cleared")


def _events_logger_name(log_path: Path) -> str:
    """``synaptic_graph.events.<path>`` with the absolute path flattened to one name segment."""
    flat = re.sub(r"[^0-9A-Za-z]+", "_", os.path.abspath(log_path)).strip("_")
    return f"synaptic_graph.events.{flat}"


# ── Health context (Layer 1) ───────────────────────────────────────────


def health_context(store: Any) -> str:
    """Generate a one-line health summary of a store.

    Args:
        store: ``SynapseStore`` instance.

    Returns:
        Human-readable status string.
    """
    try:
        stats = store.get_stats()
        parts = [
            f"SynapticGraph: {stats.total_synapses:,} synapses",
            f"{stats.unique_neurons:,} neurons",
        ]
        if stats.total_synapses:
            parts.append(f"mean weight {stats.mean_weight:.3f}")
            parts.append(f"{stats.sparsity:.1%} sparse")
        if stats.total_pruned:
            parts.append(f"{stats.total_pruned:,} pruned")
        return ", ".join(parts)
    except Exception as exc:
        return f"SynapticGraph: status unavailable ({exc})"


# ── Rotating logger (Layer 2) ─────────────────────────────────────────


class MaintenanceLogger:
    """Rotating file logger for store maintenance events.

    Writes structured JSON-line events with automatic rotation based on
    file size.

    Args:
        settings: ``GraphSettings`` with monitoring parameters.
    """

    def __init__(self, settings: GraphSettings) -> None:
        self._cfg = settings.monitoring
        self._log_path = Path(self._cfg.log_dir).expanduser() / self._cfg.log_file
        # One child logger per log file, so separate files never share events
        self._logger = logging.getLogger(_events_logger_name(self._log_path))
        self._events_logged = 0
        self._setup_handler()

    def _setup_handler(self) -> None:
        """Configure rotating file handler."""
        self._log_path.parent.mkdir(parents=True, exist_ok=True)

        for existing in self._logger.handlers:
            if getattr(existing, "baseFilename", None) == os.path.abspath(self._log_path):
                return

        handler = logging.handlers.RotatingFileHandler(
            str(self._log_path),
            maxBytes=self._cfg.max_log_size_mb * 1024 * 1024,
            backupCount=self._cfg.backup_count,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        self._logger.addHandler(handler)
        self._logger.setLevel(logging.INFO)

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def events_logged(self) -> int:
        return self._events_logged

    def log_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write a structured event to the maintenance log."""
        event = {
            "timestamp": time.time(),
            "event": event_type,
            "data": data,
        }
        self._logger.info(json.dumps(event, default=str))
        self._events_logged += 1

    def attach(self, store: Any) -> "MaintenanceLogger":
        """Log every maintenance event the store emits."""
        for event_type in MAINTENANCE_EVENTS:
            store.register_event_handler(event_type, self._handler_for(event_type))
        logger.debug("Maintenance logger attached, writing to %s", self._log_path)
        return self

    def _handler_for(self, event_type: str):
        def _handle(**kwargs: Any) -> None:
            self.log_event(event_type, kwargs)
        return _handle

    def close(self) -> None:
        """Detach and close this logger's file handler."""
        target = os.path.abspath(self._log_path)
        for handler in list(self._logger.handlers):
            if getattr(handler, "baseFilename", None) == target:
                self._logger.removeHandler(handler)
                handler.close()
