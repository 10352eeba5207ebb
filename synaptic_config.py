"""
Synaptic Graph Configuration: Construction parameters for the SynapseStore.

Provides a ``SynapticGraphConfig`` dataclass holding the learning-rule and
maintenance tunables, a ``MonitoringConfig`` for the event log, and a
``GraphSettings`` container grouping both.  Settings can be loaded from a
dict of overrides, a JSON file, or left at sensible defaults.

Usage::

    from synaptic_config import load_graph_config

    # Defaults
    settings = load_graph_config()

    # With overrides
    settings = load_graph_config({"graph": {"learning_rate": 0.1}})

    # From JSON file
    settings = load_graph_config(config_path="~/.synaptic/graph.json")

Degenerate values (``min_weight > max_weight``, ``learning_rate <= 0``,
non-finite numbers) raise ``ConfigurationError``.  The store refuses to
start rather than produce undefined numeric behaviour mid-training.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("synaptic_graph.config")


class ConfigurationError(ValueError):
    """Raised when graph parameters cannot produce well-defined updates."""


# ── Section dataclasses ────────────────────────────────────────────────


@dataclass
class SynapticGraphConfig:
    """Learning and maintenance parameters for a ``SynapseStore``.

    Attributes:
        learning_rate: Scales every Hebbian delta (must be > 0).
        min_weight: Lower clamp applied on every write.
        max_weight: Upper clamp applied on every write.
        prune_threshold: Synapses with weight below this are removed by
            ``prune_weak_synapses()``.
        creation_threshold: Minimum delta needed to instantiate a synapse
            for a previously unseen pair.  ``None`` derives it from the
            other parameters (see ``resolved_creation_threshold``).
        num_shards: Number of independently locked partitions.  ``1``
            means a single store-wide mutex.
    """

    learning_rate: float = 0.01
    min_weight: float = 0.0
    max_weight: float = 1.0
    prune_threshold: float = 0.1
    creation_threshold: Optional[float] = None
    num_shards: int = 16

    @property
    def resolved_creation_threshold(self) -> float:
        """Effective creation threshold.

        Defaults to half the larger of ``prune_threshold`` and
        ``learning_rate``, so a single strong co-activation can wire a new
        pair while noise-level deltas cannot.
        """
        if self.creation_threshold is not None:
            return float(self.creation_threshold)
        return max(self.prune_threshold * 0.5, self.learning_rate * 0.5)

    def validate(self) -> "SynapticGraphConfig":
        """Check parameters; raise ``ConfigurationError`` on degenerate values.

        Returns ``self`` so calls can be chained.
        """
        for name in ("learning_rate", "min_weight", "max_weight", "prune_threshold"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ConfigurationError(f"{name} must be finite, got {value!r}")

        if self.learning_rate <= 0:
            raise ConfigurationError(
                f"learning_rate must be > 0, got {self.learning_rate}"
            )
        if self.min_weight > self.max_weight:
            raise ConfigurationError(
                f"min_weight ({self.min_weight}) exceeds max_weight ({self.max_weight})"
            )

        if self.creation_threshold is not None:
            ct = self.creation_threshold
            if isinstance(ct, bool) or not isinstance(ct, (int, float)) or not math.isfinite(ct):
                raise ConfigurationError(
                    f"creation_threshold must be a finite number, got {ct!r}"
                )

        if isinstance(self.num_shards, bool) or not isinstance(self.num_shards, int):
            raise ConfigurationError(f"num_shards must be an int, got {self.num_shards!r}")
        if self.num_shards < 1:
            raise ConfigurationError(f"num_shards must be >= 1, got {self.num_shards}")

        if self.resolved_creation_threshold < self.prune_threshold:
            logger.debug(
                "creation_threshold %.4f is below prune_threshold %.4f; "
                "new synapses may be removed by the next pruning pass",
                self.resolved_creation_threshold,
                self.prune_threshold,
            )
        return self


@dataclass
class MonitoringConfig:
    """Configuration for the maintenance event log."""

    log_dir: str = "~/.synaptic/logs/"
    log_file: str = "synaptic_events.log"
    max_log_size_mb: int = 10
    backup_count: int = 5


# ── Top-level settings ─────────────────────────────────────────────────


@dataclass
class GraphSettings:
    """Top-level settings grouping graph and monitoring sections.

    Use ``load_graph_config()`` to create an instance with user overrides
    applied.
    """

    graph: SynapticGraphConfig = field(default_factory=SynapticGraphConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


_SECTIONS = ("graph", "monitoring")


# ── Factory ────────────────────────────────────────────────────────────


def _apply_overrides(obj: Any, overrides: Dict[str, Any]) -> None:
    """Apply a dict of overrides to a dataclass instance (in-place)."""
    for key, value in overrides.items():
        if hasattr(obj, key) and not isinstance(getattr(type(obj), key, None), property):
            setattr(obj, key, value)


def load_graph_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
) -> GraphSettings:
    """Create ``GraphSettings`` with defaults, optionally overridden.

    Override precedence (highest wins):
        1. ``overrides`` dict argument
        2. ``config_path`` JSON file
        3. Built-in defaults

    Args:
        overrides: Dict keyed by section name (``graph``, ``monitoring``)
            whose values are dicts of field→value pairs.
        config_path: Path to a JSON file with the same structure as
            ``overrides``.

    Returns:
        Fully populated, validated ``GraphSettings``.

    Raises:
        ConfigurationError: If the merged graph section is degenerate.
    """
    settings = GraphSettings()

    # Layer 1: JSON file
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            try:
                with open(p) as f:
                    file_data = json.load(f)
                for section in _SECTIONS:
                    if section in file_data:
                        _apply_overrides(getattr(settings, section), file_data[section])
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Failed to load graph config from %s: %s", p, exc)

    # Layer 2: dict overrides (win over file)
    if overrides is not None:
        for section in _SECTIONS:
            if section in overrides:
                _apply_overrides(getattr(settings, section), overrides[section])

    settings.graph.validate()
    return settings
