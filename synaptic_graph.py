"""
Sparse Synaptic Graph - Hebbian association store between neuron identifiers.

Stores, strengthens, decays, and prunes directed weighted connections
between opaque neuron identifiers (typically ``uuid.UUID``).  Connections
are learned through repeated co-activation: cells that fire together wire
together.

Design principles:
    - Sparse by default: nested dict topology ``pre -> {post -> weight}``,
      no dense matrices.  Memory grows with stored synapses, not with
      the square of the neuron population.
    - Bounded learning: every write is clamped to [min_weight, max_weight]
      and every numeric input is sanitized, so weights never diverge or
      become NaN.
    - Pluggable plasticity: the update rule is a swappable strategy object.
    - Thread-safe: storage is partitioned into independently locked shards
      keyed by the presynaptic id; full-graph maintenance passes are
      serialized by a separate maintenance lock.
    - Persistence-ready: contents export to and import from a flat list of
      ``SynapseRecord`` objects.  Writing them to disk is the caller's job.

Maintenance is explicit.  ``apply_decay()`` weakens weights but never
removes synapses; only ``prune_weak_synapses()`` reclaims memory.  Callers
choose how often each runs.

Usage::

    import uuid
    from synaptic_graph import SynapseStore

    store = SynapseStore(learning_rate=0.1, prune_threshold=0.05)
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    store.record_coactivation_pattern([(a, 0.9), (b, 0.8), (c, 0.4)])
    store.get_synapse_weight(a, b)

    store.apply_decay(0.95)
    store.prune_weak_synapses()

    records = store.export_synapses()
    restored = SynapseStore(learning_rate=0.1, prune_threshold=0.05)
    restored.import_synapses(records)
"""

from __future__ import annotations

import dataclasses
import logging
import math
import numbers
import threading
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)

import numpy as np

from synaptic_config import ConfigurationError, SynapticGraphConfig

logger = logging.getLogger("synaptic_graph.store")

NeuronId = Hashable


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------

def sanitize(value: Any) -> float:
    """Coerce ``value`` to a finite float; NaN, inf and non-numbers become 0.0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


# ---------------------------------------------------------------------------
# Records and statistics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SynapseRecord:
    """One exported synapse: the unit exchanged with external persistence.

    Attributes:
        pre: Presynaptic (source) neuron identifier.
        post: Postsynaptic (target) neuron identifier.
        weight: Connection strength at export time.
    """

    pre: NeuronId
    post: NeuronId
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {"pre": self.pre, "post": self.post, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SynapseRecord":
        return cls(
            pre=data.get("pre"),
            post=data.get("post"),
            weight=data.get("weight", 0.0),
        )


@dataclass
class SynapticGraphStats:
    """Graph statistics snapshot.

    Attributes:
        total_synapses: Number of stored directed synapses.
        unique_neurons: Distinct identifiers appearing as pre or post.
        mean_weight: Mean synapse weight.
        std_weight: Standard deviation of synapse weights.
        min_weight: Smallest stored weight (0.0 when empty).
        max_weight: Largest stored weight (0.0 when empty).
        density: Stored synapses over possible directed pairs
            ``n * (n - 1)`` among the neurons seen.
        total_created: Cumulative synapses created by co-activation.
        total_pruned: Cumulative synapses removed by pruning passes.
        total_decay_passes: Number of decay passes applied.
    """

    total_synapses: int = 0
    unique_neurons: int = 0
    mean_weight: float = 0.0
    std_weight: float = 0.0
    min_weight: float = 0.0
    max_weight: float = 0.0
    density: float = 0.0
    total_created: int = 0
    total_pruned: int = 0
    total_decay_passes: int = 0

    @property
    def sparsity(self) -> float:
        return 1.0 - self.density

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["sparsity"] = self.sparsity
        return data

    def __str__(self) -> str:
        return (
            f"Synapses: {self.total_synapses:,}, Neurons: {self.unique_neurons:,}, "
            f"Avg Weight: {self.mean_weight:.3f}, Density: {self.density:.2e}"
        )


# ---------------------------------------------------------------------------
# Plasticity Rules (pluggable strategy objects)
# ---------------------------------------------------------------------------

class PlasticityRule:
    """Base class for co-activation learning rules.

    Subclass and override ``delta`` to create custom rules.  The store
    sanitizes whatever ``delta`` returns and clamps the resulting weight,
    so a rule only has to describe the direction and size of change.
    """

    def delta(self, activation_pre: float, activation_post: float) -> float:
        raise NotImplementedError


class HebbianRule(PlasticityRule):
    """Hebbian product rule.

        Δw = learning_rate × a_pre × a_post

    Activations are sanitized (non-finite → 0) and clamped to [0, 1]
    before use, so the delta is always in [0, learning_rate].
    """

    def __init__(self, learning_rate: float = 0.01):
        self.learning_rate = learning_rate

    def delta(self, activation_pre: float, activation_post: float) -> float:
        a_pre = clamp(sanitize(activation_pre), 0.0, 1.0)
        a_post = clamp(sanitize(activation_post), 0.0, 1.0)
        return sanitize(self.learning_rate * a_pre * a_post)

    def __repr__(self) -> str:
        return f"HebbianRule(learning_rate={self.learning_rate})"


# ---------------------------------------------------------------------------
# Synapse Store
# ---------------------------------------------------------------------------

class _Shard:
    """One lock-protected partition of the adjacency map."""

    __slots__ = ("lock", "synapses")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        # pre_id → {post_id → weight}
        self.synapses: Dict[NeuronId, Dict[NeuronId, float]] = {}


class SynapseStore:
    """Exclusive owner of all synapse state.

    Every synapse lives in the shard selected by ``hash(pre)``, so all
    outgoing synapses of a neuron share one shard and one lock.  A
    read-modify-clamp-write on a pair is atomic; writes to pairs in other
    shards run concurrently.  Full-graph passes (prune, decay, import,
    export, stats, clear) hold the maintenance lock so they never
    interleave, and visit shards one at a time so unrelated single-pair
    traffic is never blocked for a whole pass.

    Lock order is maintenance → shard → counter; nothing acquires them in
    reverse.

    Args:
        config: Base configuration (defaults to ``SynapticGraphConfig()``).
        **overrides: Individual config fields, e.g. ``learning_rate=0.1``.

    Raises:
        ConfigurationError: For unknown options or degenerate parameters.
    """

    def __init__(
        self,
        config: Optional[SynapticGraphConfig] = None,
        **overrides: Any,
    ):
        base = config if config is not None else SynapticGraphConfig()
        try:
            cfg = dataclasses.replace(base, **overrides)
        except TypeError as exc:
            raise ConfigurationError(f"Unknown graph option: {exc}") from exc
        self.config: SynapticGraphConfig = cfg.validate()

        self._min_weight = float(cfg.min_weight)
        self._max_weight = float(cfg.max_weight)
        self._creation_threshold = cfg.resolved_creation_threshold
        self._rule: PlasticityRule = HebbianRule(cfg.learning_rate)

        # --- Sharded sparse storage ---
        self._shards: List[_Shard] = [_Shard() for _ in range(cfg.num_shards)]
        self._maintenance_lock = threading.RLock()

        # --- Counters (guarded by _count_lock) ---
        self._count_lock = threading.Lock()
        self._count = 0
        self._total_created = 0
        self._total_pruned = 0
        self._total_decay_passes = 0

        # --- Event handlers ---
        self._event_handlers: Dict[str, List[Callable[..., Any]]] = {}

        logger.debug(
            "SynapseStore initialised: lr=%.4f, weights=[%.3f, %.3f], "
            "prune<%.4f, create>=%.4f, shards=%d",
            cfg.learning_rate,
            self._min_weight,
            self._max_weight,
            cfg.prune_threshold,
            self._creation_threshold,
            cfg.num_shards,
        )

    def __repr__(self) -> str:
        return (
            f"SynapseStore(synapses={self.get_synapse_count()}, "
            f"shards={len(self._shards)}, rule={self._rule!r})"
        )

    def __len__(self) -> int:
        return self.get_synapse_count()

    def __contains__(self, pair: Tuple[NeuronId, NeuronId]) -> bool:
        pre, post = pair
        return self.has_synapse(pre, post)

    @property
    def creation_threshold(self) -> float:
        return self._creation_threshold

    def _shard_for(self, pre: NeuronId) -> _Shard:
        return self._shards[hash(pre) % len(self._shards)]

    # -----------------------------------------------------------------------
    # Learning
    # -----------------------------------------------------------------------

    def record_coactivation(
        self,
        pre: NeuronId,
        post: NeuronId,
        activation_pre: float,
        activation_post: float,
    ) -> float:
        """Apply one Hebbian update to the directed synapse ``pre → post``.

        An existing synapse moves to ``clamp(weight + Δw)``.  A missing one
        is created at ``clamp(Δw)`` only when ``Δw >= creation_threshold``;
        smaller deltas for unseen pairs are discarded without any state
        change.  Self-connections are ignored.

        Returns:
            The synapse weight after the update (0.0 if none is stored).
        """
        if pre == post:
            return 0.0

        delta = sanitize(self._rule.delta(activation_pre, activation_post))
        shard = self._shard_for(pre)

        with shard.lock:
            row = shard.synapses.get(pre)
            current = row.get(post) if row is not None else None

            if current is None:
                if delta < self._creation_threshold:
                    return 0.0
                weight = clamp(delta, self._min_weight, self._max_weight)
                if row is None:
                    row = shard.synapses[pre] = {}
                row[post] = weight
                with self._count_lock:
                    self._count += 1
                    self._total_created += 1
                return weight

            weight = clamp(current + delta, self._min_weight, self._max_weight)
            row[post] = weight
            return weight

    def record_coactivation_pattern(
        self,
        active: Iterable[Tuple[NeuronId, float]],
    ) -> None:
        """Record a group of simultaneously active neurons.

        For every unordered pair ``{a, b}`` both ``a → b`` and ``b → a``
        are updated, each direction using the pair's own activations, so
        asymmetric activation levels can grow asymmetric weights.

        Args:
            active: ``(neuron_id, activation)`` pairs, or a mapping of
                neuron_id → activation.  A repeated id keeps its last
                activation.
        """
        if isinstance(active, Mapping):
            active = active.items()

        levels: Dict[NeuronId, float] = {}
        for neuron_id, activation in active:
            levels[neuron_id] = activation
        items = list(levels.items())

        for i, (a, act_a) in enumerate(items):
            for b, act_b in items[i + 1:]:
                self.record_coactivation(a, b, act_a, act_b)
                self.record_coactivation(b, a, act_b, act_a)

    def set_plasticity_rule(self, rule: PlasticityRule) -> None:
        """Replace the learning rule used by ``record_coactivation``."""
        self._rule = rule

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def get_synapse_weight(self, pre: NeuronId, post: NeuronId) -> float:
        """Current weight of ``pre → post``; 0.0 if absent (never creates it)."""
        shard = self._shard_for(pre)
        with shard.lock:
            row = shard.synapses.get(pre)
            if row is None:
                return 0.0
            return row.get(post, 0.0)

    def has_synapse(self, pre: NeuronId, post: NeuronId) -> bool:
        shard = self._shard_for(pre)
        with shard.lock:
            row = shard.synapses.get(pre)
            return row is not None and post in row

    def get_synapse_count(self) -> int:
        """Total number of stored directed synapses."""
        with self._count_lock:
            return self._count

    def get_outgoing_synapses(self, pre: NeuronId) -> List[Tuple[NeuronId, float]]:
        """All ``(post, weight)`` pairs leaving ``pre``, O(out-degree)."""
        shard = self._shard_for(pre)
        with shard.lock:
            row = shard.synapses.get(pre)
            return list(row.items()) if row else []

    def get_incoming_synapses(self, post: NeuronId) -> List[Tuple[NeuronId, float]]:
        """All ``(pre, weight)`` pairs arriving at ``post``.

        There is no reverse index, so this scans every shard.
        """
        incoming: List[Tuple[NeuronId, float]] = []
        for shard in self._shards:
            with shard.lock:
                for pre, row in shard.synapses.items():
                    weight = row.get(post)
                    if weight is not None:
                        incoming.append((pre, weight))
        return incoming

    def get_stats(self) -> SynapticGraphStats:
        """Graph statistics snapshot."""
        weights: List[float] = []
        neurons = set()
        with self._maintenance_lock:
            for shard in self._shards:
                with shard.lock:
                    for pre, row in shard.synapses.items():
                        neurons.add(pre)
                        neurons.update(row.keys())
                        weights.extend(row.values())

        with self._count_lock:
            total_created = self._total_created
            total_pruned = self._total_pruned
            decay_passes = self._total_decay_passes

        n = len(neurons)
        possible = n * (n - 1)
        if not weights:
            return SynapticGraphStats(
                unique_neurons=n,
                total_created=total_created,
                total_pruned=total_pruned,
                total_decay_passes=decay_passes,
            )

        w = np.asarray(weights, dtype=np.float64)
        return SynapticGraphStats(
            total_synapses=len(weights),
            unique_neurons=n,
            mean_weight=float(np.mean(w)),
            std_weight=float(np.std(w)),
            min_weight=float(np.min(w)),
            max_weight=float(np.max(w)),
            density=len(weights) / possible if possible > 0 else 0.0,
            total_created=total_created,
            total_pruned=total_pruned,
            total_decay_passes=decay_passes,
        )

    # -----------------------------------------------------------------------
    # Removal
    # -----------------------------------------------------------------------

    def remove_synapse(self, pre: NeuronId, post: NeuronId) -> bool:
        """Delete ``pre → post``.  Idempotent: absent pairs are a no-op.

        Returns:
            True if a synapse was removed.
        """
        shard = self._shard_for(pre)
        with shard.lock:
            row = shard.synapses.get(pre)
            if row is None or post not in row:
                return False
            del row[post]
            if not row:
                del shard.synapses[pre]
            with self._count_lock:
                self._count -= 1
        return True

    def clear(self) -> None:
        """Remove every synapse.  Cumulative counters are kept."""
        with self._maintenance_lock:
            removed = self._clear_locked()
        logger.info("Cleared %d synapses", removed)
        self._emit("cleared", count=removed)

    def _clear_locked(self) -> int:
        removed = 0
        for shard in self._shards:
            with shard.lock:
                n = sum(len(row) for row in shard.synapses.values())
                shard.synapses.clear()
                with self._count_lock:
                    self._count -= n
            removed += n
        return removed

    # -----------------------------------------------------------------------
    # Maintenance: pruning and decay
    # -----------------------------------------------------------------------

    def prune_weak_synapses(self) -> int:
        """Remove every synapse with ``weight < prune_threshold``.

        Remaining weights are not touched.

        Returns:
            Number of synapses removed.
        """
        threshold = self.config.prune_threshold
        removed = 0
        with self._maintenance_lock:
            for shard in self._shards:
                with shard.lock:
                    n = self._prune_shard(shard, threshold)
                    if n:
                        with self._count_lock:
                            self._count -= n
                            self._total_pruned += n
                removed += n

        if removed:
            logger.debug("Pruned %d synapses below %.4f", removed, threshold)
            self._emit("pruned", count=removed, threshold=threshold)
        return removed

    @staticmethod
    def _prune_shard(shard: _Shard, threshold: float) -> int:
        removed = 0
        for pre in list(shard.synapses):
            row = shard.synapses[pre]
            weak = [post for post, w in row.items() if w < threshold]
            for post in weak:
                del row[post]
            removed += len(weak)
            if not row:
                del shard.synapses[pre]
        return removed

    def apply_decay(self, factor: float = 0.99) -> int:
        """Multiply every stored weight by ``factor`` (0 < factor < 1).

        Weights are re-clamped to [min_weight, max_weight] afterwards.
        Decay never removes synapses, even ones that fall below the prune
        threshold; call ``prune_weak_synapses()`` to reclaim them.

        Any real number is accepted, numpy scalars included.  An invalid
        factor is logged and the pass is skipped.

        Returns:
            Number of synapses decayed.
        """
        if isinstance(factor, bool) or not isinstance(factor, numbers.Real):
            logger.warning("Ignoring decay with non-numeric factor %r", factor)
            return 0
        factor = float(factor)
        if not math.isfinite(factor) or factor <= 0.0 or factor > 1.0:
            logger.warning("Ignoring decay with out-of-range factor %r", factor)
            return 0

        lo, hi = self._min_weight, self._max_weight
        touched = 0
        with self._maintenance_lock:
            for shard in self._shards:
                with shard.lock:
                    for row in shard.synapses.values():
                        for post, w in row.items():
                            row[post] = clamp(w * factor, lo, hi)
                        touched += len(row)
            with self._count_lock:
                self._total_decay_passes += 1

        logger.debug("Decayed %d synapses by factor %.4f", touched, factor)
        self._emit("decayed", count=touched, factor=factor)
        return touched

    # -----------------------------------------------------------------------
    # Export / Import
    # -----------------------------------------------------------------------

    def export_synapses(self) -> List[SynapseRecord]:
        """Every stored synapse exactly once, in no particular order."""
        records: List[SynapseRecord] = []
        with self._maintenance_lock:
            for shard in self._shards:
                with shard.lock:
                    for pre, row in shard.synapses.items():
                        records.extend(
                            SynapseRecord(pre=pre, post=post, weight=w)
                            for post, w in row.items()
                        )
        return records

    def import_synapses(
        self,
        records: Iterable[Any],
        replace: bool = False,
    ) -> int:
        """Load synapse records, overwriting any pair already stored.

        Records may be ``SynapseRecord`` objects, mappings with ``pre``,
        ``post`` and ``weight`` keys, or ``(pre, post, weight)`` tuples.
        For a pair that appears more than once the last record wins;
        weights are never summed.

        Malformed input is repaired rather than rejected: non-finite or
        non-numeric weights become 0.0, all weights are clamped into
        [min_weight, max_weight], and self-loops or records missing an id
        are dropped.  A dropped record is not counted, so after importing
        into an empty store ``get_synapse_count()`` can be less than the
        number of records supplied.

        Args:
            records: Iterable of records, e.g. from ``export_synapses()``.
            replace: Clear the store before loading.

        Returns:
            Number of records applied.
        """
        lo, hi = self._min_weight, self._max_weight
        applied = 0
        dropped = 0
        with self._maintenance_lock:
            if replace:
                self._clear_locked()

            for raw in records:
                parsed = self._deserialize_record(raw)
                if parsed is None:
                    dropped += 1
                    continue
                pre, post, raw_weight = parsed
                weight = clamp(sanitize(raw_weight), lo, hi)

                shard = self._shard_for(pre)
                with shard.lock:
                    row = shard.synapses.setdefault(pre, {})
                    if post not in row:
                        with self._count_lock:
                            self._count += 1
                    row[post] = weight
                applied += 1

        if dropped:
            logger.warning("Dropped %d malformed synapse records during import", dropped)
        logger.info("Imported %d synapse records (replace=%s)", applied, replace)
        self._emit("imported", count=applied, dropped=dropped, replace=replace)
        return applied

    @staticmethod
    def _deserialize_record(raw: Any) -> Optional[Tuple[NeuronId, NeuronId, Any]]:
        """Extract ``(pre, post, weight)`` or None if the record is unusable.

        Self-loops count as unusable since the store never holds ``pre == post``.
        """
        if isinstance(raw, SynapseRecord):
            pre, post, weight = raw.pre, raw.post, raw.weight
        elif isinstance(raw, Mapping):
            pre, post, weight = raw.get("pre"), raw.get("post"), raw.get("weight", 0.0)
        elif isinstance(raw, (tuple, list)) and len(raw) == 3:
            pre, post, weight = raw
        else:
            return None

        if pre is None or post is None or pre == post:
            return None
        try:
            hash(pre)
            hash(post)
        except TypeError:
            return None
        return pre, post, weight

    # -----------------------------------------------------------------------
    # Event System
    # -----------------------------------------------------------------------

    def register_event_handler(self, event_type: str, callback: Callable[..., Any]) -> None:
        """Subscribe to maintenance events: pruned, decayed, imported, cleared."""
        self._event_handlers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs: Any) -> None:
        for cb in self._event_handlers.get(event_type, []):
            cb(**kwargs)
