"""Tests for export/import of synapse records.

Export yields every stored synapse exactly once; import overwrites
conflicting pairs (last record wins) and repairs malformed records instead
of rejecting them.
"""

import logging
import math
import os
import random
import sys
import uuid

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from synaptic_graph import SynapseRecord, SynapseStore


def _build_store(seed: int = 7, n_neurons: int = 30, n_events: int = 200) -> SynapseStore:
    rng = random.Random(seed)
    neurons = [uuid.UUID(int=rng.getrandbits(128)) for _ in range(n_neurons)]
    store = SynapseStore(learning_rate=0.1)
    for _ in range(n_events):
        a, b = rng.sample(neurons, 2)
        store.record_coactivation(a, b, rng.uniform(0.75, 1.0), rng.uniform(0.75, 1.0))
    return store


class TestSynapseRecord:
    def test_dict_conversion(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        record = SynapseRecord(pre=a, post=b, weight=0.25)
        data = record.to_dict()
        assert data == {"pre": a, "post": b, "weight": 0.25}
        assert SynapseRecord.from_dict(data) == record

    def test_records_are_immutable(self):
        record = SynapseRecord(pre="a", post="b", weight=0.5)
        with pytest.raises(AttributeError):
            record.weight = 1.0


class TestExport:
    def test_empty_store(self):
        assert SynapseStore().export_synapses() == []

    def test_every_synapse_exactly_once(self):
        store = _build_store()
        records = store.export_synapses()
        keys = [(r.pre, r.post) for r in records]
        assert len(records) == store.get_synapse_count()
        assert len(set(keys)) == len(keys)
        for r in records:
            assert store.get_synapse_weight(r.pre, r.post) == r.weight

    def test_export_is_a_snapshot(self):
        store = _build_store()
        records = store.export_synapses()
        store.clear()
        assert len(records) > 0
        assert store.get_synapse_count() == 0


class TestRoundTrip:
    def test_fresh_store_round_trip(self):
        original = _build_store()
        records = original.export_synapses()
        assert len(records) > 0

        restored = SynapseStore(learning_rate=0.1)
        applied = restored.import_synapses(records)

        assert applied == len(records)
        assert restored.get_synapse_count() == original.get_synapse_count()
        for r in records:
            assert restored.get_synapse_weight(r.pre, r.post) == pytest.approx(r.weight, abs=1e-3)

    def test_round_trip_through_dicts(self):
        original = _build_store(seed=11)
        payload = [r.to_dict() for r in original.export_synapses()]
        restored = SynapseStore(learning_rate=0.1)
        restored.import_synapses(payload)
        assert restored.get_synapse_count() == len(payload)
        for d in payload:
            assert restored.get_synapse_weight(d["pre"], d["post"]) == pytest.approx(d["weight"], abs=1e-3)

    def test_round_trip_across_shard_counts(self):
        original = _build_store(seed=3)
        restored = SynapseStore(learning_rate=0.1, num_shards=1)
        restored.import_synapses(original.export_synapses())
        assert restored.get_synapse_count() == original.get_synapse_count()

    def test_import_does_not_count_as_creation(self):
        original = _build_store()
        restored = SynapseStore(learning_rate=0.1)
        restored.import_synapses(original.export_synapses())
        assert restored.get_stats().total_created == 0


class TestImportSemantics:
    def test_conflicting_key_replaced_not_summed(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        store = SynapseStore(learning_rate=0.1)
        store.record_coactivation(a, b, 0.8, 0.8)  # 0.064
        store.record_coactivation(a, c, 0.8, 0.8)
        store.import_synapses([SynapseRecord(a, b, 0.5)])
        assert store.get_synapse_weight(a, b) == 0.5
        assert store.get_synapse_weight(a, c) == pytest.approx(0.064)
        assert store.get_synapse_count() == 2

    def test_last_record_wins(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore()
        applied = store.import_synapses([(a, b, 0.3), (a, b, 0.7)])
        assert applied == 2
        assert store.get_synapse_count() == 1
        assert store.get_synapse_weight(a, b) == 0.7

    def test_replace_clears_existing(self):
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        store = SynapseStore(learning_rate=0.1)
        store.record_coactivation(a, b, 0.9, 0.9)
        store.import_synapses([(b, c, 0.4)], replace=True)
        assert store.get_synapse_count() == 1
        assert store.get_synapse_weight(a, b) == 0.0
        assert store.get_synapse_weight(b, c) == 0.4

    def test_imported_weak_synapses_kept_until_pruned(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore(prune_threshold=0.1)
        store.import_synapses([(a, b, 0.01)])
        assert store.get_synapse_count() == 1
        assert store.prune_weak_synapses() == 1

    def test_imported_event(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore()
        events = []
        store.register_event_handler("imported", lambda **kw: events.append(kw))
        store.import_synapses([(a, b, 0.4), (a, a, 0.4)])
        assert events == [{"count": 1, "dropped": 1, "replace": False}]


class TestImportSanitization:
    @pytest.mark.parametrize("raw_weight, expected", [
        (5.0, 1.0),
        (-2.0, 0.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
        (-math.inf, 0.0),
        ("abc", 0.0),
        (None, 0.0),
        ("0.25", 0.25),
    ])
    def test_weight_sanitized_and_clamped(self, raw_weight, expected):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore()
        assert store.import_synapses([{"pre": a, "post": b, "weight": raw_weight}]) == 1
        w = store.get_synapse_weight(a, b)
        assert math.isfinite(w)
        assert w == pytest.approx(expected)

    def test_custom_bounds_applied(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore(min_weight=0.2, max_weight=0.6)
        store.import_synapses([(a, b, 0.9), (b, a, 0.0)])
        assert store.get_synapse_weight(a, b) == 0.6
        assert store.get_synapse_weight(b, a) == 0.2

    def test_malformed_records_dropped(self, caplog):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore()
        records = [
            (a, a, 0.5),                      # self-loop
            {"post": b, "weight": 0.5},       # missing pre
            {"pre": a, "weight": 0.5},        # missing post
            ([1], b, 0.5),                    # unhashable id
            42,                               # not a record
            (a, b),                           # wrong arity
            SynapseRecord(a, b, 0.5),         # valid
        ]
        with caplog.at_level(logging.WARNING, logger="synaptic_graph.store"):
            applied = store.import_synapses(records)
        assert applied == 1
        assert store.get_synapse_count() == 1
        assert "Dropped 6 malformed" in caplog.text

    def test_self_loop_excluded_from_count(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore()
        records = [(a, b, 0.5), (b, b, 0.9), (b, a, 0.3)]
        assert store.import_synapses(records) == 2
        assert store.get_synapse_count() == len(records) - 1
        assert not store.has_synapse(b, b)

    def test_missing_weight_defaults_to_zero(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        store = SynapseStore()
        store.import_synapses([{"pre": a, "post": b}])
        assert store.has_synapse(a, b)
        assert store.get_synapse_weight(a, b) == 0.0
