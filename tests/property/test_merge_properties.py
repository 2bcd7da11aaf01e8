"""
Property-based tests for the merge-reconciliation engine using Hypothesis.

Tests invariants that should hold for any set of catalogs:
- Every key in any source is concluded exactly once
- Presence flags match the sources that hold the key
- Only keys held by both live sides reach deep comparison
- Output is deterministic for identical inputs
"""

from hypothesis import given, strategies as st, settings

from catalog_recon.compare.deep import Comparison, ComparisonResult
from catalog_recon.engine import MergeReconciler
from catalog_recon.models import CatalogEntry, ReconciliationMode
from catalog_recon.sources import ManifestSource, OrderedMetadataSource


class HashComparator:
    """Deterministic comparator: result depends only on the object name."""

    def __init__(self):
        self.compared = []

    def compare_batch(self, records):
        self.compared.extend(r.key for r in records)
        results = [ComparisonResult.EQUAL, ComparisonResult.DIFFERENT, ComparisonResult.FETCH_FAILED]
        return [Comparison(r, results[sum(map(ord, r.name)) % 3]) for r in records]


key_strategy = st.tuples(
    st.sampled_from(["HR", "hr", "FIN", "Ops"]),
    st.text(alphabet="ABCab_1", min_size=1, max_size=4),
    st.sampled_from(["TABLE", "VIEW", "INDEX"]),
)

catalog_strategy = st.lists(key_strategy, max_size=25)


def _entries(keys):
    """Unique entries sorted by key; first spelling of a key wins."""
    unique = {}
    for owner, name, object_type in keys:
        entry = CatalogEntry(owner=owner, name=name, type=object_type, status="VALID")
        unique.setdefault(entry.key, entry)
    return sorted(unique.values(), key=lambda e: e.key)


def _run(mode, master, slave, manifest=None, batch_size=3):
    comparator = HashComparator()
    emitted = []
    merger = MergeReconciler(mode, comparator, emitted.append, batch_size=batch_size)
    merger.run(
        OrderedMetadataSource(_entries(master), name="master"),
        OrderedMetadataSource(_entries(slave), name="slave"),
        ManifestSource(_entries(manifest)) if manifest is not None else None,
    )
    return emitted, comparator


def _key_set(keys):
    return {e.key for e in _entries(keys)}


# Property: Two-way merge concludes every key exactly once with correct flags
@given(master=catalog_strategy, slave=catalog_strategy, batch_size=st.integers(min_value=1, max_value=10))
@settings(max_examples=200)
def test_two_way_completeness(master, slave, batch_size):
    """Every key of master or slave yields one conclusion."""
    emitted, comparator = _run(ReconciliationMode.TWO_WAY, master, slave, batch_size=batch_size)
    master_keys, slave_keys = _key_set(master), _key_set(slave)

    keys = [c.key for c in emitted]
    assert len(keys) == len(set(keys))
    assert set(keys) == master_keys | slave_keys

    for conclusion in emitted:
        assert conclusion.in_master == (conclusion.key in master_keys)
        assert conclusion.in_slave == (conclusion.key in slave_keys)
        assert conclusion.in_manifest is None

    # Property: only shared keys are deep-compared
    assert set(comparator.compared) == master_keys & slave_keys
    assert len(comparator.compared) == len(master_keys & slave_keys)


# Property: Three-way merge concludes the union of all three sources
@given(master=catalog_strategy, slave=catalog_strategy, manifest=catalog_strategy)
@settings(max_examples=200)
def test_three_way_completeness(master, slave, manifest):
    """Manifest-only keys are concluded as well as catalog keys."""
    emitted, comparator = _run(ReconciliationMode.THREE_WAY, master, slave, manifest)
    master_keys, slave_keys, manifest_keys = _key_set(master), _key_set(slave), _key_set(manifest)

    keys = [c.key for c in emitted]
    assert len(keys) == len(set(keys))
    assert set(keys) == master_keys | slave_keys | manifest_keys

    for conclusion in emitted:
        assert conclusion.in_master == (conclusion.key in master_keys)
        assert conclusion.in_slave == (conclusion.key in slave_keys)
        assert conclusion.in_manifest == (conclusion.key in manifest_keys)

    assert set(comparator.compared) == master_keys & slave_keys


# Property: Identical inputs produce identical output
@given(master=catalog_strategy, slave=catalog_strategy, manifest=st.one_of(st.none(), catalog_strategy))
def test_merge_deterministic(master, slave, manifest):
    """Running the merge twice yields the same conclusions in the same order."""
    mode = ReconciliationMode.TWO_WAY if manifest is None else ReconciliationMode.THREE_WAY

    first, _ = _run(mode, master, slave, manifest)
    second, _ = _run(mode, master, slave, manifest)

    assert first == second


# Property: Batch size changes grouping but never the set of conclusions
@given(master=catalog_strategy, slave=catalog_strategy,
       small=st.integers(min_value=1, max_value=4), large=st.integers(min_value=5, max_value=50))
def test_batch_size_does_not_change_conclusions(master, slave, small, large):
    """Conclusions are independent of how deferred keys are batched."""
    by_small, _ = _run(ReconciliationMode.TWO_WAY, master, slave, batch_size=small)
    by_large, _ = _run(ReconciliationMode.TWO_WAY, master, slave, batch_size=large)

    assert sorted(by_small, key=lambda c: c.key) == sorted(by_large, key=lambda c: c.key)
