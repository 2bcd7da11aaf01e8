"""
Classification tables.

Presence of a key in master, slave and (three-way) manifest decides the
conclusion directly, except when both live sides hold the key: those keys
are deferred to deep comparison and classified afterwards from the
comparison result.
"""

from catalog_recon.compare.deep import Comparison, ComparisonResult
from catalog_recon.models import (
    Conclusion,
    ConclusionKind,
    ObjectRecord,
    Outcome,
    ReconciliationMode,
)

# (in_master, in_slave, in_manifest) -> (text, kind, outcome)
THREE_WAY_PRESENCE = {
    (True, False, True): (
        "Declared in manifest but missing in slave",
        ConclusionKind.ERROR,
        Outcome.MISSING_IN_SLAVE,
    ),
    (True, False, False): (
        "Exists in master only, not promoted and not declared",
        ConclusionKind.WARNING,
        Outcome.MASTER_ONLY,
    ),
    (False, True, True): (
        "New object, ready to promote to master",
        ConclusionKind.INFO,
        Outcome.NEW_READY_TO_PROMOTE,
    ),
    (False, True, False): (
        "Undeclared object found only in slave",
        ConclusionKind.WARNING,
        Outcome.UNDECLARED_SLAVE_ONLY,
    ),
    (False, False, True): (
        "Declared in manifest but absent from master and slave",
        ConclusionKind.ERROR,
        Outcome.MISSING_EVERYWHERE,
    ),
}

# (in_master, in_slave) -> (text, kind, outcome)
TWO_WAY_PRESENCE = {
    (True, False): ("Missing in slave", ConclusionKind.ERROR, Outcome.MISSING_IN_SLAVE),
    (False, True): ("Missing in master", ConclusionKind.INFO, Outcome.MISSING_UPSTREAM),
}

FETCH_FAILED = ("Definition fetch failed", ConclusionKind.WARNING, Outcome.FETCH_FAILED)


def is_deferred(record: ObjectRecord) -> bool:
    """Keys held by both live sides need a definition comparison."""
    return record.in_master and record.in_slave


def classify_presence(record: ObjectRecord, mode: ReconciliationMode) -> Conclusion | None:
    """
    Classify a record from its presence flags alone.

    Returns:
        Conclusion, or None when the record is deferred to deep comparison
    """
    if is_deferred(record):
        return None

    if mode is ReconciliationMode.THREE_WAY:
        entry = THREE_WAY_PRESENCE.get((record.in_master, record.in_slave, bool(record.in_manifest)))
    else:
        entry = TWO_WAY_PRESENCE.get((record.in_master, record.in_slave))

    if entry is None:
        raise ValueError(f"Record {record.key} is present in no source")

    text, kind, outcome = entry
    return Conclusion.for_record(record, text, kind, outcome)


def classify_comparison(comparison: Comparison, mode: ReconciliationMode) -> Conclusion:
    """Classify a deferred record from its definition comparison."""
    record = comparison.record

    if comparison.result is ComparisonResult.FETCH_FAILED:
        text, kind, outcome = FETCH_FAILED
        if comparison.detail:
            text = f"{text} ({comparison.detail})"
        return Conclusion.for_record(record, text, kind, outcome)

    equal = comparison.result is ComparisonResult.EQUAL

    if mode is ReconciliationMode.TWO_WAY:
        if equal:
            return Conclusion.for_record(record, "Match", ConclusionKind.SUCCESS, Outcome.IN_SYNC)
        return Conclusion.for_record(
            record, "Content mismatch", ConclusionKind.WARNING, Outcome.CONTENT_MISMATCH
        )

    if equal:
        text = "In sync" if record.in_manifest else "Identical (not in manifest)"
        return Conclusion.for_record(record, text, ConclusionKind.SUCCESS, Outcome.IN_SYNC)
    if record.in_manifest:
        return Conclusion.for_record(
            record, "Changed and declared, ready to sync", ConclusionKind.INFO, Outcome.READY_TO_SYNC
        )
    return Conclusion.for_record(
        record, "Changed but not declared in manifest", ConclusionKind.WARNING, Outcome.UNDECLARED_DRIFT
    )
