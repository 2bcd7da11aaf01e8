"""
Merge-reconciliation engine.

- MergeReconciler: k-way sorted merge of master, slave and manifest cursors
- classify: presence and comparison classification tables
- TaskRunner: connection lifecycle around one task's merge
"""

from .classify import classify_comparison, classify_presence, is_deferred
from .merge import MergeReconciler, MergeStats
from .task import TaskRunner

__all__ = [
    "MergeReconciler",
    "MergeStats",
    "TaskRunner",
    "classify_comparison",
    "classify_presence",
    "is_deferred",
]
