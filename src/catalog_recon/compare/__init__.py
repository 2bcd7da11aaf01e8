"""Definition normalization and deep comparison."""

from .deep import Comparison, ComparisonResult, DeepComparator
from .normalize import normalize_definition, sort_table_clauses, split_top_level_commas

__all__ = [
    "Comparison",
    "ComparisonResult",
    "DeepComparator",
    "normalize_definition",
    "sort_table_clauses",
    "split_top_level_commas",
]
