"""
Result output.

- ResultSink: incremental CSV writer for conclusions
- formatters: console and JSON renderings of results and jobs
"""

from .formatters import format_job_console, format_job_json, format_results_console, summarize_results
from .sink import THREE_WAY_COLUMNS, TWO_WAY_COLUMNS, ResultSink, conclusion_row, read_results

__all__ = [
    "ResultSink",
    "conclusion_row",
    "read_results",
    "TWO_WAY_COLUMNS",
    "THREE_WAY_COLUMNS",
    "summarize_results",
    "format_results_console",
    "format_job_console",
    "format_job_json",
]
