"""
Result sink.

Append-only CSV writer for conclusions. One line is written per conclusion as
soon as it is classified, so a partial result stays on disk if the job fails.
"""

import csv
import logging
import os
from collections import Counter
from collections.abc import Callable, Iterator
from typing import Any

from catalog_recon.errors import SinkError
from catalog_recon.metrics import CONCLUSIONS_WRITTEN
from catalog_recon.models import Conclusion

logger = logging.getLogger(__name__)

TWO_WAY_COLUMNS = [
    "OWNER",
    "OBJECT_NAME",
    "OBJECT_TYPE",
    "IN_MASTER",
    "IN_SLAVE",
    "MASTER_STATUS",
    "SLAVE_STATUS",
    "CONCLUSION",
    "CONCLUSION_TYPE",
]

THREE_WAY_COLUMNS = TWO_WAY_COLUMNS[:5] + ["IN_MANIFEST"] + TWO_WAY_COLUMNS[5:]

MISSING_STATUS = "-"


def _flag(value: bool | None) -> str:
    return "YES" if value else "NO"


def conclusion_row(conclusion: Conclusion, include_manifest: bool) -> list[str]:
    row = [
        conclusion.owner,
        conclusion.name,
        conclusion.type,
        _flag(conclusion.in_master),
        _flag(conclusion.in_slave),
    ]
    if include_manifest:
        row.append(_flag(conclusion.in_manifest))
    row.extend([
        conclusion.master_status or MISSING_STATUS,
        conclusion.slave_status or MISSING_STATUS,
        conclusion.text,
        conclusion.kind.value,
    ])
    return row


class ResultSink:
    """
    CSV result writer with incremental counters.

    Usage:
        with ResultSink(path, include_manifest=True) as sink:
            sink.write(conclusion)
    """

    def __init__(
        self,
        path: str,
        include_manifest: bool,
        on_write: Callable[[Conclusion], None] | None = None,
        mode: str = "two_way",
    ):
        """
        Initialize result sink.

        Args:
            path: Output file path; parent directories are created
            include_manifest: Write the IN_MANIFEST column (three-way)
            on_write: Called with every conclusion after it is written
            mode: Reconciliation mode label for metrics
        """
        self.path = path
        self.include_manifest = include_manifest
        self.on_write = on_write
        self.mode = mode
        self.written = 0
        self.counts_by_kind: Counter = Counter()
        self._file = None
        self._writer = None

    @property
    def columns(self) -> list[str]:
        return THREE_WAY_COLUMNS if self.include_manifest else TWO_WAY_COLUMNS

    def open(self) -> "ResultSink":
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self._file = open(self.path, "w", newline="", encoding="utf-8")
            self._writer = csv.writer(self._file, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
            self._writer.writerow(self.columns)
        except OSError as e:
            raise SinkError(f"Cannot open result file {self.path}: {e}") from e

        logger.debug(f"Result sink opened: {self.path}")
        return self

    def write(self, conclusion: Conclusion) -> None:
        if self._writer is None:
            raise SinkError(f"Result sink {self.path} is not open")

        try:
            self._writer.writerow(conclusion_row(conclusion, self.include_manifest))
        except OSError as e:
            raise SinkError(f"Failed writing to {self.path}: {e}") from e

        self.written += 1
        self.counts_by_kind[conclusion.kind.value] += 1
        CONCLUSIONS_WRITTEN.labels(mode=self.mode, kind=conclusion.kind.value).inc()

        if self.on_write is not None:
            self.on_write(conclusion)

    def flush(self) -> None:
        if self._file is None:
            return
        try:
            self._file.flush()
        except OSError as e:
            raise SinkError(f"Failed flushing {self.path}: {e}") from e

    def close(self) -> None:
        """Flush and close; safe to call more than once."""
        file, self._file = self._file, None
        self._writer = None
        if file is None:
            return
        try:
            file.close()
        except OSError as e:
            raise SinkError(f"Failed closing {self.path}: {e}") from e
        logger.debug(f"Result sink closed: {self.path} ({self.written} rows)")

    def __enter__(self) -> "ResultSink":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def read_results(path: str) -> Iterator[dict[str, Any]]:
    """
    Read a result file back as dictionaries keyed by column name.

    Raises:
        SinkError: If the file cannot be read
    """
    try:
        with open(path, newline="", encoding="utf-8") as f:
            yield from csv.DictReader(f)
    except OSError as e:
        raise SinkError(f"Cannot read result file {path}: {e}") from e
