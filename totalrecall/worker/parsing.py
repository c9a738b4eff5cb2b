import re
import logging
from pathlib import Path
from typing import Optional

from totalrecall.database.metrics import MetricRecord
from totalrecall.worker.locking import FileLock

log = logging.getLogger(__name__)

OP_MAX_LENGTH = 10
FIELD_MAX_LENGTH = 100

# Bounds of the destination table's `size int` column.
SIZE_MIN = -2**31
SIZE_MAX = 2**31 - 1

METRIC_LINE_PATTERN = re.compile(r"([^,\r\n]+),([^,\r\n]+),([^,\r\n]+),([^,\r\n]+),([+-]?[0-9]+)")


def _byte_length(field: str) -> int:
    return len(field.encode("utf-8"))


def parse_metric_line(line: str) -> Optional[MetricRecord]:
    """
    Parses one line of the metrics file.

    A valid line has the shape `op,subject,start_time,finish_time,size`. The
    first four fields are kept verbatim and their length limits count UTF-8
    bytes. `size` must be a base-10 integer that fits the destination column.
    The trailing newline is stripped first.

    :param line: A raw line read from the metrics file.
    :return MetricRecord: The parsed record, or None if the line is malformed.
    """
    match = METRIC_LINE_PATTERN.fullmatch(line.rstrip("\r\n"))
    if match is None:
        return None

    op, subject, start_time, finish_time, raw_size = match.groups()
    if _byte_length(op) > OP_MAX_LENGTH:
        return None
    if any(_byte_length(field) > FIELD_MAX_LENGTH for field in (subject, start_time, finish_time)):
        return None

    size = int(raw_size)
    if not SIZE_MIN <= size <= SIZE_MAX:
        return None
    return MetricRecord(op=op, subject=subject, start_time=start_time, finish_time=finish_time, size=size)


def format_metric_line(record: MetricRecord) -> str:
    """
    Renders a record as a newline-terminated metrics file line.

    :param record: The record to render.
    :return str: The line, including its trailing newline.
    :raises ValueError: If the record would not parse back to itself.
    """
    line = f"{record.op},{record.subject},{record.start_time},{record.finish_time},{record.size}"
    if parse_metric_line(line) != record:
        raise ValueError(f"Metric record cannot be written as a metrics line: {record}")
    return line + "\n"


def append_metric(record: MetricRecord, metrics_path: Path, lock_path: Path) -> None:
    """
    Appends a record to the metrics file while holding the ingestion lock.

    :param record: The record to append.
    :param metrics_path: The path of the metrics file.
    :param lock_path: The path of the lock file shared with the ingestor.
    """
    line = format_metric_line(record)
    with FileLock(lock_path):
        with open(metrics_path, "a", encoding="utf-8") as f:
            f.write(line)
    log.info(f"Recorded {record.op} metric for '{record.subject}'.")
