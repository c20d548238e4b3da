"""
Batch planning: how many fixed-size batches a run needs and what each one sends.
"""
import math
from dataclasses import dataclass
from typing import Tuple

from app.domain.imports.errors import InvalidBatchSizeError
from app.domain.imports.normalizer import RawRecordSet


@dataclass(frozen=True)
class BatchPlan:
    batch_size: int
    total_records: int
    total_batches: int

    def bounds(self, batch_index: int) -> Tuple[int, int]:
        """Return the ``[start, end)`` record range covered by ``batch_index``."""
        if batch_index < 0 or batch_index >= self.total_batches:
            raise IndexError(f"Batch index {batch_index} outside 0..{self.total_batches - 1}")
        start = batch_index * self.batch_size
        end = min(start + self.batch_size, self.total_records)
        return start, end

    def is_last(self, batch_index: int) -> bool:
        return batch_index == self.total_batches - 1


def plan_batches(record_count: int, batch_size: int) -> BatchPlan:
    """Compute the batch plan for ``record_count`` records."""
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
        raise InvalidBatchSizeError(f"Batch size must be a positive integer, got {batch_size!r}")
    if record_count < 0:
        raise ValueError(f"Record count cannot be negative, got {record_count}")

    return BatchPlan(
        batch_size=batch_size,
        total_records=record_count,
        total_batches=math.ceil(record_count / batch_size),
    )


def build_batch_payload(records: RawRecordSet, plan: BatchPlan, batch_index: int) -> str:
    """Join one batch of lines, re-attaching the header line when the input had one."""
    start, end = plan.bounds(batch_index)
    batch_lines = list(records.data_lines[start:end])
    if records.has_header and records.header_line:
        batch_lines.insert(0, records.header_line)
    return "\n".join(batch_lines)
