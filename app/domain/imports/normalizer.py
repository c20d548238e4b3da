"""
Input normalization for pasted or uploaded delimited text.

Raw operator input is turned into an ordered list of data lines plus an
optional header line. Whether the first line is a header is decided by a
pluggable ``HeaderDetector`` so that importers can choose between marker
matching, a typed-row sniff, or an explicit operator override.
"""
from __future__ import annotations

import csv
import io
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from app.core.config import settings

logger = logging.getLogger(__name__)

TYPED_SNIFF_ROWS = 5
HEADER_MODES = ("markers", "typed", "present", "absent")

# Only CRLF, LF and CR end a record; form feeds, NEL (\x85) and Unicode
# separators are data.
LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")


@dataclass(frozen=True)
class RawRecordSet:
    header_line: Optional[str]
    data_lines: Tuple[str, ...]
    has_header: bool

    @property
    def record_count(self) -> int:
        return len(self.data_lines)


@dataclass(frozen=True)
class InputPreview:
    """Summary shown to operators before a run is started."""
    total_records: int
    has_header: bool
    header_line: Optional[str]
    estimated_batches: int
    rows: List[List[str]] = field(default_factory=list)


class HeaderDetector(ABC):
    """Strategy deciding whether the first non-blank line is a header."""

    @abstractmethod
    def looks_like_header(self, first_line: str, sample_lines: Sequence[str]) -> bool:
        """
        Args:
            first_line: The first non-blank line of the input.
            sample_lines: A few following lines, for detectors that compare rows.
        """


class MarkerHeaderDetector(HeaderDetector):
    """
    Treats the first line as a header when it contains any marker substring.

    Matching is case-insensitive. A data value that happens to contain a
    marker (an email address, for instance) is classified as a header too.
    """

    def __init__(self, markers: Optional[Iterable[str]] = None):
        source = settings.header_markers if markers is None else markers
        self.markers = tuple(marker.casefold() for marker in source if marker)

    def looks_like_header(self, first_line: str, sample_lines: Sequence[str]) -> bool:
        folded = first_line.casefold()
        return any(marker in folded for marker in self.markers)


class TypedRowHeaderDetector(HeaderDetector):
    """
    Detect a header row by comparing cell types of the first rows.

    The first row is a header when none of its cells are numeric or empty
    and at least one column is numeric across every sampled data row.
    Text-only inputs are reported as headerless.
    """

    def looks_like_header(self, first_line: str, sample_lines: Sequence[str]) -> bool:
        data_sample = list(sample_lines)[: TYPED_SNIFF_ROWS - 1]
        if not data_sample:
            return False

        try:
            df_sample = pd.read_csv(
                io.StringIO("\n".join([first_line, *data_sample])),
                header=None,
                dtype=str,
                keep_default_na=False,
            ).fillna("")
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.warning(f"Typed header sniff could not parse sample rows: {e}")
            return False

        if len(df_sample) < 2:
            return False

        first_row = df_sample.iloc[0]
        if any(_looks_numeric(value) or not value.strip() for value in first_row):
            return False

        data_rows = df_sample.iloc[1:]
        for column in data_rows.columns:
            values = [value for value in data_rows[column] if value.strip()]
            if values and all(_looks_numeric(value) for value in values):
                logger.debug(f"Header detected: column {column} is numeric below a text first row")
                return True
        return False


class FixedHeaderDetector(HeaderDetector):
    """Operator override: the header is known to be present (or absent)."""

    def __init__(self, present: bool):
        self.present = present

    def looks_like_header(self, first_line: str, sample_lines: Sequence[str]) -> bool:
        return self.present


def _looks_numeric(value: str) -> bool:
    text = value.strip().replace(",", "")
    if not text:
        return False
    try:
        number = float(text)
    except ValueError:
        return False
    return not math.isnan(number)


def header_detector_for(mode: str, markers: Optional[Iterable[str]] = None) -> HeaderDetector:
    """Build a detector from a header mode name (markers, typed, present, absent)."""
    if mode == "markers":
        return MarkerHeaderDetector(markers)
    if mode == "typed":
        return TypedRowHeaderDetector()
    if mode == "present":
        return FixedHeaderDetector(True)
    if mode == "absent":
        return FixedHeaderDetector(False)
    raise ValueError(f"Unknown header mode '{mode}'. Expected one of: {', '.join(HEADER_MODES)}")


def split_input_lines(text: str) -> List[str]:
    """Split raw text on CRLF, LF or CR, dropping blank lines."""
    return [line for line in LINE_BREAK_RE.split(text.strip()) if line.strip()]


def normalize_input(text: str, detector: Optional[HeaderDetector] = None) -> RawRecordSet:
    """
    Turn raw delimited text into an ordered record set.

    The caller is responsible for rejecting a record set with zero data lines.
    """
    detector = detector or MarkerHeaderDetector()
    lines = split_input_lines(text or "")
    if not lines:
        return RawRecordSet(header_line=None, data_lines=(), has_header=False)

    first_line = lines[0]
    if detector.looks_like_header(first_line, lines[1:TYPED_SNIFF_ROWS]):
        return RawRecordSet(header_line=first_line, data_lines=tuple(lines[1:]), has_header=True)
    return RawRecordSet(header_line=None, data_lines=tuple(lines), has_header=False)


def preview_input(
    text: str,
    batch_size: int,
    detector: Optional[HeaderDetector] = None,
    rows: int = 5,
    columns: int = 5,
) -> InputPreview:
    """Describe what a run over ``text`` would do, without dispatching anything."""
    from app.domain.imports.planner import plan_batches

    records = normalize_input(text, detector)
    plan = plan_batches(records.record_count, batch_size)

    preview_lines = split_input_lines(text or "")[:rows]
    preview_rows = [row[:columns] for row in csv.reader(io.StringIO("\n".join(preview_lines)))]

    return InputPreview(
        total_records=records.record_count,
        has_header=records.has_header,
        header_line=records.header_line,
        estimated_batches=plan.total_batches,
        rows=preview_rows,
    )
