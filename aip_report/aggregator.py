"""Single-pass accumulation of per-AIP file statistics.

The aggregator only keeps counters, distinct sets, ranges and the lag
samples; hits are never buffered. :meth:`AipStatsAggregator.finalize` hands
the running state to :func:`aip_report.assembler.build_aip_stats`.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from aip_report.assembler import build_aip_stats
from aip_report.premis import FileRecord, to_iso
from aip_report.schemas import AipStats

T = TypeVar("T")

LARGEST_FILES_LIMIT = 10
SIGNATURE_SEPARATOR = "\x1f"

_EXPECTED_EXTENSIONS_BY_KEY: dict[str, frozenset[str]] = {
    "fmt/353": frozenset({"tif", "tiff"}),
    "fmt/11": frozenset({"png"}),
    "fmt/4": frozenset({"gif"}),
    "fmt/91": frozenset({"svg"}),
    "fmt/43": frozenset({"jpg", "jpeg"}),
    "fmt/402": frozenset({"tga"}),
    "x-fmt/392": frozenset({"jp2", "j2k", "jpf"}),
}

# Checked in order; the first description contained in the format name wins.
_EXPECTED_EXTENSIONS_BY_NAME: tuple[tuple[str, frozenset[str]], ...] = (
    ("portable network graphics", frozenset({"png"})),
    ("graphics interchange format", frozenset({"gif"})),
    ("scalable vector graphics", frozenset({"svg"})),
    ("jpeg", frozenset({"jpg", "jpeg"})),
    ("tiff", frozenset({"tif", "tiff"})),
)


def expected_extensions(registry_key: str, format_name: str) -> frozenset[str]:
    key = (registry_key or "").strip().lower()
    if key in _EXPECTED_EXTENSIONS_BY_KEY:
        return _EXPECTED_EXTENSIONS_BY_KEY[key]
    name = (format_name or "").strip().lower()
    for description, extensions in _EXPECTED_EXTENSIONS_BY_NAME:
        if description in name:
            return extensions
    return frozenset()


def is_extension_mismatch(registry_key: str, format_name: str, extension: str) -> bool:
    """True when the format implies extensions and *extension* is not one of them."""
    ext = (extension or "").strip().lower().removeprefix(".")
    if not ext:
        return False
    expected = expected_extensions(registry_key, format_name)
    if not expected:
        return False
    return ext not in expected


class BoundedTopK(Generic[T]):
    """Keeps at most *capacity* items, re-sorted by *sort_key* after each push."""

    def __init__(self, capacity: int, sort_key: Callable[[T], Any]) -> None:
        self._capacity = capacity
        self._sort_key = sort_key
        self._items: list[T] = []

    def push(self, item: T) -> None:
        if self._capacity <= 0:
            return
        self._items.append(item)
        self._items.sort(key=self._sort_key)
        if len(self._items) > self._capacity:
            del self._items[self._capacity :]

    def items(self) -> list[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class FileSample:
    file_path: str
    file_uuid: str
    bytes: int
    extension: str
    format_registry_key: str
    format_name: str
    status: str
    created_by_app_date: str
    indexed_at: str


def _largest_first(sample: FileSample) -> tuple[int, str]:
    return (-sample.bytes, sample.file_path)


@dataclass
class TimeRange:
    first: datetime | None = None
    last: datetime | None = None

    def add(self, value: datetime | None) -> None:
        if value is None:
            return
        if self.first is None or value < self.first:
            self.first = value
        if self.last is None or value > self.last:
            self.last = value


@dataclass
class AipStatsAggregator:
    aip_uuid: str
    files_total: int = 0
    total_bytes: int = 0
    originals_with_normalized: int = 0
    originals_without_normalized: int = 0
    normalized_refs_total: int = 0
    missing_identifiers: int = 0
    unknown_formats: int = 0
    missing_created_by_app_date: int = 0
    extension_format_mismatch: int = 0

    sip_names: set[str] = field(default_factory=set)
    file_uuids: set[str] = field(default_factory=set)
    normalized_ids: set[str] = field(default_factory=set)
    format_signatures: set[str] = field(default_factory=set)

    status_counts: Counter[str] = field(default_factory=Counter)
    origin_counts: Counter[str] = field(default_factory=Counter)
    accession_counts: Counter[str] = field(default_factory=Counter)
    is_part_of_counts: Counter[str] = field(default_factory=Counter)
    am_version_counts: Counter[str] = field(default_factory=Counter)
    format_registry_counts: Counter[str] = field(default_factory=Counter)
    format_name_counts: Counter[str] = field(default_factory=Counter)
    format_version_counts: Counter[str] = field(default_factory=Counter)
    event_type_counts: Counter[str] = field(default_factory=Counter)
    event_outcome_counts: Counter[str] = field(default_factory=Counter)
    event_tool_counts: Counter[str] = field(default_factory=Counter)
    raw_extension_counts: Counter[str] = field(default_factory=Counter)
    basename_counts: Counter[str] = field(default_factory=Counter)

    indexed_range: TimeRange = field(default_factory=TimeRange)
    created_range: TimeRange = field(default_factory=TimeRange)
    event_range: TimeRange = field(default_factory=TimeRange)
    lag_seconds: list[int] = field(default_factory=list)
    largest_files: BoundedTopK[FileSample] = field(
        default_factory=lambda: BoundedTopK(LARGEST_FILES_LIMIT, _largest_first)
    )

    def add_hit(self, source: dict[str, Any]) -> FileRecord:
        record = FileRecord.from_source(source)
        self.add(record)
        return record

    def add(self, record: FileRecord) -> None:
        meta = record.meta
        self.files_total += 1

        if record.sip_name:
            self.sip_names.add(record.sip_name)
        if record.status:
            self.status_counts[record.status] += 1
        if record.origin:
            self.origin_counts[record.origin] += 1
        if record.accession_id:
            self.accession_counts[record.accession_id] += 1
        self.is_part_of_counts.update(record.is_part_of)
        if record.archivematica_version:
            self.am_version_counts[record.archivematica_version] += 1
        if record.missing_identifiers:
            self.missing_identifiers += 1
        if record.file_uuid:
            self.file_uuids.add(record.file_uuid)

        self.raw_extension_counts[record.extension] += 1
        basename = record.basename
        if basename:
            self.basename_counts[basename.lower()] += 1

        self.indexed_range.add(record.indexed_at)

        if record.size > 0:
            self.total_bytes += record.size
            self.largest_files.push(
                FileSample(
                    file_path=record.file_path,
                    file_uuid=record.file_uuid,
                    bytes=record.size,
                    extension=record.extension,
                    format_registry_key=meta.format_registry_key,
                    format_name=meta.format_name,
                    status=record.status,
                    created_by_app_date=to_iso(meta.created_by_app),
                    indexed_at=to_iso(record.indexed_at),
                )
            )

        self._add_format(record)
        self._add_created(record)

        if is_extension_mismatch(meta.format_registry_key, meta.format_name, record.raw_extension):
            self.extension_format_mismatch += 1

        for occurred in meta.event_dates:
            self.event_range.add(occurred)
        for event in meta.events:
            if event.event_type:
                self.event_type_counts[event.event_type] += 1
            if event.outcome:
                self.event_outcome_counts[event.outcome] += 1
            if event.tool_version:
                self.event_tool_counts[event.tool_version] += 1

        related = meta.normalized_object_ids
        if related:
            self.originals_with_normalized += 1
            self.normalized_refs_total += len(related)
            self.normalized_ids.update(related)
        else:
            self.originals_without_normalized += 1

    def _add_format(self, record: FileRecord) -> None:
        meta = record.meta
        if meta.format_registry_key:
            self.format_registry_counts[meta.format_registry_key] += 1
        if meta.format_name:
            self.format_name_counts[meta.format_name] += 1
        if not meta.format_registry_key and not meta.format_name:
            self.unknown_formats += 1
        if meta.format_registry_key or meta.format_name or meta.format_version:
            signature = SIGNATURE_SEPARATOR.join(
                (meta.format_registry_key, meta.format_name, meta.format_version)
            )
            self.format_version_counts[signature] += 1
            self.format_signatures.add(signature)

    def _add_created(self, record: FileRecord) -> None:
        created = record.meta.created_by_app
        if created is None:
            self.missing_created_by_app_date += 1
            return
        self.created_range.add(created)
        indexed = record.indexed_at
        if indexed is not None and indexed > created:
            self.lag_seconds.append(int((indexed - created).total_seconds()))

    def finalize(self) -> AipStats:
        return build_aip_stats(self)
