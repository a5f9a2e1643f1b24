"""Turns an aggregator's running state into the wire-stable ``AipStats``."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from aip_report.premis import to_iso
from aip_report.schemas import AipFileSample, AipFormatVersionCount, AipStats, KeyCount

if TYPE_CHECKING:
    from aip_report.aggregator import AipStatsAggregator

GENERAL_COUNTS_LIMIT = 20
FORMAT_COUNTS_LIMIT = 50
EXTENSION_COUNTS_LIMIT = 30
LAG_PERCENTILE = 95


def round2(value: float) -> float:
    return int(value * 100 + 0.5) / 100


def percentile(sorted_values: list[int], p: float) -> int:
    """Nearest-rank percentile on an ascending list, truncating the rank."""
    if not sorted_values:
        return 0
    if p <= 0:
        return sorted_values[0]
    if p >= 100:
        return sorted_values[-1]
    rank = int((len(sorted_values) - 1) * p / 100.0)
    rank = min(max(rank, 0), len(sorted_values) - 1)
    return sorted_values[rank]


def top_counts(counts: Mapping[str, int], limit: int) -> list[KeyCount]:
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    if limit > 0:
        ranked = ranked[:limit]
    return [KeyCount(key=key, count=count) for key, count in ranked]


def top_format_versions(counts: Mapping[str, int], limit: int, *, separator: str = "\x1f") -> list[AipFormatVersionCount]:
    rows: list[AipFormatVersionCount] = []
    for signature, count in counts.items():
        parts = signature.split(separator, 2) + ["", ""]
        rows.append(
            AipFormatVersionCount(
                format_registry_key=parts[0],
                format_name=parts[1],
                format_version=parts[2],
                count=count,
            )
        )
    rows.sort(key=lambda r: (-r.count, r.format_registry_key, r.format_name, r.format_version))
    if limit > 0:
        rows = rows[:limit]
    return rows


def _ratio(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round2(numerator / denominator)


def build_aip_stats(state: "AipStatsAggregator") -> AipStats:
    files_total = state.files_total

    duplicate_groups = 0
    duplicate_candidates = 0
    for occurrences in state.basename_counts.values():
        if occurrences > 1:
            duplicate_groups += 1
            duplicate_candidates += occurrences

    lag_avg = 0.0
    lag_p95 = 0
    if state.lag_seconds:
        lags = sorted(state.lag_seconds)
        lag_avg = round2(sum(lags) / len(lags))
        lag_p95 = percentile(lags, LAG_PERCENTILE)

    return AipStats(
        aip_uuid=state.aip_uuid,
        sip_names=sorted(state.sip_names),
        files_total=files_total,
        unique_file_uuids=len(state.file_uuids),
        originals_with_normalized=state.originals_with_normalized,
        originals_without_normalized=state.originals_without_normalized,
        normalized_refs_total=state.normalized_refs_total,
        unique_normalized_object_ids=len(state.normalized_ids),
        normalized_by_original_avg=_ratio(state.normalized_refs_total, files_total),
        total_bytes=state.total_bytes,
        average_bytes=_ratio(state.total_bytes, files_total),
        min_indexed_at=to_iso(state.indexed_range.first),
        max_indexed_at=to_iso(state.indexed_range.last),
        min_created_by_app_date=to_iso(state.created_range.first),
        max_created_by_app_date=to_iso(state.created_range.last),
        first_event_date=to_iso(state.event_range.first),
        last_event_date=to_iso(state.event_range.last),
        status_counts=top_counts(state.status_counts, GENERAL_COUNTS_LIMIT),
        origin_counts=top_counts(state.origin_counts, GENERAL_COUNTS_LIMIT),
        accession_id_counts=top_counts(state.accession_counts, GENERAL_COUNTS_LIMIT),
        is_part_of_counts=top_counts(state.is_part_of_counts, GENERAL_COUNTS_LIMIT),
        archivematica_version_counts=top_counts(state.am_version_counts, GENERAL_COUNTS_LIMIT),
        format_registry_counts=top_counts(state.format_registry_counts, FORMAT_COUNTS_LIMIT),
        format_name_counts=top_counts(state.format_name_counts, FORMAT_COUNTS_LIMIT),
        format_version_counts=top_format_versions(state.format_version_counts, FORMAT_COUNTS_LIMIT),
        premis_event_type_counts=top_counts(state.event_type_counts, FORMAT_COUNTS_LIMIT),
        premis_event_outcome_counts=top_counts(state.event_outcome_counts, FORMAT_COUNTS_LIMIT),
        premis_tool_counts=top_counts(state.event_tool_counts, FORMAT_COUNTS_LIMIT),
        missing_identifiers=state.missing_identifiers,
        unknown_formats=state.unknown_formats,
        missing_created_by_app_date=state.missing_created_by_app_date,
        extension_format_mismatch=state.extension_format_mismatch,
        duplicate_filename_groups=duplicate_groups,
        duplicate_filename_candidates=duplicate_candidates,
        unique_format_signatures=len(state.format_signatures),
        format_diversity_ratio=_ratio(len(state.format_signatures), files_total),
        indexed_lag_avg_seconds=lag_avg,
        indexed_lag_p95_seconds=lag_p95,
        largest_files=[AipFileSample(**vars(sample)) for sample in state.largest_files.items()],
        extension_counts=top_counts(state.raw_extension_counts, EXTENSION_COUNTS_LIMIT),
        raw_extension_counts=dict(state.raw_extension_counts),
    )
