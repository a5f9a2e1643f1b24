from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class KeyCount(BaseModel):
    key: str
    count: int


class AipFileSample(BaseModel):
    file_path: str
    file_uuid: str
    bytes: int
    extension: str
    format_registry_key: str
    format_name: str
    status: str
    created_by_app_date: str
    indexed_at: str


class AipFormatVersionCount(BaseModel):
    format_registry_key: str
    format_name: str
    format_version: str
    count: int


class AipStats(BaseModel):
    aip_uuid: str
    sip_names: list[str] = Field(default_factory=list)
    files_total: int = 0
    unique_file_uuids: int = 0
    originals_with_normalized: int = 0
    originals_without_normalized: int = 0
    normalized_refs_total: int = 0
    unique_normalized_object_ids: int = 0
    normalized_by_original_avg: float = 0.0
    total_bytes: int = 0
    average_bytes: float = 0.0
    min_indexed_at: str = ""
    max_indexed_at: str = ""
    min_created_by_app_date: str = ""
    max_created_by_app_date: str = ""
    first_event_date: str = ""
    last_event_date: str = ""
    status_counts: list[KeyCount] = Field(default_factory=list)
    origin_counts: list[KeyCount] = Field(default_factory=list)
    accession_id_counts: list[KeyCount] = Field(default_factory=list)
    is_part_of_counts: list[KeyCount] = Field(default_factory=list)
    archivematica_version_counts: list[KeyCount] = Field(default_factory=list)
    format_registry_counts: list[KeyCount] = Field(default_factory=list)
    format_name_counts: list[KeyCount] = Field(default_factory=list)
    format_version_counts: list[AipFormatVersionCount] = Field(default_factory=list)
    premis_event_type_counts: list[KeyCount] = Field(default_factory=list)
    premis_event_outcome_counts: list[KeyCount] = Field(default_factory=list)
    premis_tool_counts: list[KeyCount] = Field(default_factory=list)
    missing_identifiers: int = 0
    unknown_formats: int = 0
    missing_created_by_app_date: int = 0
    extension_format_mismatch: int = 0
    duplicate_filename_groups: int = 0
    duplicate_filename_candidates: int = 0
    unique_format_signatures: int = 0
    format_diversity_ratio: float = 0.0
    indexed_lag_avg_seconds: float = 0.0
    indexed_lag_p95_seconds: int = 0
    largest_files: list[AipFileSample] = Field(default_factory=list)
    extension_counts: list[KeyCount] = Field(default_factory=list)
    raw_extension_counts: dict[str, int] = Field(default_factory=dict)


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
