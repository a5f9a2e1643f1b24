"""METS/PREMIS metadata extraction for one indexed file document.

The index stores the METS export as nested ``*_dict`` maps. Exports are not
consistent about repeated elements: a single relationship or event may be
stored as an object instead of a one-element list. Every repeated element is
read through :func:`as_list` so both encodings walk the same way.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_OBJECT_PATH = (
    "amdSec",
    "mets:amdSec_dict",
    "mets:techMD_dict",
    "mets:mdWrap_dict",
    "mets:xmlData_dict",
    "premis:object_dict",
)
_EVENT_PATH = ("mets:mdWrap_dict", "mets:xmlData_dict", "premis:event_dict")

_ISO_LAYOUTS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def as_map(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def as_list(value: Any) -> list[Any]:
    """A list stays a list, a single object becomes ``[object]``, anything else ``[]``."""
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        return [value]
    return []


def as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def as_float(value: Any) -> float:
    """Numeric coercion; anything unparsable or non-finite reads as ``0.0``."""
    if isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return 0.0
    except (ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def dig(value: Any, *keys: str) -> Mapping[str, Any]:
    cur = as_map(value)
    for key in keys:
        cur = as_map(cur.get(key))
    return cur


def strings_from_any(value: Any) -> list[str]:
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    if isinstance(value, list):
        return [s for s in (as_str(item) for item in value) if s]
    return []


def count_items(value: Any) -> int:
    if isinstance(value, (list, Mapping)):
        return len(value)
    if isinstance(value, str):
        return 1 if value.strip() else 0
    return 0


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def parse_iso(value: Any) -> datetime | None:
    """Parse an offset-qualified ISO-8601 timestamp, ``None`` if it can't be read."""
    text = as_str(value)
    if not text:
        return None
    text = _FRACTION_RE.sub(r"\1", text)
    for layout in _ISO_LAYOUTS:
        try:
            parsed = datetime.strptime(text, layout)
        except ValueError:
            continue
        return parsed.astimezone(UTC)
    return None


def parse_epoch(value: Any) -> datetime | None:
    seconds = as_float(value)
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def to_iso(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def base_from_path(path: str) -> str:
    name = (path or "").strip()
    if not name:
        return ""
    name = name.rsplit("/", 1)[-1]
    name = name.rsplit("\\", 1)[-1]
    return name.strip()


def ext_from_path(path: str) -> str:
    name = base_from_path(path)
    dot = name.rfind(".")
    if dot >= 0 and dot + 1 < len(name):
        return name[dot + 1 :].strip().lower()
    return "unknown"


# ---------------------------------------------------------------------------
# PREMIS records
# ---------------------------------------------------------------------------


def parse_tool_version(detail: str) -> str:
    """``program="X"; version="Y"`` -> ``"X Y"``; either half alone is kept."""
    detail = (detail or "").strip()
    if not detail:
        return ""
    program = ""
    version = ""
    for part in detail.split(";"):
        item = part.strip()
        if item.startswith("program="):
            program = item[len("program=") :].strip('"')
        if item.startswith("version="):
            version = item[len("version=") :].strip('"')
    if program and version:
        return f"{program} {version}"
    return program or version


@dataclass
class PremisEvent:
    event_type: str
    outcome: str
    tool_version: str


@dataclass
class ObjectMeta:
    size: int = 0
    format_registry_key: str = ""
    format_name: str = ""
    format_version: str = ""
    created_by_app: datetime | None = None
    event_dates: list[datetime] = field(default_factory=list)
    events: list[PremisEvent] = field(default_factory=list)
    normalized_object_ids: list[str] = field(default_factory=list)


def extract_normalized_object_ids(mets: Any) -> list[str]:
    obj = dig(mets, *_OBJECT_PATH)
    ids: set[str] = set()
    for rel in as_list(obj.get("premis:relationship_dict")):
        id_dict = as_map(as_map(rel).get("premis:relatedObjectIdentifier_dict"))
        value = as_str(id_dict.get("premis:relatedObjectIdentifierValue"))
        if value:
            ids.add(value)
    return sorted(ids)


def extract_events(mets: Any) -> tuple[list[datetime], list[PremisEvent]]:
    amd = dig(mets, "amdSec", "mets:amdSec_dict")
    dates: list[datetime] = []
    events: list[PremisEvent] = []
    for wrapped in as_list(amd.get("mets:digiprovMD_dict")):
        ev = dig(wrapped, *_EVENT_PATH)
        occurred = parse_iso(ev.get("premis:eventDateTime"))
        if occurred is not None:
            dates.append(occurred)
        event_type = as_str(ev.get("premis:eventType"))
        outcome = as_str(as_map(ev.get("premis:eventOutcomeInformation_dict")).get("premis:eventOutcome"))
        detail = as_str(as_map(ev.get("premis:eventDetailInformation_dict")).get("premis:eventDetail"))
        tool_version = parse_tool_version(detail)
        if event_type or outcome or tool_version:
            events.append(PremisEvent(event_type=event_type, outcome=outcome, tool_version=tool_version))
    return dates, events


def extract_object_meta(mets: Any) -> ObjectMeta:
    if not isinstance(mets, Mapping):
        return ObjectMeta()
    obj = dig(mets, *_OBJECT_PATH)
    characteristics = as_map(obj.get("premis:objectCharacteristics_dict"))
    fmt = as_map(characteristics.get("premis:format_dict"))
    designation = as_map(fmt.get("premis:formatDesignation_dict"))
    registry = as_map(fmt.get("premis:formatRegistry_dict"))
    creating_app = as_map(characteristics.get("premis:creatingApplication_dict"))
    event_dates, events = extract_events(mets)
    return ObjectMeta(
        size=int(as_float(characteristics.get("premis:size"))),
        format_registry_key=as_str(registry.get("premis:formatRegistryKey")),
        format_name=as_str(designation.get("premis:formatName")),
        format_version=as_str(designation.get("premis:formatVersion")),
        created_by_app=parse_iso(creating_app.get("premis:dateCreatedByApplication")),
        event_dates=event_dates,
        events=events,
        normalized_object_ids=extract_normalized_object_ids(mets),
    )


@dataclass
class FileRecord:
    """One indexed file, flattened from its ``_source`` document."""

    aip_uuid: str
    sip_name: str
    file_uuid: str
    file_path: str
    extension: str
    raw_extension: str
    size: int
    status: str
    origin: str
    accession_id: str
    is_part_of: list[str]
    archivematica_version: str
    missing_identifiers: bool
    indexed_at: datetime | None
    meta: ObjectMeta

    @property
    def basename(self) -> str:
        return base_from_path(self.file_path)

    @classmethod
    def from_source(cls, source: Mapping[str, Any]) -> "FileRecord":
        src = as_map(source)
        file_path = as_str(src.get("filePath"))
        extension = ext_from_path(file_path)
        # a bare "." is kept as an empty extension, never replaced by the path's
        raw_extension = (as_str(src.get("fileExtension")).lower() or extension).removeprefix(".")
        meta = extract_object_meta(src.get("METS"))
        size = meta.size
        if size <= 0:
            size = int(as_float(src.get("size")))
        if size <= 0:
            size = int(as_float(src.get("FileSize")))
        return cls(
            aip_uuid=as_str(src.get("AIPUUID")),
            sip_name=as_str(src.get("sipName")),
            file_uuid=as_str(src.get("FILEUUID")),
            file_path=file_path,
            extension=extension,
            raw_extension=raw_extension,
            size=max(size, 0),
            status=as_str(src.get("status")),
            origin=as_str(src.get("origin")),
            accession_id=as_str(src.get("accessionid")),
            is_part_of=strings_from_any(src.get("isPartOf")),
            archivematica_version=as_str(src.get("archivematicaVersion")),
            missing_identifiers=count_items(src.get("identifiers")) == 0,
            indexed_at=parse_epoch(src.get("indexedAt")),
            meta=meta,
        )
