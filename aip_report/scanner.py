"""Sorted ``search_after`` paging over the AIP file index.

Both modes use the same primitive: a sorted query resumed from the sort
values of the previous page's last hit. Page n+1 can only be requested once
page n has arrived, so a scan is strictly sequential.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from aip_report.config import ScanLimits
from aip_report.cursor import decode_cursor, encode_cursor
from aip_report.errors import InvalidIdentifier, ScanCancelled
from aip_report.premis import as_str
from aip_report.search_client import SearchHit, SearchIndexClient

logger = logging.getLogger(__name__)

LIST_SOURCE_FIELDS = ["AIPUUID", "sipName"]
LIST_SORT = [{"AIPUUID": "asc"}, {"FILEUUID": "asc"}]

STATS_SOURCE_FIELDS = [
    "AIPUUID", "sipName", "FILEUUID", "filePath", "fileExtension",
    "status", "indexedAt", "size", "FileSize",
    "origin", "accessionid", "isPartOf", "identifiers", "archivematicaVersion",
    "METS",
]
STATS_SORT = [{"FILEUUID": "asc"}, {"filePath.raw": "asc"}]


class ScanGuard:
    """Deadline and cancellation checked at every page boundary."""

    def __init__(
        self,
        *,
        deadline_s: float | None = None,
        cancel_event: threading.Event | None = None,
        clock=time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = clock() + deadline_s if deadline_s else None
        self._cancel_event = cancel_event

    def check(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ScanCancelled("scan cancelled by caller")
        if self._deadline is not None and self._clock() >= self._deadline:
            raise ScanCancelled("scan deadline exceeded")

    def timeout(self, default_s: float) -> float:
        """Per-request timeout, never past the deadline."""
        if self._deadline is None:
            return default_s
        return max(0.001, min(default_s, self._deadline - self._clock()))


@dataclass
class AipListItem:
    aip_uuid: str
    sip_name: str


@dataclass
class AipListResult:
    items: list[AipListItem] = field(default_factory=list)
    next_cursor: str = ""
    pages: int = 0
    limit: int = 0


def clamp_limit(value: int | None, *, default: int, maximum: int) -> int:
    if value is None or value <= 0:
        value = default
    return max(1, min(value, maximum))


def _fetch(
    client: SearchIndexClient,
    index: str,
    body: dict[str, Any],
    *,
    guard: ScanGuard,
    timeout_s: float,
) -> list[SearchHit]:
    guard.check()
    page = client.search(index, body, timeout_s=guard.timeout(timeout_s))
    guard.check()
    return page.hits


def list_aips(
    client: SearchIndexClient,
    *,
    index: str,
    limit: int | None,
    cursor: str | None,
    limits: ScanLimits,
    guard: ScanGuard | None = None,
    timeout_s: float = 5.0,
) -> AipListResult:
    """Collect up to *limit* distinct AIP uuids starting after *cursor*."""
    guard = guard or ScanGuard()
    limit = clamp_limit(limit, default=limits.list_default_limit, maximum=limits.list_max_limit)
    search_after = decode_cursor(cursor)

    result = AipListResult(limit=limit)
    seen: set[str] = set()
    next_sort: list[Any] = []

    while result.pages < limits.list_max_pages and len(result.items) < limit:
        body: dict[str, Any] = {
            "size": limit * limits.list_overfetch_factor,
            "_source": list(LIST_SOURCE_FIELDS),
            "sort": [dict(s) for s in LIST_SORT],
        }
        if search_after:
            body["search_after"] = search_after

        hits = _fetch(client, index, body, guard=guard, timeout_s=timeout_s)
        result.pages += 1
        if not hits:
            next_sort = []
            break

        for hit in hits:
            aip_uuid = as_str(hit.source.get("AIPUUID"))
            if not aip_uuid or aip_uuid in seen:
                continue
            seen.add(aip_uuid)
            result.items.append(AipListItem(aip_uuid=aip_uuid, sip_name=as_str(hit.source.get("sipName"))))
            if len(result.items) >= limit:
                break

        next_sort = hits[-1].sort
        if not next_sort:
            break
        search_after = next_sort

    if next_sort:
        result.next_cursor = encode_cursor(next_sort)
    return result


def iter_aip_hits(
    client: SearchIndexClient,
    *,
    index: str,
    aip_uuid: str,
    page_size: int | None,
    limits: ScanLimits,
    guard: ScanGuard | None = None,
    timeout_s: float = 5.0,
) -> Iterator[SearchHit]:
    """Yield every file hit of one AIP, page by page."""
    aip_uuid = (aip_uuid or "").strip()
    if not aip_uuid:
        raise InvalidIdentifier()
    return _iter_aip_pages(
        client,
        index=index,
        aip_uuid=aip_uuid,
        page_size=clamp_limit(
            page_size,
            default=limits.stats_default_page_size,
            maximum=limits.stats_max_page_size,
        ),
        max_pages=limits.stats_max_pages,
        guard=guard or ScanGuard(),
        timeout_s=timeout_s,
    )


def _iter_aip_pages(
    client: SearchIndexClient,
    *,
    index: str,
    aip_uuid: str,
    page_size: int,
    max_pages: int,
    guard: ScanGuard,
    timeout_s: float,
) -> Iterator[SearchHit]:
    search_after: list[Any] = []
    for page in range(max_pages):
        body: dict[str, Any] = {
            "size": page_size,
            "_source": list(STATS_SOURCE_FIELDS),
            "query": {
                "bool": {
                    "should": [
                        {"term": {"AIPUUID.keyword": aip_uuid}},
                        {"term": {"AIPUUID": aip_uuid}},
                    ],
                    "minimum_should_match": 1,
                }
            },
            "sort": [dict(s) for s in STATS_SORT],
        }
        if search_after:
            body["search_after"] = search_after

        hits = _fetch(client, index, body, guard=guard, timeout_s=timeout_s)
        if not hits:
            return
        yield from hits

        search_after = hits[-1].sort
        if not search_after:
            return
    logger.warning("aip_scan_page_ceiling aip_uuid=%s max_pages=%s", aip_uuid, max_pages)
