from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from aip_report.aggregator import AipStatsAggregator
from aip_report.config import SearchIndexConfig
from aip_report.errors import IndexDisabled
from aip_report.metrics import ProbeMetrics
from aip_report.scanner import AipListResult, ScanGuard, iter_aip_hits, list_aips
from aip_report.schemas import AipStats
from aip_report.search_client import SearchIndexClient, ServiceStats

logger = logging.getLogger(__name__)

PROBE_TARGET = "elasticsearch"

R = TypeVar("R")


class AipAnalyticsService:
    """Listing, per-AIP statistics and index probes for one search index.

    Every call rescans the index; nothing is cached between requests.
    """

    def __init__(
        self,
        *,
        config: SearchIndexConfig,
        client: SearchIndexClient | None = None,
        metrics: ProbeMetrics | None = None,
    ) -> None:
        self._config = config
        self._client = client if client is not None else SearchIndexClient(config.endpoint, timeout_s=config.timeout_s)
        self.metrics = metrics if metrics is not None else ProbeMetrics()

    @property
    def config(self) -> SearchIndexConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled and self._client.enabled

    def close(self) -> None:
        self._client.close()

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise IndexDisabled()

    def _index(self, index: str | None) -> str:
        return (index or "").strip() or self._config.aip_index

    def _guard(self, cancel_event: threading.Event | None) -> ScanGuard:
        return ScanGuard(deadline_s=self._config.scan_deadline_s or None, cancel_event=cancel_event)

    @contextmanager
    def _probe(self, operation: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.metrics.record(PROBE_TARGET, operation, time.perf_counter() - started, exc)
            raise
        self.metrics.record(PROBE_TARGET, operation, time.perf_counter() - started)

    def _call(self, operation: str, fn: Callable[[], R]) -> R:
        self._require_enabled()
        with self._probe(operation):
            return fn()

    def list_aips(
        self,
        *,
        limit: int | None = None,
        cursor: str | None = None,
        index: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AipListResult:
        index_name = self._index(index)
        result = self._call(
            "ListAIPs",
            lambda: list_aips(
                self._client,
                index=index_name,
                limit=limit,
                cursor=cursor,
                limits=self._config.limits,
                guard=self._guard(cancel_event),
                timeout_s=self._config.timeout_s,
            ),
        )
        logger.info(
            "aip_list index=%s items=%s pages=%s has_next=%s",
            index_name,
            len(result.items),
            result.pages,
            bool(result.next_cursor),
        )
        return result

    def aip_stats(
        self,
        aip_uuid: str,
        *,
        page_size: int | None = None,
        index: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AipStats:
        index_name = self._index(index)

        def _scan() -> AipStats:
            hits = iter_aip_hits(
                self._client,
                index=index_name,
                aip_uuid=aip_uuid,
                page_size=page_size,
                limits=self._config.limits,
                guard=self._guard(cancel_event),
                timeout_s=self._config.timeout_s,
            )
            aggregator = AipStatsAggregator(aip_uuid=aip_uuid.strip())
            for hit in hits:
                aggregator.add_hit(hit.source)
            return aggregator.finalize()

        logger.info("aip_stats_scan_started index=%s aip_uuid=%s page_size=%s", index_name, aip_uuid, page_size)
        started = time.perf_counter()
        stats = self._call("AIPStats", _scan)
        logger.info(
            "aip_stats_scanned index=%s aip_uuid=%s files=%s elapsed_ms=%d",
            index_name,
            stats.aip_uuid,
            stats.files_total,
            (time.perf_counter() - started) * 1000,
        )
        return stats

    def search_transfer(self, transfer_uuid: str, *, limit: int | None = None) -> dict[str, Any]:
        effective = limit if limit and limit > 0 else self._config.lookup_limit
        return self._call(
            "SearchTransfer",
            lambda: self._client.search_transfer(transfer_uuid, limit=effective),
        )

    def service_stats(self) -> ServiceStats:
        return self._call("ServiceStats", self._client.service_stats)
