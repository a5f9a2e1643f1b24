"""HTTP transport to the Elasticsearch-compatible search index.

The client holds a pooled ``requests.Session`` and no per-call state, so one
instance is shared by every request the service handles.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import requests

from aip_report.errors import IndexDisabled, IndexUnavailable, InvalidIdentifier
from aip_report.premis import as_float, as_map, as_str

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 2048


@dataclass
class SearchHit:
    id: str
    sort: list[Any]
    source: dict[str, Any]
    index: str = ""
    score: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> "SearchHit":
        raw = as_map(data)
        sort = raw.get("sort")
        return cls(
            id=str(raw.get("_id") or ""),
            sort=list(sort) if isinstance(sort, list) else [],
            source=dict(as_map(raw.get("_source"))),
            index=str(raw.get("_index") or ""),
            score=as_float(raw.get("_score")),
        )


@dataclass
class SearchPage:
    hits: list[SearchHit]
    took_ms: int = 0
    total_hits: int = 0


@dataclass
class ServiceStats:
    ping_ms: int
    version: str
    cluster_name: str
    cluster_status: str
    node_count: int
    data_node_count: int
    active_shards: int
    unassigned_shards: int
    pending_tasks: int
    node_uptime_seconds: int
    node_names: list[str] = field(default_factory=list)


class SearchIndexClient:
    def __init__(
        self,
        endpoint: str,
        *,
        timeout_s: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = (endpoint or "").strip().rstrip("/")
        self._timeout_s = timeout_s
        self._session = session if session is not None else requests.Session()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def enabled(self) -> bool:
        return bool(self._endpoint)

    def close(self) -> None:
        self._session.close()

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise IndexDisabled()

    def _decode(self, resp: requests.Response, *, url: str) -> dict[str, Any]:
        if resp.status_code < 200 or resp.status_code >= 300:
            body = (resp.text or "")[:_ERROR_BODY_LIMIT].strip()
            logger.warning("search_index_http_error url=%s status=%s", url, resp.status_code)
            raise IndexUnavailable(
                f"elasticsearch status={resp.status_code} body={body}",
                upstream_status=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise IndexUnavailable(f"elasticsearch returned invalid json: {exc}") from exc
        if not isinstance(payload, dict):
            raise IndexUnavailable(f"elasticsearch returned {type(payload).__name__}, expected object")
        return payload

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        self._require_enabled()
        url = f"{self._endpoint}{path}"
        timeout = timeout_s if timeout_s is not None else self._timeout_s
        try:
            if method == "POST":
                resp = self._session.post(
                    url,
                    json=body,
                    headers={"Content-Type": "application/json"},
                    timeout=timeout,
                )
            else:
                resp = self._session.get(url, timeout=timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("search_index_unreachable url=%s error=%s", url, type(exc).__name__)
            raise IndexUnavailable(f"elasticsearch unavailable: {exc}") from exc
        return self._decode(resp, url=url)

    def search(
        self,
        index: str,
        body: dict[str, Any],
        *,
        timeout_s: float | None = None,
    ) -> SearchPage:
        """``POST {endpoint}/{index}/_search`` and return the decoded hit page."""
        path = f"/{index.strip('/')}/_search" if index.strip("/") else "/_search"
        payload = self._request("POST", path, body=body, timeout_s=timeout_s)
        hits_obj = as_map(payload.get("hits"))
        raw_hits = hits_obj.get("hits")
        hits = [SearchHit.from_dict(h) for h in raw_hits] if isinstance(raw_hits, list) else []
        total = hits_obj.get("total")
        total_hits = as_float(as_map(total).get("value")) if isinstance(total, dict) else as_float(total)
        return SearchPage(
            hits=hits,
            took_ms=int(as_float(payload.get("took"))),
            total_hits=int(total_hits),
        )

    def search_transfer(self, transfer_uuid: str, *, limit: int = 5) -> dict[str, Any]:
        """Look a transfer, SIP or AIP uuid up across every index."""
        transfer_uuid = (transfer_uuid or "").strip()
        if not transfer_uuid:
            raise InvalidIdentifier("transfer uuid required")
        if limit <= 0:
            limit = 5
        should: list[dict[str, Any]] = []
        for name in ("transferUUID", "SIPUUID", "AIPUUID"):
            should.append({"term": {f"{name}.keyword": transfer_uuid}})
            should.append({"term": {name: transfer_uuid}})
        should.append({"query_string": {"query": f'"{transfer_uuid}"'}})
        body = {
            "size": limit,
            "query": {"bool": {"should": should, "minimum_should_match": 1}},
        }
        page = self.search("", body)
        return {
            "transfer_uuid": transfer_uuid,
            "took_ms": page.took_ms,
            "total_hits": page.total_hits,
            "hits": [
                {"index": h.index, "id": h.id, "score": h.score, "source": h.source}
                for h in page.hits
            ],
        }

    def service_stats(self) -> ServiceStats:
        started = time.perf_counter()
        root = self._request("GET", "/")
        ping_ms = int((time.perf_counter() - started) * 1000)
        health = self._request("GET", "/_cluster/health")
        nodes = self._request("GET", "/_nodes/stats/jvm")

        node_names: list[str] = []
        max_uptime_ms = 0
        for node in as_map(nodes.get("nodes")).values():
            if not isinstance(node, dict):
                continue
            name = as_str(node.get("name"))
            if name:
                node_names.append(name)
            uptime_ms = int(as_float(as_map(node.get("jvm")).get("uptime_in_millis")))
            max_uptime_ms = max(max_uptime_ms, uptime_ms)

        return ServiceStats(
            ping_ms=ping_ms,
            version=as_str(as_map(root.get("version")).get("number")),
            cluster_name=as_str(health.get("cluster_name")),
            cluster_status=as_str(health.get("status")),
            node_count=int(as_float(health.get("number_of_nodes"))),
            data_node_count=int(as_float(health.get("number_of_data_nodes"))),
            active_shards=int(as_float(health.get("active_shards"))),
            unassigned_shards=int(as_float(health.get("unassigned_shards"))),
            pending_tasks=int(as_float(health.get("number_of_pending_tasks"))),
            node_uptime_seconds=max_uptime_ms // 1000,
            node_names=sorted(node_names),
        )
