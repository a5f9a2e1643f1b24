import copy
import json
import pathlib
import sys
from typing import Any
from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aip_report.config import SearchIndexConfig
from aip_report.main import create_app
from aip_report.search_client import SearchIndexClient
from aip_report.service import AipAnalyticsService

ENDPOINT = "http://es.test:9200"


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")

    def json(self):
        if self._payload is None:
            raise ValueError("response body is not json")
        return self._payload


class FakeSearchIndex:
    """In-memory stand-in for a ``requests.Session`` talking to Elasticsearch.

    Honors ``size``, ``sort``, ``search_after``, ``_source`` and the
    ``bool.should`` term / query_string filters used by the scanner.
    """

    def __init__(self, docs: list[dict[str, Any]] | None = None):
        self.docs: list[dict[str, Any]] = list(docs or [])
        self.requests: list[dict[str, Any]] = []
        self.get_payloads: dict[str, Any] = {}
        self.error: Exception | None = None
        self.status_code = 200
        self.fail_on_call: int | None = None
        self.closed = False

    @property
    def search_bodies(self) -> list[dict[str, Any]]:
        return [r["body"] for r in self.requests if r["method"] == "POST"]

    def add(self, *docs: dict[str, Any]) -> None:
        self.docs.extend(docs)

    def close(self) -> None:
        self.closed = True

    def _maybe_fail(self) -> FakeResponse | None:
        if self.fail_on_call is not None and len(self.requests) == self.fail_on_call:
            return FakeResponse(503, text="shard failure")
        if self.error is not None:
            raise self.error
        if self.status_code != 200:
            return FakeResponse(self.status_code, text="cluster_block_exception")
        return None

    def post(self, url: str, json: dict[str, Any] | None = None, headers=None, timeout=None):
        self.requests.append({"method": "POST", "url": url, "body": copy.deepcopy(json), "timeout": timeout})
        failed = self._maybe_fail()
        if failed is not None:
            return failed
        return FakeResponse(200, self._search(json or {}))

    def get(self, url: str, timeout=None):
        self.requests.append({"method": "GET", "url": url, "body": None, "timeout": timeout})
        failed = self._maybe_fail()
        if failed is not None:
            return failed
        path = urlparse(url).path or "/"
        if path not in self.get_payloads:
            return FakeResponse(404, text="no handler")
        return FakeResponse(200, self.get_payloads[path])

    @staticmethod
    def _matches(doc: dict[str, Any], query: dict[str, Any] | None) -> bool:
        if not query:
            return True
        should = query.get("bool", {}).get("should", [])
        for clause in should:
            if "term" in clause:
                field, value = next(iter(clause["term"].items()))
                if doc.get(field.removesuffix(".keyword")) == value:
                    return True
            if "query_string" in clause:
                needle = clause["query_string"]["query"].strip('"')
                if needle in json.dumps(doc):
                    return True
        return False

    @staticmethod
    def _sort_key(doc: dict[str, Any], fields: list[str]) -> list[Any]:
        return [str(doc.get(f.removesuffix(".raw"), "")) for f in fields]

    def _search(self, body: dict[str, Any]) -> dict[str, Any]:
        matched = [d for d in self.docs if self._matches(d, body.get("query"))]
        fields = [next(iter(s)) for s in body.get("sort", [])]
        rows = [(self._sort_key(d, fields), d) for d in matched]
        if fields:
            rows.sort(key=lambda r: r[0])
        after = body.get("search_after")
        if after:
            rows = [r for r in rows if r[0] > list(after)]
        rows = rows[: int(body.get("size", 10))]
        include = body.get("_source")
        hits = []
        for key, doc in rows:
            source = {k: v for k, v in doc.items() if include is None or k in include}
            hit = {"_index": "aipfiles", "_id": str(doc.get("FILEUUID", "")), "_score": 1.0, "_source": source}
            if fields:
                hit["sort"] = key
            hits.append(hit)
        return {"took": 2, "hits": {"total": {"value": len(matched)}, "hits": hits}}


def make_file_doc(
    file_uuid: str,
    file_path: str,
    *,
    aip_uuid: str = "aip-1",
    sip_name: str = "sip-alpha",
    status: str = "UPLOADED",
    size: Any = None,
    registry_key: str = "",
    format_name: str = "",
    format_version: str = "",
    created: str | None = None,
    indexed_at: float | None = None,
    events: list[dict[str, str]] | None = None,
    related: list[str] | None = None,
    extension: str | None = None,
    identifiers: Any = ("urn:uuid:x",),
    single_objects: bool = False,
    **extra: Any,
) -> dict[str, Any]:
    characteristics: dict[str, Any] = {
        "premis:format_dict": {
            "premis:formatDesignation_dict": {
                "premis:formatName": format_name,
                "premis:formatVersion": format_version,
            },
            "premis:formatRegistry_dict": {"premis:formatRegistryKey": registry_key},
        },
    }
    if size is not None:
        characteristics["premis:size"] = size
    if created is not None:
        characteristics["premis:creatingApplication_dict"] = {"premis:dateCreatedByApplication": created}

    rels: Any = [
        {"premis:relatedObjectIdentifier_dict": {"premis:relatedObjectIdentifierValue": rid}}
        for rid in (related or [])
    ]
    wrapped_events: Any = []
    for ev in events or []:
        event_dict: dict[str, Any] = {
            "premis:eventType": ev.get("type", ""),
            "premis:eventDateTime": ev.get("date", ""),
            "premis:eventOutcomeInformation_dict": {"premis:eventOutcome": ev.get("outcome", "")},
            "premis:eventDetailInformation_dict": {"premis:eventDetail": ev.get("detail", "")},
        }
        wrapped_events.append({"mets:mdWrap_dict": {"mets:xmlData_dict": {"premis:event_dict": event_dict}}})
    if single_objects:
        rels = rels[0] if len(rels) == 1 else rels
        wrapped_events = wrapped_events[0] if len(wrapped_events) == 1 else wrapped_events

    doc: dict[str, Any] = {
        "AIPUUID": aip_uuid,
        "sipName": sip_name,
        "FILEUUID": file_uuid,
        "filePath": file_path,
        "status": status,
        "identifiers": list(identifiers) if isinstance(identifiers, tuple) else identifiers,
        "METS": {
            "amdSec": {
                "mets:amdSec_dict": {
                    "mets:techMD_dict": {
                        "mets:mdWrap_dict": {
                            "mets:xmlData_dict": {
                                "premis:object_dict": {
                                    "premis:objectCharacteristics_dict": characteristics,
                                    "premis:relationship_dict": rels,
                                }
                            }
                        }
                    },
                    "mets:digiprovMD_dict": wrapped_events,
                }
            }
        },
    }
    if indexed_at is not None:
        doc["indexedAt"] = indexed_at
    if extension is not None:
        doc["fileExtension"] = extension
    doc.update(extra)
    return doc


@pytest.fixture
def file_doc():
    return make_file_doc


@pytest.fixture
def fake_index() -> FakeSearchIndex:
    return FakeSearchIndex()


@pytest.fixture
def search_config() -> SearchIndexConfig:
    return SearchIndexConfig.from_env(
        {
            "APP_ES_ENABLED": "true",
            "APP_ES_ENDPOINT": ENDPOINT,
            "APP_ES_SCAN_DEADLINE_SEC": "0",
        }
    )


@pytest.fixture
def search_client(fake_index: FakeSearchIndex) -> SearchIndexClient:
    return SearchIndexClient(ENDPOINT, timeout_s=5.0, session=fake_index)


@pytest.fixture
def analytics(search_config: SearchIndexConfig, search_client: SearchIndexClient) -> AipAnalyticsService:
    return AipAnalyticsService(config=search_config, client=search_client)


@pytest.fixture
def client(analytics: AipAnalyticsService) -> TestClient:
    return TestClient(create_app(analytics))
