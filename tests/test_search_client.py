from unittest import mock

import pytest
import requests

from aip_report.errors import IndexDisabled, IndexUnavailable, InvalidIdentifier
from aip_report.search_client import SearchIndexClient


class TestSearch:
    def test_posts_to_index_search_endpoint(self, search_client, fake_index, file_doc):
        fake_index.add(file_doc("f-1", "a.txt"))
        page = search_client.search("aipfiles", {"size": 5, "sort": [{"FILEUUID": "asc"}]})

        request = fake_index.requests[0]
        assert request["method"] == "POST"
        assert request["url"] == "http://es.test:9200/aipfiles/_search"
        assert request["body"]["size"] == 5
        assert page.total_hits == 1
        assert page.took_ms == 2
        assert page.hits[0].id == "f-1"
        assert page.hits[0].sort == ["f-1"]
        assert page.hits[0].source["filePath"] == "a.txt"

    def test_non_2xx_is_index_unavailable(self, search_client, fake_index):
        fake_index.status_code = 500
        with pytest.raises(IndexUnavailable) as exc:
            search_client.search("aipfiles", {"size": 1})
        assert exc.value.code == "SEARCH_INDEX_UNAVAILABLE"
        assert exc.value.http_status == 502
        assert exc.value.upstream_status == 500
        assert "status=500" in exc.value.message
        assert "cluster_block_exception" in exc.value.message

    def test_transport_failure_is_index_unavailable(self, search_client, fake_index):
        fake_index.error = requests.exceptions.ConnectionError("connection refused")
        with pytest.raises(IndexUnavailable) as exc:
            search_client.search("aipfiles", {"size": 1})
        assert isinstance(exc.value.__cause__, requests.exceptions.ConnectionError)

    def test_undecodable_body_is_index_unavailable(self, search_client):
        bad = mock.Mock(status_code=200, text="<html>")
        bad.json.side_effect = ValueError("no json")
        with mock.patch.object(search_client._session, "post", return_value=bad):
            with pytest.raises(IndexUnavailable):
                search_client.search("aipfiles", {"size": 1})

    def test_error_body_is_truncated(self, search_client):
        resp = mock.Mock(status_code=502, text="x" * 5000)
        with mock.patch.object(search_client._session, "post", return_value=resp):
            with pytest.raises(IndexUnavailable) as exc:
                search_client.search("aipfiles", {"size": 1})
        assert exc.value.message.count("x") == 2048

    def test_disabled_client_never_issues_requests(self, fake_index):
        client = SearchIndexClient("  ", session=fake_index)
        assert client.enabled is False
        with pytest.raises(IndexDisabled):
            client.search("aipfiles", {"size": 1})
        assert fake_index.requests == []


class TestSearchTransfer:
    def test_queries_every_uuid_field(self, search_client, fake_index, file_doc):
        fake_index.add(file_doc("f-1", "a.txt", aip_uuid="aip-42"), file_doc("f-2", "b.txt", aip_uuid="aip-7"))
        result = search_client.search_transfer(" aip-42 ", limit=0)

        body = fake_index.search_bodies[0]
        assert fake_index.requests[0]["url"] == "http://es.test:9200/_search"
        assert body["size"] == 5
        should = body["query"]["bool"]["should"]
        assert {"term": {"AIPUUID.keyword": "aip-42"}} in should
        assert {"term": {"transferUUID": "aip-42"}} in should
        assert {"query_string": {"query": '"aip-42"'}} in should
        assert result["transfer_uuid"] == "aip-42"
        assert result["total_hits"] == 1
        assert [h["id"] for h in result["hits"]] == ["f-1"]
        assert result["hits"][0]["index"] == "aipfiles"

    def test_blank_uuid_is_rejected_before_querying(self, search_client, fake_index):
        with pytest.raises(InvalidIdentifier):
            search_client.search_transfer("  ")
        assert fake_index.requests == []


def test_service_stats_summarizes_cluster(search_client, fake_index):
    fake_index.get_payloads = {
        "/": {"version": {"number": "7.10.2"}},
        "/_cluster/health": {
            "cluster_name": "am",
            "status": "yellow",
            "number_of_nodes": 2,
            "number_of_data_nodes": 1,
            "active_shards": 10,
            "unassigned_shards": 3,
            "number_of_pending_tasks": 0,
        },
        "/_nodes/stats/jvm": {
            "nodes": {
                "n1": {"name": "node-b", "jvm": {"uptime_in_millis": 5000}},
                "n2": {"name": "node-a", "jvm": {"uptime_in_millis": 125999}},
                "n3": "garbage",
            }
        },
    }
    stats = search_client.service_stats()
    assert stats.version == "7.10.2"
    assert stats.cluster_name == "am"
    assert stats.cluster_status == "yellow"
    assert stats.node_count == 2
    assert stats.data_node_count == 1
    assert stats.active_shards == 10
    assert stats.unassigned_shards == 3
    assert stats.node_uptime_seconds == 125
    assert stats.node_names == ["node-a", "node-b"]
    assert stats.ping_ms >= 0
