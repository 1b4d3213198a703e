"""Tests for GraphGateway status mapping and cursor paging.

A MagicMock session stands in for requests.Session; no network access.
"""

from unittest.mock import MagicMock

import pytest
import requests

from governance.core.exceptions import UpstreamUnavailableError, ValidationError
from governance.integrations.graph_gateway import SEARCH_AQL, TRAVERSE_AQL, GraphGateway, get_graph_gateway

pytestmark = pytest.mark.unit


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


def _gateway(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    gw = GraphGateway("http://graph:8529/", "gov", auth=("root", "pw"), timeout=3, session=session)
    return gw, session


class TestDocuments:
    def test_get_document_builds_url_and_passes_auth(self):
        gw, session = _gateway(_response(200, {"_key": "pep8", "title": "PEP 8"}))
        assert gw.get_document("coding_standards", "pep8")["title"] == "PEP 8"
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "http://graph:8529/_db/gov/_api/document/coding_standards/pep8"
        assert session.request.call_args.kwargs["auth"] == ("root", "pw")
        assert session.request.call_args.kwargs["timeout"] == 3

    def test_missing_document_is_none(self):
        gw, _ = _gateway(_response(404, {"errorMessage": "document not found"}))
        assert gw.get_document("coding_standards", "gone") is None

    def test_insert_returns_new_document(self):
        gw, session = _gateway(_response(202, {"new": {"_key": "k1", "name": "n"}}))
        assert gw.insert_document("knowledge_patterns", {"name": "n"}) == {"_key": "k1", "name": "n"}
        assert session.request.call_args.kwargs["params"] == {"returnNew": "true"}


class TestErrorMapping:
    @pytest.mark.parametrize("status", [500, 503, 401, 403])
    def test_server_and_auth_errors_are_unavailable(self, status):
        gw, _ = _gateway(_response(status, {"errorMessage": "boom"}))
        with pytest.raises(UpstreamUnavailableError):
            gw.execute("RETURN 1")

    def test_rejected_query_is_validation_error_without_detail(self):
        gw, _ = _gateway(_response(400, {"errorMessage": "syntax error near secret_table"}))
        with pytest.raises(ValidationError) as exc:
            gw.execute("FOR x IN")
        assert "secret_table" not in str(exc.value)

    @pytest.mark.parametrize("error", [requests.ConnectionError("refused"), requests.Timeout("slow")])
    def test_network_errors_are_unavailable(self, error):
        session = MagicMock()
        session.request.side_effect = error
        gw = GraphGateway("http://graph:8529", "gov", session=session)
        with pytest.raises(UpstreamUnavailableError):
            gw.get_document("requirements", "r1")
        assert session.request.call_count == 1

    def test_ping_false_when_unreachable(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        assert GraphGateway("http://graph:8529", "gov", session=session).ping() is False


def test_execute_follows_cursor():
    gw, session = _gateway(
        _response(201, {"result": [1, 2], "hasMore": True, "id": "c9"}),
        _response(200, {"result": [3], "hasMore": False}),
    )
    assert gw.execute("FOR x IN 1..3 RETURN x", {"a": 1}) == [1, 2, 3]
    first, second = session.request.call_args_list
    assert first.kwargs["json"]["bindVars"] == {"a": 1}
    assert second.args == ("PUT", "http://graph:8529/_db/gov/_api/cursor/c9")


def test_search_binds_collection_parameter():
    gw, session = _gateway(_response(201, {"result": []}))
    gw.search_collection("agent_guidance", "retry")
    body = session.request.call_args.kwargs["json"]
    assert body["query"] == SEARCH_AQL
    assert body["bindVars"] == {"@collection": "agent_guidance", "query": "retry", "limit": 20}


def test_traverse_binds_start_graph_and_depth():
    gw, session = _gateway(_response(201, {"result": [{"vertex": {"_key": "pep8"}, "edge": {}}]}))
    assert len(gw.traverse("requirements/r1", "knowledge_graph", 3)) == 1
    body = session.request.call_args.kwargs["json"]
    assert body["query"] == TRAVERSE_AQL
    assert body["bindVars"] == {"start": "requirements/r1", "graph": "knowledge_graph", "depth": 3}

def test_app_gateway_built_from_config(app):
    app.extensions.pop("graph_gateway", None)
    gw = get_graph_gateway()
    assert gw.base_url == app.config["GRAPH_STORE_URL"]
    assert get_graph_gateway() is gw
    app.extensions.pop("graph_gateway", None)
