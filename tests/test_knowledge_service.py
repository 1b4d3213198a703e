"""Tests for project knowledge links and graph queries.

The graph store is the FakeGraphGateway from conftest.py.
"""

from unittest.mock import MagicMock

import pytest

from governance.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from governance.integrations.graph_gateway import GraphGateway
from governance.models import db
from governance.models.knowledge import KnowledgeLink
from governance.services import knowledge_service


def _response(status, body):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.content = b"{}"
    resp.json.return_value = body
    resp.text = str(body)
    return resp


@pytest.fixture()
def setup(make_team, make_user, make_project, ctx_for):
    team = make_team()
    user = make_user(team)
    return {"ctx": ctx_for(user), "project": make_project(user), "team": team}


class TestLinks:
    def test_link_is_idempotent(self, setup):
        ctx, project = setup["ctx"], setup["project"]
        first = knowledge_service.link_knowledge(ctx, project.id, "standard", "pep8")
        again = knowledge_service.link_knowledge(ctx, project.id, "STANDARD", " pep8 ")
        assert first.id == again.id
        assert db.session.query(KnowledgeLink).count() == 1

    def test_same_key_different_type_is_new_link(self, setup):
        ctx, project = setup["ctx"], setup["project"]
        a = knowledge_service.link_knowledge(ctx, project.id, "standard", "k1")
        b = knowledge_service.link_knowledge(ctx, project.id, "pattern", "k1")
        assert a.id != b.id

    def test_over_length_key_rejected_not_cut(self, setup):
        ctx, pid = setup["ctx"], setup["project"].id
        knowledge_service.link_knowledge(ctx, pid, "standard", "x" * 255)
        with pytest.raises(ValidationError) as exc:
            knowledge_service.link_knowledge(ctx, pid, "standard", "x" * 255 + "A")
        assert exc.value.details == {"knowledge_id": "too long"}
        assert db.session.query(KnowledgeLink).count() == 1

    def test_unknown_type_rejected(self, setup):
        with pytest.raises(ValidationError):
            knowledge_service.link_knowledge(setup["ctx"], setup["project"].id, "wiki", "k1")

    def test_foreign_project_not_found(self, setup, make_team, make_user, ctx_for):
        stranger = ctx_for(make_user(make_team()))
        with pytest.raises(NotFoundError):
            knowledge_service.link_knowledge(stranger, setup["project"].id, "standard", "pep8")

    def test_unlink_scoped_to_team(self, setup, make_team, make_user, ctx_for):
        link = knowledge_service.link_knowledge(setup["ctx"], setup["project"].id, "standard", "pep8")
        with pytest.raises(NotFoundError):
            knowledge_service.unlink_knowledge(ctx_for(make_user(make_team())), link.id)
        knowledge_service.unlink_knowledge(setup["ctx"], link.id)
        assert db.session.query(KnowledgeLink).count() == 0


class TestResolve:
    def test_statuses(self, setup, graph):
        ctx, pid = setup["ctx"], setup["project"].id
        graph.add("coding_standards", "pep8", title="PEP 8")
        knowledge_service.link_knowledge(ctx, pid, "standard", "pep8")
        knowledge_service.link_knowledge(ctx, pid, "standard", "deleted-doc")
        knowledge_service.link_knowledge(ctx, pid, "requirement", "r1")
        graph.down.add("requirements")

        resolved = {
            item["knowledge_id"]: item
            for item in knowledge_service.list_project_knowledge(ctx, pid, resolve=True)
        }
        assert resolved["pep8"]["status"] == "ok"
        assert resolved["pep8"]["document"]["title"] == "PEP 8"
        assert resolved["deleted-doc"]["status"] == "orphaned"
        assert resolved["deleted-doc"]["document"] is None
        assert resolved["r1"]["status"] == "unavailable"

    def test_rejected_read_is_unavailable(self, setup):
        ctx, pid = setup["ctx"], setup["project"].id
        knowledge_service.link_knowledge(ctx, pid, "standard", "bad/key")
        knowledge_service.link_knowledge(ctx, pid, "standard", "pep8")

        def _answer(method, url, **kwargs):
            if "bad" in url:
                return _response(400, {"errorMessage": "illegal document key"})
            return _response(200, {"_key": "pep8"})

        session = MagicMock()
        session.request.side_effect = _answer
        gateway = GraphGateway("http://graph:8529", "gov", session=session)

        items = knowledge_service.list_project_knowledge(ctx, pid, resolve=True, gateway=gateway)
        assert {i["knowledge_id"]: i["status"] for i in items} == {"bad/key": "unavailable", "pep8": "ok"}

    def test_unresolved_listing_skips_graph(self, setup, graph):
        knowledge_service.link_knowledge(setup["ctx"], setup["project"].id, "pattern", "p1")
        graph.down.add("knowledge_patterns")
        items = knowledge_service.list_project_knowledge(setup["ctx"], setup["project"].id)
        assert [i["knowledge_id"] for i in items] == ["p1"]
        assert "status" not in items[0]

    def test_type_filter(self, setup):
        ctx, pid = setup["ctx"], setup["project"].id
        knowledge_service.link_knowledge(ctx, pid, "pattern", "p1")
        knowledge_service.link_knowledge(ctx, pid, "standard", "s1")
        items = knowledge_service.list_project_knowledge(ctx, pid, knowledge_type="standard")
        assert [i["knowledge_id"] for i in items] == ["s1"]


class TestPublish:
    def test_document_stored_then_linked(self, setup, graph):
        result = knowledge_service.publish_knowledge(
            setup["ctx"], setup["project"].id, "architecture", {"name": "hexagonal"}
        )
        key = result["document"]["_key"]
        assert graph.collections["architecture_patterns"][key]["name"] == "hexagonal"
        assert result["link"]["knowledge_id"] == key
        assert result["link"]["knowledge_type"] == "architecture"

    def test_graph_outage_leaves_no_link(self, setup, graph):
        graph.down.add("architecture_patterns")
        with pytest.raises(UpstreamUnavailableError):
            knowledge_service.publish_knowledge(
                setup["ctx"], setup["project"].id, "architecture", {"name": "x"}
            )
        assert db.session.query(KnowledgeLink).count() == 0

    def test_empty_document_rejected(self, setup, graph):
        with pytest.raises(ValidationError):
            knowledge_service.publish_knowledge(setup["ctx"], setup["project"].id, "pattern", {})


class TestSearch:
    def test_failing_collection_degrades(self, setup, graph):
        graph.add("knowledge_patterns", "p1", name="Retry with backoff")
        graph.add("agent_guidance", "g1", text="always retry idempotent calls")
        graph.down.add("learning_instructions")

        results = knowledge_service.search_knowledge(setup["ctx"], "retry")
        assert list(results) == ["knowledge_patterns", "agent_guidance", "learning_instructions"]
        assert [d["_key"] for d in results["knowledge_patterns"]["items"]] == ["p1"]
        assert results["agent_guidance"]["available"] is True
        assert results["learning_instructions"] == {"items": [], "available": False}

    def test_query_required(self, setup, graph):
        with pytest.raises(ValidationError):
            knowledge_service.search_knowledge(setup["ctx"], "   ")

    def test_collections_must_be_names(self, setup, graph):
        with pytest.raises(ValidationError):
            knowledge_service.search_knowledge(setup["ctx"], "x", collections="agent_guidance")

    @pytest.mark.parametrize("collections", [5, {"agent_guidance": 1}])
    def test_collections_must_be_a_list(self, setup, graph, collections):
        with pytest.raises(ValidationError):
            knowledge_service.search_knowledge(setup["ctx"], "x", collections=collections)


class TestRawQuery:
    def test_developer_refused(self, setup, graph):
        with pytest.raises(AuthorizationError):
            knowledge_service.execute_raw_query(setup["ctx"], "RETURN 1")
        assert graph.queries == []

    def test_lead_runs_query(self, setup, graph, make_user, ctx_for):
        lead = ctx_for(make_user(setup["team"], role="lead"))
        graph.query_results = [{"n": 1}]
        assert knowledge_service.execute_raw_query(lead, "RETURN @n", {"n": 1}) == [{"n": 1}]
        assert graph.queries == [("RETURN @n", {"n": 1})]

    def test_bind_vars_must_be_object(self, setup, graph, make_user, ctx_for):
        lead = ctx_for(make_user(setup["team"], role="admin"))
        with pytest.raises(ValidationError):
            knowledge_service.execute_raw_query(lead, "RETURN 1", ["n"])


def test_list_patterns_pages_and_filters(setup, graph):
    for i in range(3):
        graph.add("knowledge_patterns", f"p{i}", name=f"Pattern {i}")
    graph.add("knowledge_patterns", "cb", name="Circuit breaker")

    assert len(knowledge_service.list_patterns(setup["ctx"], limit=2)) == 2
    found = knowledge_service.list_patterns(setup["ctx"], search="circuit")
    assert [d["_key"] for d in found] == ["cb"]


class TestTraversal:
    def test_depth_defaults_and_clamps(self, setup, graph):
        knowledge_service.traverse_graph(setup["ctx"], "requirements/r1")
        knowledge_service.traverse_graph(setup["ctx"], "requirements/r1", depth=50)
        assert [t[2] for t in graph.traversals] == [2, knowledge_service.MAX_TRAVERSAL_DEPTH]

    @pytest.mark.parametrize("node_id", ["r1", "requirements/", "/r1", "a/b/c", "  "])
    def test_vertex_id_validated(self, setup, graph, node_id):
        with pytest.raises(ValidationError):
            knowledge_service.traverse_graph(setup["ctx"], node_id)
        assert graph.traversals == []

    def test_depth_below_one_rejected(self, setup, graph):
        with pytest.raises(ValidationError):
            knowledge_service.traverse_graph(setup["ctx"], "requirements/r1", depth=0)


def test_guidance_outage_propagates(setup, graph):
    graph.down.add("agent_guidance")
    with pytest.raises(UpstreamUnavailableError):
        knowledge_service.list_guidance(setup["ctx"])
