"""
Shared pytest fixtures for the Governance Central test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_team / make_user / make_project: ORM-backed factories
    - ctx_for: ScopeContext for a user row
    - auth_header: Bearer header for a user row
    - graph: in-memory graph store installed as the app gateway
"""

import itertools

import pytest

from governance import create_app
from governance.core.exceptions import UpstreamUnavailableError
from governance.core.scope import ScopeContext
from governance.models import db as _db
from governance.services import identity_service, project_service
from governance.services.jwt_service import generate_access_token

_seq = itertools.count(1)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_team():
    def _make(name=None, organization="acme"):
        return identity_service.create_team({
            "name": name or f"Team {next(_seq)}",
            "organization": organization,
        })
    return _make


@pytest.fixture()
def make_user():
    def _make(team=None, role="developer", username=None):
        n = next(_seq)
        username = username or f"dev{n}"
        return identity_service.create_user({
            "username": username,
            "email": f"{username}@acme.io",
            "full_name": f"Developer {n}",
            "team_id": team.id if team is not None else None,
            "role": role,
        })
    return _make


@pytest.fixture()
def ctx_for():
    def _ctx(user):
        return ScopeContext.for_user(user)
    return _ctx


@pytest.fixture()
def make_project():
    def _make(user, name=None, repo_url=None):
        n = next(_seq)
        return project_service.create_project(
            ScopeContext.for_user(user),
            {
                "name": name or f"Project {n}",
                "repo_url": repo_url or f"https://github.com/acme/project-{n}",
                "repo_provider": "github",
            },
        )
    return _make


@pytest.fixture()
def auth_header():
    def _header(user):
        token = generate_access_token(user.id, user.team_id, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _header


# ── Graph store fake ─────────────────────────────────────────────────────


class FakeGraphGateway:
    """In-memory stand-in for GraphGateway.

    Collections named in ``down`` raise UpstreamUnavailableError on every call.
    """

    def __init__(self):
        self.collections = {}
        self.down = set()
        self.queries = []
        self.query_results = []
        self.edges = []
        self.traversals = []

    def _check(self, collection):
        if collection in self.down:
            raise UpstreamUnavailableError("graph", detail=f"{collection} down")

    def add(self, collection, key, **fields):
        doc = {"_key": key, "_id": f"{collection}/{key}", **fields}
        self.collections.setdefault(collection, {})[key] = doc
        return doc

    def get_document(self, collection, key):
        self._check(collection)
        return self.collections.get(collection, {}).get(key)

    def insert_document(self, collection, document):
        self._check(collection)
        key = document.get("_key") or f"doc{next(_seq)}"
        fields = {k: v for k, v in document.items() if k != "_key"}
        return self.add(collection, key, **fields)

    def search_collection(self, collection, query, limit=20):
        self._check(collection)
        needle = query.lower()
        docs = self.collections.get(collection, {}).values()
        return [d for d in docs if needle in str(d).lower()][:limit]

    def list_collection(self, collection, *, search=None, limit=50, offset=0):
        self._check(collection)
        docs = list(self.collections.get(collection, {}).values())
        if search:
            docs = [d for d in docs if search.lower() in str(d.get("name", "")).lower()]
        return docs[offset:offset + limit]

    def execute(self, aql, bind_vars=None, **kwargs):
        self.queries.append((aql, bind_vars or {}))
        return list(self.query_results)

    def connect(self, from_id, to_id):
        self.edges.append({"_from": from_id, "_to": to_id})

    def traverse(self, start, graph, depth=2):
        self.traversals.append((start, graph, depth))
        seen, frontier, rows = {start}, [start], []
        for _ in range(depth):
            reached = []
            for vertex_id in frontier:
                for edge in self.edges:
                    if vertex_id not in (edge["_from"], edge["_to"]):
                        continue
                    other = edge["_to"] if edge["_from"] == vertex_id else edge["_from"]
                    if other in seen:
                        continue
                    seen.add(other)
                    reached.append(other)
                    collection, _, key = other.partition("/")
                    rows.append({"vertex": self.collections.get(collection, {}).get(key), "edge": edge})
            frontier = reached
        return rows

    def ping(self):
        return True


@pytest.fixture()
def graph(app, monkeypatch):
    """Install a FakeGraphGateway as the application gateway for one test."""
    fake = FakeGraphGateway()
    monkeypatch.setitem(app.extensions, "graph_gateway", fake)
    return fake
