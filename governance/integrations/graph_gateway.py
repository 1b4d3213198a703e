"""
Graph store gateway: ArangoDB HTTP API.

All calls to the knowledge graph go through this class. Services never
build store URLs or call ``requests`` directly.

Behaviour:
  - Basic auth against one database: {url}/_db/{database}/_api/...
  - Timeout per call (GRAPH_STORE_TIMEOUT, default 10 s)
  - No retries; the calling boundary decides whether to try again
  - Network errors, auth failures and 5xx  → UpstreamUnavailableError
  - Any other rejected query (4xx)         → ValidationError, store detail logged only
  - Missing document (404)                 → None

Testability: pass a fake ``session`` to GraphGateway() in tests instead of
letting it create a real requests.Session.
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import quote

import requests
from flask import current_app

from governance.core.exceptions import UpstreamUnavailableError, ValidationError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10
_DEFAULT_BATCH_SIZE = 100
_SEARCH_LIMIT = 20

STORE = "graph"

SEARCH_AQL = (
    "FOR doc IN @@collection "
    "FILTER CONTAINS(LOWER(TO_STRING(doc)), LOWER(@query)) "
    "LIMIT @limit "
    "RETURN doc"
)

LIST_AQL = (
    "FOR doc IN @@collection "
    "FILTER @search == null "
    "OR CONTAINS(LOWER(doc.name), LOWER(@search)) "
    "OR CONTAINS(LOWER(doc.description), LOWER(@search)) "
    "LIMIT @offset, @limit "
    "RETURN doc"
)


TRAVERSE_AQL = (
    "FOR v, e IN 1..@depth ANY @start GRAPH @graph "
    "OPTIONS {order: 'bfs', uniqueVertices: 'global'} "
    "RETURN {vertex: v, edge: e}"
)


class GraphGateway:
    """Thin ArangoDB REST client.

    Usage:
        gateway = GraphGateway("http://localhost:8529", "governance", auth=("root", "secret"))
        doc = gateway.get_document("coding_standards", "pep8")
    """

    def __init__(
        self,
        base_url: str,
        database: str,
        *,
        auth: tuple[str, str] | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.database = database
        self.auth = auth
        self.timeout = timeout
        self._session: requests.Session | None = session

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.base_url}/_db/{quote(self.database, safe='')}/_api/{path}"

    def _request(self, method: str, path: str, *, json_body: Any = None, params: dict | None = None):
        """Execute one request, mapping transport failures to UpstreamUnavailableError."""
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params
        if self.auth:
            kwargs["auth"] = self.auth

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, self._url(path), **kwargs)
        except requests.Timeout:
            logger.warning("Graph store timed out after %ss path=%s", self.timeout, path)
            raise UpstreamUnavailableError(STORE, detail=f"timeout after {self.timeout}s")
        except requests.RequestException as exc:
            logger.warning("Graph store network error path=%s error=%s", path, exc)
            raise UpstreamUnavailableError(STORE, detail=str(exc)[:500])
        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.debug("Graph %s %s → %s (%dms)", method, path, resp.status_code, duration_ms)
        return resp

    @staticmethod
    def _body(resp) -> dict:
        try:
            return resp.json() if resp.content else {}
        except ValueError:
            return {}

    def _raise_for_status(self, resp, action: str) -> None:
        if resp.ok:
            return
        body = self._body(resp)
        detail = body.get("errorMessage") or resp.text[:500]
        if resp.status_code >= 500 or resp.status_code in (401, 403):
            logger.error("Graph store %s failed status=%s: %s", action, resp.status_code, detail)
            raise UpstreamUnavailableError(STORE, detail=detail)
        logger.warning("Graph store rejected %s status=%s: %s", action, resp.status_code, detail)
        raise ValidationError(f"Graph store rejected the {action}")

    # ── Documents ────────────────────────────────────────────────────────────

    def get_document(self, collection: str, key: str) -> dict | None:
        """Fetch one document by key; None when the document (or collection) is missing."""
        path = f"document/{quote(collection, safe='')}/{quote(str(key), safe='')}"
        resp = self._request("GET", path)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, "document read")
        return self._body(resp)

    def insert_document(self, collection: str, document: dict) -> dict:
        """Insert a document and return it as stored (with _key/_id/_rev)."""
        resp = self._request(
            "POST",
            f"document/{quote(collection, safe='')}",
            json_body=document,
            params={"returnNew": "true"},
        )
        self._raise_for_status(resp, "document insert")
        body = self._body(resp)
        return body.get("new") or body

    # ── Queries ──────────────────────────────────────────────────────────────

    def execute(self, aql: str, bind_vars: dict | None = None, *, batch_size: int = _DEFAULT_BATCH_SIZE) -> list:
        """Run an AQL query and return all result rows (follows the cursor)."""
        resp = self._request(
            "POST",
            "cursor",
            json_body={"query": aql, "bindVars": bind_vars or {}, "batchSize": batch_size},
        )
        self._raise_for_status(resp, "query")
        body = self._body(resp)
        results = list(body.get("result") or [])

        while body.get("hasMore") and body.get("id"):
            resp = self._request("PUT", f"cursor/{quote(str(body['id']), safe='')}")
            self._raise_for_status(resp, "query")
            body = self._body(resp)
            results.extend(body.get("result") or [])
        return results

    def search_collection(self, collection: str, query: str, limit: int = _SEARCH_LIMIT) -> list:
        """Case-insensitive substring search over every field of every document."""
        return self.execute(
            SEARCH_AQL, {"@collection": collection, "query": query, "limit": int(limit)}
        )

    def list_collection(self, collection: str, *, search: str | None = None, limit: int = 50, offset: int = 0) -> list:
        """Page through a collection, optionally filtered by name/description."""
        return self.execute(
            LIST_AQL,
            {"@collection": collection, "search": search, "limit": int(limit), "offset": int(offset)},
        )

    def traverse(self, start: str, graph: str, depth: int = 2) -> list:
        """Breadth-first neighbourhood of a vertex id ("collection/key") in a named graph."""
        return self.execute(TRAVERSE_AQL, {"start": start, "graph": graph, "depth": int(depth)})

    def ping(self) -> bool:
        """Return True when the store answers its version endpoint."""
        try:
            resp = self._request("GET", "version")
        except UpstreamUnavailableError:
            return False
        return resp.ok


def get_graph_gateway() -> GraphGateway:
    """Return the app-wide gateway, built from config on first use."""
    gateway = current_app.extensions.get("graph_gateway")
    if gateway is None:
        cfg = current_app.config
        user = cfg.get("GRAPH_STORE_USER")
        gateway = GraphGateway(
            cfg.get("GRAPH_STORE_URL", "http://localhost:8529"),
            cfg.get("GRAPH_STORE_DATABASE", "governance"),
            auth=(user, cfg.get("GRAPH_STORE_PASSWORD") or "") if user else None,
            timeout=cfg.get("GRAPH_STORE_TIMEOUT", _DEFAULT_TIMEOUT),
        )
        current_app.extensions["graph_gateway"] = gateway
    return gateway
