"""Route tests for the evidence, metrics, identity and health blueprints."""

import pytest

from governance.models import db

pytestmark = pytest.mark.integration


@pytest.fixture()
def dev(make_team, make_user):
    return make_user(make_team(name="Web"))


def _submit(client, headers, **overrides):
    body = {"task_category": "web", "evidence_type": "passed", "evidence_data": {"rating": "9/10"}}
    body.update(overrides)
    return client.post("/api/v1/evidence", json=body, headers=headers)


class TestAuthentication:
    def test_missing_token_is_401(self, client):
        res = client.get("/api/v1/evidence/search")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_garbage_token_is_401(self, client):
        res = client.get("/api/v1/evidence/search", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401

    def test_token_for_deleted_user_is_401(self, client, dev, auth_header):
        headers = auth_header(dev)
        db.session.delete(dev)
        db.session.commit()
        assert client.get("/api/v1/me", headers=headers).status_code == 401

    def test_unrecognised_stored_role_is_403(self, client, dev, auth_header):
        headers = auth_header(dev)
        dev.role = "superuser"
        db.session.commit()
        res = client.get("/api/v1/me", headers=headers)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_me_reports_scope_from_user_row(self, client, dev, auth_header):
        res = client.get("/api/v1/me", headers=auth_header(dev))
        assert res.status_code == 200
        body = res.get_json()
        assert body["user"]["team_name"] == "Web"
        assert body["scope"] == {"user_id": dev.id, "team_id": dev.team_id, "role": "developer"}


class TestEvidenceRoutes:
    def test_submit_then_context(self, client, dev, auth_header):
        headers = auth_header(dev)
        res = _submit(client, headers, task_id="T-7")
        assert res.status_code == 201
        evidence = res.get_json()["evidence"]
        assert evidence["user_id"] == dev.id

        res = client.get(f"/api/v1/evidence/{evidence['id']}/context", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["evidence"]["team_name"] == "Web"

        res = client.get("/api/v1/evidence/task/T-7", headers=headers)
        assert res.get_json()["count"] == 1

    def test_validation_error_shape(self, client, dev, auth_header):
        res = client.post("/api/v1/evidence", json={"task_category": "web"}, headers=auth_header(dev))
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION"
        assert set(body["details"]) == {"evidence_type", "evidence_data"}

    def test_search_envelope(self, client, dev, auth_header):
        headers = auth_header(dev)
        for _ in range(3):
            _submit(client, headers)
        res = client.get("/api/v1/evidence/search?limit=2&category=web", headers=headers)
        body = res.get_json()
        assert res.status_code == 200
        assert body["total"] == 3 and body["limit"] == 2 and body["offset"] == 0
        assert len(body["evidence"]) == 2

    def test_context_of_other_team_is_404(self, client, dev, make_team, make_user, auth_header):
        evidence_id = _submit(client, auth_header(dev)).get_json()["evidence"]["id"]
        stranger = make_user(make_team())
        res = client.get(f"/api/v1/evidence/{evidence_id}/context", headers=auth_header(stranger))
        assert res.status_code == 404
        assert res.get_json() == {"error": "Evidence not found", "code": "ERR_NOT_FOUND"}


class TestLegacyRoute:
    def test_accepts_without_token(self, client):
        res = client.post("/api/v1/evidence/legacy", json={
            "task_category": "api", "evidence_type": "response_data",
            "evidence_data": {"status": 200}, "user_id": "ci-bot",
        })
        assert res.status_code == 201
        evidence = res.get_json()["evidence"]
        assert evidence["visibility"] == "public"
        assert evidence["reporter_user_ref"] == "ci-bot"

    def test_disabled_returns_404(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, "LEGACY_EVIDENCE_ENABLED", False)
        res = client.post("/api/v1/evidence/legacy", json={
            "task_category": "api", "evidence_type": "x", "evidence_data": {},
        })
        assert res.status_code == 404


def test_compliance_metrics_route(client, dev, auth_header):
    headers = auth_header(dev)
    _submit(client, headers)
    _submit(client, headers, evidence_type="blocked")
    res = client.get("/api/v1/metrics/compliance", headers=headers)
    assert res.status_code == 200
    [web] = res.get_json()["metrics"]
    assert web["total_verifications"] == 2
    assert web["pass_rate"] == 0.5


def test_role_change_route(client, make_team, make_user, auth_header):
    team = make_team()
    admin = make_user(team, role="admin")
    dev = make_user(team)
    res = client.put(f"/api/v1/users/{dev.id}/role", json={"role": "lead"}, headers=auth_header(admin))
    assert res.status_code == 200
    assert res.get_json()["user"]["role"] == "lead"

    res = client.put(f"/api/v1/users/{admin.id}/role", json={"role": "developer"}, headers=auth_header(dev))
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_reports_stores(self, client, graph):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["graph"]["status"] == "ok"

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
