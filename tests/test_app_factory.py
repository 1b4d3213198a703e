"""App factory wiring: middleware order and rate-limit keys."""

import pytest

from governance import create_app, limiter
from governance.config import TestingConfig
from governance.middleware.rate_limiter import rate_limit_key

pytestmark = pytest.mark.unit


def _owner(func):
    return getattr(func, "__self__", None) or getattr(getattr(func, "func", None), "__self__", None)


def test_jwt_hook_runs_before_limiter(monkeypatch):
    monkeypatch.setattr(TestingConfig, "RATELIMIT_ENABLED", True)
    monkeypatch.setattr(limiter, "enabled", limiter.enabled)
    limited_app = create_app("testing")
    funcs = limited_app.before_request_funcs[None]
    jwt_pos = next(i for i, f in enumerate(funcs) if getattr(f, "__name__", "") == "_jwt_auth")
    limiter_pos = [i for i, f in enumerate(funcs) if _owner(f) is limiter]
    assert limiter_pos
    assert all(jwt_pos < i for i in limiter_pos)


def test_limit_key_uses_authenticated_user(app, make_team, make_user, auth_header):
    user = make_user(make_team())
    with app.test_request_context("/api/v1/projects", headers=auth_header(user)):
        app.preprocess_request()
        assert rate_limit_key() == f"user:{user.id}"


def test_limit_key_falls_back_to_address(app):
    with app.test_request_context("/api/v1/projects", environ_base={"REMOTE_ADDR": "10.0.0.7"}):
        app.preprocess_request()
        assert rate_limit_key() == "10.0.0.7"
