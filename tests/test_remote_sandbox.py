"""Tests for RemoteSandbox and executor selection.

A MagicMock session stands in for requests.Session; nothing is executed
locally.
"""

from unittest.mock import MagicMock

import pytest
import requests

from governance.config import ProductionConfig
from governance.core.exceptions import UpstreamUnavailableError, ValidationError
from governance.integrations.sandbox import RemoteSandbox, SubprocessSandbox, get_sandbox

pytestmark = pytest.mark.unit


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.json.return_value = body if body is not None else {}
    resp.text = str(body)
    return resp


def _sandbox(*responses, token="s3cret"):
    session = MagicMock()
    session.post.side_effect = list(responses)
    return RemoteSandbox("http://sandbox:9000/", token=token, timeout=4, session=session), session


class TestRemoteSandbox:
    def test_posts_script_and_input(self):
        sandbox, session = _sandbox(
            _response(200, {"stdout": "ok\n", "stderr": "", "exit_code": 2, "duration_ms": 31})
        )
        result = sandbox.run("exit 2", {"tool": "puppeteer"})

        assert (result.output, result.exit_code, result.duration_ms) == ("ok\n", 2, 31)
        assert session.post.call_args.args == ("http://sandbox:9000/run",)
        kwargs = session.post.call_args.kwargs
        assert kwargs["json"] == {"script": "exit 2", "input": {"tool": "puppeteer"}, "timeout": 4}
        assert kwargs["headers"] == {"Authorization": "Bearer s3cret"}

    def test_no_token_no_auth_header(self):
        sandbox, session = _sandbox(_response(200, {"exit_code": 0}), token=None)
        assert sandbox.run("exit 0", {}).output == ""
        assert session.post.call_args.kwargs["headers"] == {}

    @pytest.mark.parametrize("status", [500, 502, 401, 403])
    def test_server_and_auth_errors_are_unavailable(self, status):
        sandbox, _ = _sandbox(_response(status, {"error": "down"}))
        with pytest.raises(UpstreamUnavailableError):
            sandbox.run("exit 0", {})

    def test_rejected_script_is_validation_error(self):
        sandbox, _ = _sandbox(_response(413, {"error": "script too large"}))
        with pytest.raises(ValidationError):
            sandbox.run("exit 0", {})

    def test_network_error_is_unavailable(self):
        sandbox, _ = _sandbox(requests.ConnectionError("refused"))
        with pytest.raises(UpstreamUnavailableError):
            sandbox.run("exit 0", {})

    def test_missing_exit_code_is_unavailable(self):
        sandbox, _ = _sandbox(_response(200, {"stdout": "?"}))
        with pytest.raises(UpstreamUnavailableError):
            sandbox.run("exit 0", {})


class TestGetSandbox:
    @pytest.fixture(autouse=True)
    def _fresh(self, app, monkeypatch):
        monkeypatch.delitem(app.extensions, "hook_sandbox", raising=False)
        monkeypatch.setitem(app.config, "HOOK_SANDBOX_URL", "")
        monkeypatch.setitem(app.config, "HOOK_SANDBOX_LOCAL", False)

    def test_unconfigured_refuses(self, app):
        with pytest.raises(UpstreamUnavailableError):
            get_sandbox()
        assert "hook_sandbox" not in app.extensions

    def test_url_selects_remote_and_is_cached(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "HOOK_SANDBOX_URL", "http://sandbox:9000")
        monkeypatch.setitem(app.config, "HOOK_SANDBOX_LOCAL", True)
        executor = get_sandbox()
        assert isinstance(executor, RemoteSandbox)
        assert get_sandbox() is executor

    def test_local_only_when_opted_in(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "HOOK_SANDBOX_LOCAL", True)
        assert isinstance(get_sandbox(), SubprocessSandbox)


def test_production_never_runs_locally():
    assert ProductionConfig.HOOK_SANDBOX_LOCAL is False
