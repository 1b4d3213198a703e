"""
Hook sandbox: dry-run execution of hook scripts.

The registry never executes scripts itself; test_hook hands the script and
its JSON input to a SandboxExecutor and records whatever comes back.

get_sandbox() picks the executor from config:
  - HOOK_SANDBOX_URL set      -> RemoteSandbox (isolated executor service)
  - HOOK_SANDBOX_LOCAL=true   -> SubprocessSandbox, for local development only
  - neither                   -> UpstreamUnavailableError; dry runs are refused

SubprocessSandbox:
  - writes the script into a fresh temporary directory
  - runs it with the test input as JSON on stdin
  - kills it after ``timeout`` seconds (exit_code -1)
  - scripts with a shebang run directly, others under /bin/sh
  - a child process of the web server: no filesystem or network isolation

Tests inject their own executor instead of spawning processes.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import subprocess
import tempfile
import time
from dataclasses import dataclass

import requests
from flask import current_app

from governance.core.exceptions import UpstreamUnavailableError, ValidationError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10
_DEFAULT_SHELL = "/bin/sh"
TIMEOUT_EXIT_CODE = -1
NOT_EXECUTABLE_EXIT_CODE = 127


@dataclass(frozen=True)
class SandboxResult:
    output: str
    stderr: str
    exit_code: int
    duration_ms: int

    def to_dict(self) -> dict:
        return {"stdout": self.output, "stderr": self.stderr}


class SandboxExecutor:
    """Interface for running one hook script against one test input."""

    def run(self, script: str, test_input: dict) -> SandboxResult:
        raise NotImplementedError


class SubprocessSandbox(SandboxExecutor):
    """Run scripts as child processes in a throwaway working directory."""

    def __init__(self, timeout: float = _DEFAULT_TIMEOUT, shell: str = _DEFAULT_SHELL) -> None:
        self.timeout = timeout
        self.shell = shell

    def _command(self, path: str, script: str) -> list[str]:
        if script.startswith("#!"):
            os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR)
            return [path]
        return [self.shell, path]

    def run(self, script: str, test_input: dict) -> SandboxResult:
        payload = json.dumps(test_input or {}, default=str)
        with tempfile.TemporaryDirectory(prefix="hook-sandbox-") as workdir:
            path = os.path.join(workdir, "hook")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(script)

            t0 = time.perf_counter()
            try:
                proc = subprocess.run(
                    self._command(path, script),
                    input=payload,
                    capture_output=True,
                    text=True,
                    cwd=workdir,
                    env={"PATH": os.environ.get("PATH", "/usr/bin:/bin"), "HOME": workdir},
                    timeout=self.timeout,
                )
                exit_code, stdout, stderr = proc.returncode, proc.stdout, proc.stderr
            except subprocess.TimeoutExpired as exc:
                logger.warning("Hook script timed out after %ss", self.timeout)
                exit_code = TIMEOUT_EXIT_CODE
                stdout = _decode(exc.stdout)
                stderr = _decode(exc.stderr) or f"Timed out after {self.timeout}s"
            except OSError as exc:
                logger.warning("Hook script could not be started: %s", exc)
                exit_code, stdout, stderr = NOT_EXECUTABLE_EXIT_CODE, "", str(exc)
            duration_ms = int((time.perf_counter() - t0) * 1000)

        return SandboxResult(output=stdout or "", stderr=stderr or "", exit_code=exit_code, duration_ms=duration_ms)


def _decode(stream) -> str:
    if not stream:
        return ""
    return stream.decode(errors="replace") if isinstance(stream, bytes) else stream


class RemoteSandbox(SandboxExecutor):
    """Hand scripts to an isolated executor service over HTTP.

    POST {base_url}/run  {"script": ..., "input": {...}, "timeout": seconds}
    answers {"stdout", "stderr", "exit_code", "duration_ms"}.

    Network errors, auth failures, 5xx and malformed answers raise
    UpstreamUnavailableError; any other 4xx is a ValidationError.
    """

    STORE = "sandbox"

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def run(self, script: str, test_input: dict) -> SandboxResult:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        t0 = time.perf_counter()
        try:
            resp = self.session.post(
                f"{self.base_url}/run",
                json={"script": script, "input": test_input or {}, "timeout": self.timeout},
                headers=headers,
                # the executor enforces the script timeout; allow it time to answer
                timeout=self.timeout + 5,
            )
        except requests.RequestException as exc:
            logger.warning("Sandbox unreachable: %s", exc)
            raise UpstreamUnavailableError(self.STORE, detail=str(exc)[:500])

        if resp.status_code >= 500 or resp.status_code in (401, 403):
            logger.error("Sandbox failed status=%s: %s", resp.status_code, resp.text[:500])
            raise UpstreamUnavailableError(self.STORE, detail=f"status {resp.status_code}")
        if not resp.ok:
            logger.warning("Sandbox rejected script status=%s: %s", resp.status_code, resp.text[:500])
            raise ValidationError("Sandbox rejected the hook script")

        try:
            body = resp.json()
            exit_code = int(body["exit_code"])
        except (ValueError, TypeError, KeyError) as exc:
            logger.error("Sandbox answered with a malformed body: %s", exc)
            raise UpstreamUnavailableError(self.STORE, detail="malformed response")

        duration_ms = body.get("duration_ms")
        if not isinstance(duration_ms, int):
            duration_ms = int((time.perf_counter() - t0) * 1000)
        return SandboxResult(
            output=str(body.get("stdout") or ""),
            stderr=str(body.get("stderr") or ""),
            exit_code=exit_code,
            duration_ms=duration_ms,
        )


def get_sandbox() -> SandboxExecutor:
    """Return the app-wide executor, built from config on first use."""
    executor = current_app.extensions.get("hook_sandbox")
    if executor is None:
        cfg = current_app.config
        timeout = cfg.get("HOOK_SANDBOX_TIMEOUT", _DEFAULT_TIMEOUT)
        if cfg.get("HOOK_SANDBOX_URL"):
            executor = RemoteSandbox(cfg["HOOK_SANDBOX_URL"], token=cfg.get("HOOK_SANDBOX_TOKEN") or None, timeout=timeout)
        elif cfg.get("HOOK_SANDBOX_LOCAL"):
            logger.warning("Hook dry runs execute on this host (HOOK_SANDBOX_LOCAL)")
            executor = SubprocessSandbox(timeout=timeout)
        else:
            raise UpstreamUnavailableError(RemoteSandbox.STORE, detail="HOOK_SANDBOX_URL is not configured")
        current_app.extensions["hook_sandbox"] = executor
    return executor
