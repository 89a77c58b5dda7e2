# tests/provisioner/steps/test_webui_steps.py
from __future__ import annotations

import pytest
import requests

import provisioner.steps.webui as wu
from provisioner.container import ContainerHandle
from provisioner.core.errors import PreconditionError, ProcessDiedError
from provisioner.core.sequencer import FailureKind, run
from provisioner.supervisor import WaitOutcome, WaitResult


class FakeDocker:
    def __init__(self, exists=False, running=False, installed=True, daemon=True):
        self._exists = exists
        self._running = running
        self.installed = installed
        self.daemon = daemon
        self.events = []

    def available(self):
        return self.installed

    def daemon_running(self):
        return self.daemon

    def exists(self, name):
        return self._exists

    def is_running(self, name):
        return self._running

    def remove(self, name):
        self.events.append(("rm", name))
        self._exists = False

    def pull(self, image):
        self.events.append(("pull", image))

    def run(self, name, image, ports=(), volumes=(), env=None, restart="unless-stopped"):
        self.events.append(("run", name, image, list(ports), list(volumes), dict(env or {})))
        self._exists = self._running = True
        return "cid"


class FakeSupervisor:
    def __init__(self, outcome=WaitOutcome.READY, exit_code=None, tail=None):
        self.outcome = outcome
        self.exit_code = exit_code
        self.tail = tail or []
        self.watched = None

    def await_ready(self, process, readiness_check, timeout, poll_interval):
        self.watched = (process, timeout, poll_interval)
        return WaitResult(self.outcome, 1, 0.0, exit_code=self.exit_code, log_tail=self.tail)


def test_fresh_launch(settings):
    docker, sup = FakeDocker(), FakeSupervisor()
    result = run(wu.build_webui_steps(settings, docker, sup))

    assert result.ok and result.did_work
    assert docker.events[0] == ("pull", "ghcr.io/open-webui/open-webui:main")
    _, name, image, ports, volumes, env = docker.events[1]
    assert name == "open-webui"
    assert ports == ["3000:8080"]
    assert volumes == ["open-webui-data:/app/backend/data"]
    assert env == {
        "OPENAI_API_BASE_URL": "http://localhost:8080/v1",
        "OPENAI_API_KEY": "",
        "OLLAMA_BASE_URL": "",
        "ENABLE_OLLAMA_API": "false",
        "WEBUI_AUTH": "true",
    }
    handle, timeout, poll = sup.watched
    assert isinstance(handle, ContainerHandle) and handle.name == "open-webui"
    assert (timeout, poll) == (60.0, 2.0)


def test_running_container_is_left_alone(settings):
    docker = FakeDocker(exists=True, running=True)
    result = run(wu.build_webui_steps(settings, docker, FakeSupervisor()))

    assert result.ok
    assert result.did_work is False
    assert docker.events == []


def test_stopped_container_is_replaced(settings):
    docker = FakeDocker(exists=True, running=False)
    run(wu.build_webui_steps(settings, docker, FakeSupervisor()))
    assert [e[0] for e in docker.events] == ["rm", "pull", "run"]


def test_slow_start_is_a_warning(settings):
    result = run(wu.build_webui_steps(settings, FakeDocker(), FakeSupervisor(WaitOutcome.TIMED_OUT)))
    assert result.ok
    assert result.warnings == ("Open WebUI may still be starting. Check: docker logs open-webui",)


def test_exited_container_is_fatal(settings):
    sup = FakeSupervisor(WaitOutcome.PROCESS_DIED, exit_code=1, tail=["bad env"])
    result = run(wu.build_webui_steps(settings, FakeDocker(), sup))

    assert result.failure_kind is FailureKind.FATAL
    assert result.failed_step == "webui-container"
    assert isinstance(result.cause, ProcessDiedError)
    assert result.cause.log_tail == ["bad env"]


def test_preconditions():
    pre = {p.name: p for p in wu.webui_preconditions(FakeDocker(installed=False))}
    with pytest.raises(PreconditionError):
        pre["docker"].check()

    pre = {p.name: p for p in wu.webui_preconditions(FakeDocker(daemon=False))}
    pre["docker"].check()
    with pytest.raises(PreconditionError):
        pre["docker-daemon"].check()


def test_missing_docker_aborts_before_steps(settings):
    docker = FakeDocker(installed=False)
    result = run(wu.build_webui_steps(settings, docker, FakeSupervisor()), wu.webui_preconditions(docker))
    assert result.failure_kind is FailureKind.PRECONDITION
    assert docker.events == []


def test_webui_reachable(monkeypatch):
    monkeypatch.setattr(wu.requests, "get", lambda url, timeout: object())
    assert wu.webui_reachable("http://localhost:3000") is True

    def refuse(url, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(wu.requests, "get", refuse)
    assert wu.webui_reachable("http://localhost:3000") is False
