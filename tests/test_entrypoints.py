# tests/test_entrypoints.py
from __future__ import annotations

import install_server
import launch_webui
from provisioner.core.errors import PreconditionError
from provisioner.core.sequencer import Precondition, Step


def _ok_step(name="x"):
    return Step(name, lambda: False, lambda: None, lambda: True)


def _failing_step(name="x"):
    def boom():
        raise RuntimeError("boom")

    return Step(name, lambda: False, boom, lambda: True)


def _deny():
    raise PreconditionError("no")


def test_install_success_exit_code(monkeypatch):
    monkeypatch.setattr(install_server, "build_server_steps", lambda s, sup, launch: [_ok_step()])
    monkeypatch.setattr(install_server, "server_preconditions", lambda s: [])
    monkeypatch.setattr(install_server, "print_server_summary", lambda *a, **k: None)
    monkeypatch.setattr(install_server, "detect_hardware", lambda: None)
    assert install_server.main() == 0


def test_install_fatal_exit_code(monkeypatch):
    monkeypatch.setattr(install_server, "build_server_steps", lambda s, sup, launch: [_failing_step()])
    monkeypatch.setattr(install_server, "server_preconditions", lambda s: [])
    assert install_server.main() == 1


def test_install_precondition_exit_code(monkeypatch):
    monkeypatch.setattr(install_server, "build_server_steps", lambda s, sup, launch: [_ok_step()])
    monkeypatch.setattr(install_server, "server_preconditions", lambda s: [Precondition("root", _deny)])
    assert install_server.main() == 2


def test_webui_exit_codes(monkeypatch):
    monkeypatch.setattr(launch_webui, "build_webui_steps", lambda s, d, sup: [_ok_step()])
    monkeypatch.setattr(launch_webui, "webui_preconditions", lambda d: [])
    monkeypatch.setattr(launch_webui, "print_webui_summary", lambda *a, **k: None)
    assert launch_webui.main() == 0

    monkeypatch.setattr(launch_webui, "build_webui_steps", lambda s, d, sup: [_failing_step()])
    assert launch_webui.main() == 1


def _interrupted_step(name="x"):
    def ctrl_c():
        raise KeyboardInterrupt

    return Step(name, lambda: False, ctrl_c, lambda: True)


def test_ctrl_c_exit_code(monkeypatch):
    monkeypatch.setattr(install_server, "build_server_steps", lambda s, sup, launch: [_interrupted_step()])
    monkeypatch.setattr(install_server, "server_preconditions", lambda s: [])
    assert install_server.main() == 130

    monkeypatch.setattr(launch_webui, "build_webui_steps", lambda s, d, sup: [_interrupted_step()])
    monkeypatch.setattr(launch_webui, "webui_preconditions", lambda d: [])
    assert launch_webui.main() == 130
