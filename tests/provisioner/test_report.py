# tests/provisioner/test_report.py
from __future__ import annotations

import io

from provisioner.core.errors import ProcessDiedError
from provisioner.core.sequencer import FailureKind, RunResult
from provisioner.report import internal_ip, print_failure, print_server_summary, print_webui_summary


def test_failure_report_includes_log_tail():
    cause = ProcessDiedError(
        "llama-server exited with code 1 before becoming ready",
        exit_code=1,
        log_tail=["loading model", "error: out of memory"],
        log_path="/w/llama-server.log",
    )
    result = RunResult(
        completed_steps=("system-packages",),
        failed_step="llama-server",
        cause=cause,
        failure_kind=FailureKind.FATAL,
    )
    out = io.StringIO()
    print_failure(result, out)
    text = out.getvalue()

    assert "Step 'llama-server' failed (fatal)" in text
    assert "/w/llama-server.log" in text
    assert "| error: out of memory" in text
    assert "system-packages" in text


def test_server_summary_plain_host(settings):
    out = io.StringIO()
    print_server_summary(settings, RunResult(executed_steps=("x",)), out=out, ip="10.0.0.5")
    text = out.getvalue()

    assert "Setup Complete!" in text
    assert "curl http://10.0.0.5:8080/health" in text
    assert f"kill $(cat {settings.server_pid_file})" in text
    assert "proxy.runpod.net" not in text


def test_server_summary_runpod(settings):
    s = settings.model_copy(update={"runpod_pod_id": "pod42", "runpod_public_ip": "1.2.3.4", "runpod_ssh_port": "2222"})
    out = io.StringIO()
    print_server_summary(s, RunResult(warnings=("slow",)), out=out, ip="10.0.0.5")
    text = out.getvalue()

    assert "Already provisioned" in text
    assert "https://pod42-8080.proxy.runpod.net/v1" in text
    assert "ssh -L 8080:localhost:8080 root@1.2.3.4 -p 2222" in text
    assert "[!] slow" in text


def test_webui_summary(settings):
    out = io.StringIO()
    print_webui_summary(settings, RunResult(executed_steps=("webui-container",)), out=out)
    text = out.getvalue()
    assert "http://localhost:3000" in text
    assert "docker logs -f open-webui" in text
    assert "docker volume rm open-webui-data" in text


def test_internal_ip_is_ipv4():
    parts = internal_ip().split(".")
    assert len(parts) == 4
