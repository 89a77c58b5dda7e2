# provisioner/report.py
"""Operator-facing text: final summaries, warnings and failure reports."""
from __future__ import annotations

import socket
import sys
from typing import Optional, TextIO

import psutil

from provisioner.core.errors import ProcessDiedError
from provisioner.core.sequencer import RunResult
from provisioner.util.hw_detect import HardwareProfile

_RULE = "=" * 65


def internal_ip() -> str:
    for _name, addrs in psutil.net_if_addrs().items():
        for a in addrs:
            if a.family == socket.AF_INET and not a.address.startswith("127."):
                return a.address
    return "127.0.0.1"


def _banner(out: TextIO, title: str) -> None:
    print("", file=out)
    print(_RULE, file=out)
    print(f"  {title}", file=out)
    print(_RULE, file=out)
    print("", file=out)


def print_failure(result: RunResult, out: TextIO = sys.stderr) -> None:
    kind = result.failure_kind.value if result.failure_kind else "fatal"
    print("", file=out)
    print(f"[x] Step '{result.failed_step}' failed ({kind}): {result.cause}", file=out)
    if isinstance(result.cause, ProcessDiedError):
        where = f" ({result.cause.log_path})" if result.cause.log_path else ""
        print(f"    Last log lines{where}:", file=out)
        for line in result.cause.log_tail:
            print(f"    | {line}", file=out)
    if result.completed_steps:
        print(f"    Completed before failure: {', '.join(result.completed_steps)}", file=out)
    print("    Fix the problem and re-run; finished steps will be skipped.", file=out)


def print_warnings(result: RunResult, out: TextIO = sys.stdout) -> None:
    for w in result.warnings:
        print(f"[!] {w}", file=out)


def _curl_examples(out: TextIO, base: str, model_alias: str) -> None:
    print("  Health check:", file=out)
    print(f"    curl {base}/health", file=out)
    print("", file=out)
    print("  Chat completion:", file=out)
    print(f"    curl {base}/v1/chat/completions \\", file=out)
    print("      -H 'Content-Type: application/json' \\", file=out)
    print(
        f"      -d '{{\"model\":\"{model_alias}\",\"messages\":[{{\"role\":\"user\",\"content\":\"Hello!\"}}],\"max_tokens\":1024}}'",
        file=out,
    )
    print("", file=out)


def print_server_summary(
    s,
    result: RunResult,
    profile: Optional[HardwareProfile] = None,
    out: TextIO = sys.stdout,
    ip: Optional[str] = None,
) -> None:
    ip = ip or internal_ip()
    alias = s.model_name.lower()
    _banner(out, "Setup Complete!" if result.did_work else "Already provisioned; nothing to do")

    print(f"  Model:        {s.model_name} {s.model_quant} ({s.model_shards} shards)", file=out)
    if profile is not None and profile.has_nvidia:
        print(f"  GPUs:         {profile.gpu_count}x {profile.gpu_names[0]}", file=out)
    print(f"  Internal:     http://{ip}:{s.server_port}", file=out)
    print(f"  PID file:     {s.server_pid_file}", file=out)
    print(f"  Log file:     {s.server_log_file}", file=out)
    print(f"  Install log:  {s.install_log_file}", file=out)
    print("", file=out)

    if s.runpod_pod_id:
        proxy = f"https://{s.runpod_pod_id}-{s.server_port}.proxy.runpod.net"
        print(f"  RunPod proxy: {proxy}", file=out)
        print("", file=out)
        _curl_examples(out, proxy, alias)
        print("  Python (OpenAI client):", file=out)
        print("    from openai import OpenAI", file=out)
        print(f'    client = OpenAI(base_url="{proxy}/v1", api_key="not-needed")', file=out)
        print("", file=out)
        if s.runpod_public_ip and s.runpod_ssh_port:
            print("  SSH tunnel (alternative):", file=out)
            print(
                f"    ssh -L {s.server_port}:localhost:{s.server_port} root@{s.runpod_public_ip} -p {s.runpod_ssh_port}",
                file=out,
            )
            print(f"    Then connect via http://localhost:{s.server_port}", file=out)
            print("", file=out)
    else:
        public = s.runpod_public_ip or ip
        _curl_examples(out, f"http://{public}:{s.server_port}", alias)

    print(f"  Stop server:  kill $(cat {s.server_pid_file})", file=out)
    print(f"  View logs:    tail -f {s.server_log_file}", file=out)
    if s.npm_cli_package:
        print(f"  CLI:          {s.npm_cli_executable}", file=out)
    print("", file=out)
    print_warnings(result, out)


def print_webui_summary(s, result: RunResult, out: TextIO = sys.stdout) -> None:
    name = s.webui_container
    url = f"http://localhost:{s.webui_port}"
    _banner(out, "Open WebUI is running!" if result.did_work else f"Container '{name}' is already running")

    print(f"  URL:            {url}", file=out)
    print(f"  Backend:        {s.webui_backend_url}", file=out)
    print(f"  Model:          {s.model_name} {s.model_quant}", file=out)
    print("", file=out)
    print("  First time setup:", file=out)
    print(f"    1. Open {url} in your browser", file=out)
    print("    2. Create an admin account (first signup becomes admin)", file=out)
    print(f"    3. Select the {s.model_name} model from the model dropdown", file=out)
    print("    4. Start chatting!", file=out)
    print("", file=out)
    print("  Management:", file=out)
    print(f"    Stop:          docker stop {name}", file=out)
    print(f"    Start:         docker start {name}", file=out)
    print(f"    Logs:          docker logs -f {name}", file=out)
    print(f"    Remove:        docker rm -f {name}", file=out)
    print(f"    Remove data:   docker volume rm {s.webui_volume}", file=out)
    print("", file=out)
    print_warnings(result, out)
