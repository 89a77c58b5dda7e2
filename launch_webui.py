# launch_webui.py
"""
Launch Open WebUI in Docker, connected to the remote llama.cpp server.

Run this on your desktop/laptop (not on the GPU server). Requires Docker.
Usage:  python launch_webui.py   then open http://localhost:3000
"""
from __future__ import annotations

import logging
import sys

from config import load_settings
from provisioner.container import DockerCLI
from provisioner.core.sequencer import FailureKind, run
from provisioner.report import print_failure, print_webui_summary
from provisioner.steps.webui import build_webui_steps, webui_preconditions
from provisioner.supervisor import ProcessSupervisor
from provisioner.util.logging_setup import init_logging

log = logging.getLogger("llamahost")


def main() -> int:
    s = load_settings()
    init_logging(s.log_level)

    docker = DockerCLI()
    supervisor = ProcessSupervisor(grace_sec=s.kill_grace_sec, tail_lines=s.log_tail_lines)
    steps = build_webui_steps(s, docker, supervisor)

    try:
        result = run(steps, preconditions=webui_preconditions(docker))
    except KeyboardInterrupt:
        log.warning("Interrupted; re-run to resume from the unfinished step.")
        return 130

    if not result.ok:
        print_failure(result)
        return 2 if result.failure_kind is FailureKind.PRECONDITION else 1

    print_webui_summary(s, result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
