# install_server.py
"""
Provision this GPU host: toolchain, CUDA, llama.cpp build, model shards,
and a background llama-server.

Usage:  sudo python install_server.py
Configuration comes from LLAMAHOST_* environment variables (see config.py).
Re-running is safe; finished steps are detected and skipped.
"""
from __future__ import annotations

import logging
import sys

from config import load_settings
from provisioner.core.sequencer import FailureKind, run
from provisioner.report import print_failure, print_server_summary
from provisioner.steps.server import ServerLaunch, build_server_steps, server_preconditions
from provisioner.supervisor import ProcessSupervisor
from provisioner.util.hw_detect import detect_hardware
from provisioner.util.logging_setup import init_logging

log = logging.getLogger("llamahost")


def main() -> int:
    s = load_settings()
    init_logging(s.log_level, log_file=s.install_log_file)

    supervisor = ProcessSupervisor(grace_sec=s.kill_grace_sec, tail_lines=s.log_tail_lines)
    launch = ServerLaunch()
    steps = build_server_steps(s, supervisor, launch=launch)

    try:
        result = run(steps, preconditions=server_preconditions(s))
    except KeyboardInterrupt:
        log.warning("Interrupted; re-run to resume from the unfinished step.")
        return 130
    finally:
        # llama-server outlives the installer
        launch.release()

    if not result.ok:
        print_failure(result)
        return 2 if result.failure_kind is FailureKind.PRECONDITION else 1

    print_server_summary(s, result, profile=detect_hardware())
    return 0


if __name__ == "__main__":
    sys.exit(main())
