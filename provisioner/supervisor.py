# provisioner/supervisor.py
"""
Background process supervision.

The supervisor launches long-running services detached from the provisioning
run (own session, output appended to a log file), makes sure only one process
listens on a given port, and blocks on a readiness probe with a deadline.

Outcomes of a wait are deliberately asymmetric: a process that exits before it
is ready is fatal, a process that is merely slow is reported as TIMED_OUT and
left running.
"""
from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

import psutil

from provisioner.core.errors import StepError
from provisioner.core.ports import ReadinessCheck, Watched

log = logging.getLogger("llamahost.supervisor")

_TAIL_BYTES = 64 * 1024


class ReadyState(str, Enum):
    READY = "ready"
    NOT_READY = "not-ready"
    DEAD = "dead"


class WaitOutcome(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed-out"
    PROCESS_DIED = "process-died"


@dataclass(frozen=True)
class WaitResult:
    outcome: WaitOutcome
    attempts: int
    elapsed: float
    exit_code: Optional[int] = None
    log_tail: List[str] = field(default_factory=list)


def tail_file(path: str | os.PathLike, n: int) -> List[str]:
    """Last n lines of a (possibly large) text file."""
    if n <= 0:
        return []
    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            f.seek(max(0, size - _TAIL_BYTES))
            data = f.read()
    except OSError:
        return []
    lines = data.decode("utf-8", errors="replace").splitlines()
    return lines[-n:]


class SupervisedProcess:
    def __init__(
        self,
        popen: subprocess.Popen,
        command: Sequence[str],
        log_path: str | os.PathLike,
        pid_path: Optional[str | os.PathLike] = None,
    ) -> None:
        self._popen: Optional[subprocess.Popen] = popen
        self.pid: int = popen.pid
        self.command = list(command)
        self.log_path = Path(log_path)
        self.pid_path = Path(pid_path) if pid_path else None

    def poll(self) -> Optional[int]:
        """None while running, else the exit code (-1 when unknown after release)."""
        if self._popen is not None:
            return self._popen.poll()
        try:
            proc = psutil.Process(self.pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return -1
            return None
        except psutil.NoSuchProcess:
            return -1

    def tail(self, n: int) -> List[str]:
        return tail_file(self.log_path, n)

    def release(self) -> None:
        """Drop the handle; the child keeps running after we exit."""
        self._popen = None

    def __repr__(self) -> str:
        return f"SupervisedProcess(pid={self.pid}, log={str(self.log_path)!r})"


class ProcessSupervisor:
    def __init__(
        self,
        grace_sec: float = 2.0,
        tail_lines: int = 20,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.grace_sec = grace_sec
        self.tail_lines = tail_lines
        self._clock = clock
        self._sleep = sleep

    # ----- endpoint ownership -----

    def listeners(self, port: int) -> List[psutil.Process]:
        try:
            conns = psutil.net_connections(kind="inet")
        except psutil.AccessDenied as e:
            raise StepError(f"cannot inspect listeners on port {port}; run as root") from e

        me = os.getpid()
        pids = set()
        for c in conns:
            if c.status != psutil.CONN_LISTEN or not c.laddr or c.pid is None:
                continue
            if c.laddr.port == port and c.pid != me:
                pids.add(c.pid)

        procs = []
        for pid in sorted(pids):
            try:
                procs.append(psutil.Process(pid))
            except psutil.NoSuchProcess:
                continue
        return procs

    def free_endpoint(self, port: int) -> int:
        """Terminate whatever listens on `port`: SIGTERM, grace period, then SIGKILL."""
        procs = self.listeners(port)
        if not procs:
            return 0

        log.warning("⚠️  Port %d is in use by pid(s) %s; stopping them…", port, [p.pid for p in procs])
        for p in procs:
            try:
                p.terminate()
            except psutil.NoSuchProcess:
                pass

        _gone, alive = psutil.wait_procs(procs, timeout=self.grace_sec)
        for p in alive:
            log.warning("Process %d ignored SIGTERM; killing", p.pid)
            try:
                p.kill()
            except psutil.NoSuchProcess:
                pass
        if alive:
            psutil.wait_procs(alive, timeout=self.grace_sec)
        return len(procs)

    # ----- launch -----

    def launch(
        self,
        command: str | os.PathLike,
        args: Sequence[str],
        log_path: str | os.PathLike,
        env: Optional[Mapping[str, str]] = None,
        pid_path: Optional[str | os.PathLike] = None,
        cwd: Optional[str | os.PathLike] = None,
    ) -> SupervisedProcess:
        argv = [str(command), *[str(a) for a in args]]
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # The child inherits its own copy of the descriptor; ours closes on exit
        with open(log_path, "ab") as log_fh:
            popen = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=log_fh,
                stderr=subprocess.STDOUT,
                env=dict(env) if env is not None else None,
                cwd=str(cwd) if cwd else None,
                start_new_session=True,
            )

        if pid_path:
            Path(pid_path).write_text(f"{popen.pid}\n", encoding="utf-8")

        log.info("🚀 Started %s in background (PID: %d) | log=%s", Path(argv[0]).name, popen.pid, log_path)
        return SupervisedProcess(popen, argv, log_path, pid_path)

    # ----- readiness -----

    def check(self, process: Watched, readiness_check: ReadinessCheck) -> ReadyState:
        # Liveness first: a dead process never counts as ready
        if process.poll() is not None:
            return ReadyState.DEAD
        return ReadyState.READY if readiness_check() else ReadyState.NOT_READY

    def await_ready(
        self,
        process: Watched,
        readiness_check: ReadinessCheck,
        timeout: float,
        poll_interval: float,
    ) -> WaitResult:
        start = self._clock()
        deadline = start + max(0.0, timeout)
        attempts = 0

        while True:
            attempts += 1
            code = process.poll()
            state = ReadyState.DEAD if code is not None else (
                ReadyState.READY if readiness_check() else ReadyState.NOT_READY
            )
            now = self._clock()

            if state is ReadyState.DEAD:
                return WaitResult(
                    WaitOutcome.PROCESS_DIED,
                    attempts,
                    now - start,
                    exit_code=code,
                    log_tail=process.tail(self.tail_lines),
                )
            if state is ReadyState.READY:
                return WaitResult(WaitOutcome.READY, attempts, now - start)
            if now >= deadline:
                return WaitResult(WaitOutcome.TIMED_OUT, attempts, now - start)

            log.debug("…not ready yet (attempt %d)", attempts)
            self._sleep(max(0.0, min(poll_interval, deadline - now)))
