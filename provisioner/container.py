# provisioner/container.py
from __future__ import annotations

import logging
import shutil
from typing import List, Mapping, Optional, Sequence, Tuple

from provisioner.util.shell import Runner, run_command

log = logging.getLogger("llamahost.docker")


class DockerCLI:
    """Thin wrapper over the docker command line; every verb is one CLI call."""

    def __init__(self, runner: Runner = run_command, executable: str = "docker") -> None:
        self._run = runner
        self.executable = executable

    def _docker(self, *args: str, capture: bool = True, check: bool = True):
        return self._run([self.executable, *args], capture=capture, check=check)

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def daemon_running(self) -> bool:
        return self._docker("info", check=False).ok

    def _names(self, all_containers: bool) -> List[str]:
        args = ["ps", "--format", "{{.Names}}"]
        if all_containers:
            args.insert(1, "-a")
        out = self._docker(*args).stdout
        return [line.strip() for line in out.splitlines() if line.strip()]

    def exists(self, name: str) -> bool:
        return name in self._names(all_containers=True)

    def is_running(self, name: str) -> bool:
        return name in self._names(all_containers=False)

    def remove(self, name: str) -> None:
        self._docker("rm", name)

    def pull(self, image: str) -> None:
        # Stream pull progress to the terminal
        self._docker("pull", image, capture=False)

    def run(
        self,
        name: str,
        image: str,
        ports: Sequence[str] = (),
        volumes: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        restart: Optional[str] = "unless-stopped",
    ) -> str:
        args = ["run", "-d", "--name", name]
        if restart:
            args += ["--restart", restart]
        for p in ports:
            args += ["-p", p]
        for v in volumes:
            args += ["-v", v]
        for k, v in (env or {}).items():
            args += ["-e", f"{k}={v}"]
        args.append(image)
        out = self._docker(*args).stdout.strip()
        # docker run -d prints the full container id as its last line
        return out.splitlines()[-1] if out else ""

    def state(self, name: str) -> Tuple[bool, Optional[int]]:
        res = self._docker(
            "inspect", "--format", "{{.State.Running}} {{.State.ExitCode}}", name, check=False
        )
        if not res.ok:
            return False, None
        parts = res.stdout.strip().split()
        running = bool(parts) and parts[0] == "true"
        code = int(parts[1]) if len(parts) > 1 and parts[1].lstrip("-").isdigit() else None
        return running, code

    def logs_tail(self, name: str, n: int) -> List[str]:
        res = self._docker("logs", "--tail", str(n), name, check=False)
        return res.stdout.splitlines()[-n:] if n > 0 else []


class ContainerHandle:
    """Adapts a named container to the supervisor's poll()/tail() interface."""

    def __init__(self, docker: DockerCLI, name: str) -> None:
        self.docker = docker
        self.name = name

    def poll(self) -> Optional[int]:
        running, code = self.docker.state(self.name)
        if running:
            return None
        return code if code is not None else -1

    def tail(self, n: int) -> List[str]:
        return self.docker.logs_tail(self.name, n)
