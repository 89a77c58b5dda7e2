# provisioner/util/shell.py
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from provisioner.core.errors import CommandError

log = logging.getLogger("llamahost.shell")

_TAIL_CHARS = 2000


@dataclass
class CommandResult:
    cmd: list
    returncode: int
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


Runner = Callable[..., CommandResult]


def run_command(
    cmd: Sequence[str],
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
    capture: bool = False,
    input_text: Optional[str] = None,
    timeout: Optional[float] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run an external command to completion.

    capture=False streams output to the terminal (apt, cmake, git clone);
    capture=True collects stdout+stderr for parsing. A non-zero exit raises
    CommandError when check is set. A missing executable raises CommandError
    with exit code 127, like a shell would report it.
    """
    argv = [str(c) for c in cmd]
    log.debug("$ %s", " ".join(argv))
    try:
        proc = subprocess.run(
            argv,
            env=dict(env) if env is not None else None,
            cwd=cwd,
            input=input_text,
            stdin=None if input_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.STDOUT if capture else None,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        if check:
            raise CommandError(argv, 127, str(e)) from e
        return CommandResult(argv, 127, str(e))
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv, -1, f"timed out after {timeout}s") from e

    out = proc.stdout or ""
    if check and proc.returncode != 0:
        raise CommandError(argv, proc.returncode, out[-_TAIL_CHARS:].strip())
    return CommandResult(argv, proc.returncode, out)


def cuda_env(cuda_home: str, base: Optional[Mapping[str, str]] = None) -> dict:
    """Copy of the environment with the CUDA toolkit's bin/lib64 prepended."""
    env = dict(os.environ if base is None else base)
    bin_dir = os.path.join(cuda_home, "bin")
    lib_dir = os.path.join(cuda_home, "lib64")

    path_parts = [p for p in env.get("PATH", "").split(os.pathsep) if p]
    if bin_dir not in path_parts:
        path_parts.insert(0, bin_dir)
    env["PATH"] = os.pathsep.join(path_parts)

    lib_parts = [p for p in env.get("LD_LIBRARY_PATH", "").split(os.pathsep) if p]
    if lib_dir not in lib_parts:
        lib_parts.insert(0, lib_dir)
    env["LD_LIBRARY_PATH"] = os.pathsep.join(lib_parts)
    return env
