# provisioner/core/probes.py
"""
Read-only predicates used as step probes.

Two shapes recur: presence (an executable, file or directory exists, optionally
at a minimum version) and count (N of N sharded files exist under a path). No
probe writes to disk or touches the network.
"""
from __future__ import annotations

import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from provisioner.core.ports import Probe

_VERSION_RE = re.compile(r"v?(\d+(?:\.\d+)*)")


def parse_version(text: str) -> Optional[Tuple[int, ...]]:
    m = _VERSION_RE.search(text or "")
    if not m:
        return None
    return tuple(int(p) for p in m.group(1).split("."))


def resolve_executable(name: str, search_paths: Iterable[str] = ()) -> Optional[str]:
    found = shutil.which(name)
    if found:
        return found
    for d in search_paths:
        candidate = os.path.join(d, name)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def executable_version(path: str, version_args: Sequence[str] = ("--version",)) -> Optional[Tuple[int, ...]]:
    try:
        out = subprocess.run(
            [path, *version_args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            timeout=10.0,
        ).stdout
    except (OSError, subprocess.TimeoutExpired):
        return None
    return parse_version(out)


def executable_probe(
    name: str,
    min_version: Optional[Tuple[int, ...]] = None,
    version_args: Sequence[str] = ("--version",),
    search_paths: Iterable[str] = (),
) -> Probe:
    paths = tuple(search_paths)

    def _probe() -> bool:
        exe = resolve_executable(name, paths)
        if exe is None:
            return False
        if min_version is None:
            return True
        version = executable_version(exe, version_args)
        return version is not None and version >= tuple(min_version)

    return _probe


def path_probe(path: str | os.PathLike, kind: str = "any") -> Probe:
    p = Path(path)
    checks = {
        "any": lambda: p.exists(),
        "file": lambda: p.is_file(),
        "dir": lambda: p.is_dir(),
        "executable": lambda: p.is_file() and os.access(p, os.X_OK),
    }
    if kind not in checks:
        raise ValueError(f"Unknown path kind: {kind}")
    return checks[kind]


class CountProbe:
    """
    Satisfied when at least `expected` files match `pattern` under `directory`.
    A partial count reports unsatisfied; the owning step's action is expected
    to resume rather than start over.
    """

    def __init__(self, directory: str | os.PathLike, pattern: str, expected: int) -> None:
        if expected < 1:
            raise ValueError("expected must be >= 1")
        self.directory = Path(directory)
        self.pattern = pattern
        self.expected = expected

    def found(self) -> int:
        if not self.directory.is_dir():
            return 0
        return sum(1 for p in self.directory.glob(self.pattern) if p.is_file())

    def __call__(self) -> bool:
        return self.found() >= self.expected

    def __repr__(self) -> str:
        return f"CountProbe({str(self.directory)!r}, {self.pattern!r}, expected={self.expected})"


def all_of(*probes: Probe) -> Probe:
    def _probe() -> bool:
        return all(p() for p in probes)

    return _probe
