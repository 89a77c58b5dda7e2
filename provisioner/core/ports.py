# provisioner/core/ports.py
from __future__ import annotations
from typing import Callable, List, Optional, Protocol

Probe = Callable[[], bool]
Action = Callable[[], Optional[str]]
Verify = Callable[[], bool]
ReadinessCheck = Callable[[], bool]


class Watched(Protocol):
    """Something launched in the background whose liveness can be polled."""

    def poll(self) -> Optional[int]: ...

    def tail(self, n: int) -> List[str]: ...
