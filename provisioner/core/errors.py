# provisioner/core/errors.py
from __future__ import annotations

from typing import List, Optional, Sequence


class ProvisionError(Exception):
    """Base class for everything the provisioning run reports."""


class PreconditionError(ProvisionError):
    """An environment requirement is unmet and cannot be fixed automatically."""


class StepError(ProvisionError):
    """Fatal failure inside a step's action or verify."""

    def __init__(self, message: str, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.step = step


class VerifyError(StepError):
    """The action returned, but the step's goal state still does not hold."""


class ProcessDiedError(StepError):
    """A supervised process (or container) exited before it became ready."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        log_tail: Optional[Sequence[str]] = None,
        log_path: Optional[str] = None,
        step: Optional[str] = None,
    ) -> None:
        super().__init__(message, step=step)
        self.exit_code = exit_code
        self.log_tail: List[str] = list(log_tail or [])
        self.log_path = log_path


class CommandError(ProvisionError):
    """An external command exited non-zero."""

    def __init__(self, cmd: Sequence[str], returncode: int, output_tail: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output_tail = output_tail
        msg = f"command failed (exit {returncode}): {' '.join(self.cmd)}"
        if output_tail:
            msg += f"\n{output_tail}"
        super().__init__(msg)
