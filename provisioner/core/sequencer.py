# provisioner/core/sequencer.py
"""
Ordered, idempotent step runner.

Each Step carries a side-effect-free probe, an action and a verify. A run walks
the list in caller order: satisfied probes are skipped, everything else runs
its action and must pass verify before the next step starts. The first failure
ends the run; nothing is rolled back, so re-running the same list resumes from
the first unsatisfied step.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from provisioner.core.errors import PreconditionError, VerifyError
from provisioner.core.ports import Action, Probe, Verify

log = logging.getLogger("llamahost.sequencer")


@dataclass(frozen=True)
class Step:
    name: str
    probe: Probe
    action: Action
    verify: Verify
    title: Optional[str] = None

    @property
    def label(self) -> str:
        return self.title or self.name


@dataclass(frozen=True)
class Precondition:
    name: str
    check: Callable[[], None]  # raises PreconditionError


class FailureKind(str, Enum):
    PRECONDITION = "precondition"
    FATAL = "fatal"


@dataclass(frozen=True)
class RunResult:
    completed_steps: Tuple[str, ...] = ()
    executed_steps: Tuple[str, ...] = ()
    skipped_steps: Tuple[str, ...] = ()
    failed_step: Optional[str] = None
    cause: Optional[BaseException] = None
    failure_kind: Optional[FailureKind] = None
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.failed_step is None

    @property
    def did_work(self) -> bool:
        return bool(self.executed_steps)


class _Progress:
    """Mutable accumulator for one run; frozen into a RunResult at the end."""

    def __init__(self) -> None:
        self.completed: List[str] = []
        self.executed: List[str] = []
        self.skipped: List[str] = []
        self.warnings: List[str] = []

    def freeze(
        self,
        failed_step: Optional[str] = None,
        cause: Optional[BaseException] = None,
        kind: Optional[FailureKind] = None,
    ) -> RunResult:
        return RunResult(
            completed_steps=tuple(self.completed),
            executed_steps=tuple(self.executed),
            skipped_steps=tuple(self.skipped),
            failed_step=failed_step,
            cause=cause,
            failure_kind=kind,
            warnings=tuple(self.warnings),
        )


def _check_unique(steps: Sequence[Step]) -> None:
    seen = set()
    for st in steps:
        if st.name in seen:
            raise ValueError(f"Duplicate step name: {st.name}")
        seen.add(st.name)


def run(steps: Sequence[Step], preconditions: Sequence[Precondition] = ()) -> RunResult:
    _check_unique(steps)
    progress = _Progress()

    for pre in preconditions:
        try:
            pre.check()
        except PreconditionError as e:
            log.error("⛔ Precondition '%s' not met: %s", pre.name, e)
            return progress.freeze(pre.name, e, FailureKind.PRECONDITION)

    total = len(steps)
    for idx, st in enumerate(steps, start=1):
        log.info("▶️  Step %d/%d: %s", idx, total, st.label)

        try:
            satisfied = bool(st.probe())
        except Exception as e:
            log.error("❌ Probe for '%s' raised: %s", st.name, e)
            return progress.freeze(st.name, e, FailureKind.FATAL)

        if satisfied:
            log.info("✅ '%s' already satisfied, skipping", st.name)
            progress.skipped.append(st.name)
            progress.completed.append(st.name)
            continue

        try:
            note = st.action()
        except Exception as e:
            log.error("❌ Step '%s' failed: %s", st.name, e)
            return progress.freeze(st.name, e, FailureKind.FATAL)

        if note:
            log.warning("⚠️  %s", note)
            progress.warnings.append(note)

        try:
            verified = bool(st.verify())
        except Exception as e:
            log.error("❌ Verify for '%s' raised: %s", st.name, e)
            return progress.freeze(st.name, e, FailureKind.FATAL)

        if not verified:
            err = VerifyError(f"'{st.name}' ran but its goal state is still unmet", step=st.name)
            log.error("❌ %s", err)
            return progress.freeze(st.name, err, FailureKind.FATAL)

        log.info("✅ '%s' done", st.name)
        progress.executed.append(st.name)
        progress.completed.append(st.name)

    return progress.freeze()
