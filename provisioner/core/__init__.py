from .errors import (
    ProvisionError,
    PreconditionError,
    StepError,
    VerifyError,
    ProcessDiedError,
    CommandError,
)
from .ports import Probe, Action, Verify, ReadinessCheck, Watched
from .sequencer import Step, Precondition, FailureKind, RunResult, run
from .probes import CountProbe, executable_probe, path_probe, all_of, parse_version
