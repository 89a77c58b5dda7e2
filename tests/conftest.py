# tests/conftest.py
from __future__ import annotations

import os
import sys
import tempfile

import pytest

# --- FORCE PROJECT ROOT ONTO sys.path ----------------------------------------

# Project root = parent of the "tests" directory
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Ensure project root is at the *front* of sys.path so it wins over site-packages
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# -----------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _test_env_isolation():
    """
    Session-wide defaults so tests don't:
      - write under /workspace
      - pick up a real RunPod environment
    """
    tmp_root = tempfile.mkdtemp(prefix="llamahost_test_")

    os.environ.setdefault("LLAMAHOST_WORKSPACE", os.path.join(tmp_root, "workspace"))
    for var in ("RUNPOD_POD_ID", "RUNPOD_PUBLIC_IP", "RUNPOD_TCP_PORT_22"):
        os.environ.pop(var, None)

    yield


@pytest.fixture(autouse=True)
def _stub_external_downloads(monkeypatch):
    """
    Per-test: prevent any real HF network IO.

    provisioner.llm.model_manager.snapshot_download => RuntimeError if a test
    forgets to mock it.
    """
    from provisioner.llm import model_manager as mm

    monkeypatch.setattr(
        mm,
        "snapshot_download",
        lambda *a, **k: (_ for _ in ()).throw(
            RuntimeError("snapshot_download used in tests; must be mocked")
        ),
        raising=True,
    )


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a per-test workspace."""
    from config import Settings

    return Settings(
        workspace=str(tmp_path / "workspace"),
        cuda_profile_script=str(tmp_path / "profile.d" / "cuda.sh"),
        model_name="Tiny",
        model_repo="acme/Tiny-GGUF",
        model_quant="Q4_K_M",
        model_shards=3,
        model_size_gb=0.0,
    )


class FakeClock:
    """Deterministic monotonic clock; sleep() advances it."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
