# tests/provisioner/core/test_probes.py
from __future__ import annotations

import os
import stat
import sys

import pytest

from provisioner.core import probes


@pytest.mark.parametrize(
    "text,expected",
    [
        ("v22.11.0", (22, 11, 0)),
        ("cmake version 3.28.3", (3, 28, 3)),
        ("Cuda compilation tools, release 12.8, V12.8.93", (12, 8)),
        ("no digits here", None),
        ("", None),
    ],
)
def test_parse_version(text, expected):
    assert probes.parse_version(text) == expected


def _fake_exe(directory, name, output):
    path = directory / name
    path.write_text(f"#!/bin/sh\necho '{output}'\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@pytest.mark.skipif(sys.platform == "win32", reason="shell script executables")
def test_executable_probe_checks_minimum_version(tmp_path, monkeypatch):
    _fake_exe(tmp_path, "node", "v16.20.0")
    monkeypatch.setenv("PATH", str(tmp_path))

    assert probes.executable_probe("node")() is True
    assert probes.executable_probe("node", min_version=(18,))() is False
    assert probes.executable_probe("node", min_version=(16, 2))() is True


@pytest.mark.skipif(sys.platform == "win32", reason="shell script executables")
def test_executable_probe_uses_extra_search_paths(tmp_path, monkeypatch):
    cuda_bin = tmp_path / "cuda" / "bin"
    cuda_bin.mkdir(parents=True)
    _fake_exe(cuda_bin, "nvcc", "release 12.8")
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))

    assert probes.executable_probe("nvcc")() is False
    assert probes.executable_probe("nvcc", search_paths=[str(cuda_bin)])() is True


def test_path_probe_kinds(tmp_path):
    f = tmp_path / "file.txt"
    f.write_text("x")
    d = tmp_path / "dir"
    d.mkdir()

    assert probes.path_probe(f, "file")() is True
    assert probes.path_probe(f, "dir")() is False
    assert probes.path_probe(d, "dir")() is True
    assert probes.path_probe(tmp_path / "missing")() is False
    assert probes.path_probe(f, "executable")() is False
    with pytest.raises(ValueError):
        probes.path_probe(f, "socket")


def test_count_probe_partial_and_complete(tmp_path):
    p = probes.CountProbe(tmp_path / "Q4", "M-Q4-*.gguf", expected=3)
    assert p.found() == 0
    assert p() is False

    (tmp_path / "Q4").mkdir()
    (tmp_path / "Q4" / "M-Q4-00001-of-00003.gguf").write_bytes(b"")
    (tmp_path / "Q4" / "unrelated.txt").write_bytes(b"")
    assert p.found() == 1
    assert p() is False

    for i in (2, 3):
        (tmp_path / "Q4" / f"M-Q4-0000{i}-of-00003.gguf").write_bytes(b"")
    assert p.found() == 3
    assert p() is True


def test_count_probe_is_read_only(tmp_path):
    target = tmp_path / "never-created"
    p = probes.CountProbe(target, "*.gguf", expected=1)
    p()
    p()
    assert not os.path.exists(target)


def test_count_probe_rejects_nonpositive_expected(tmp_path):
    with pytest.raises(ValueError):
        probes.CountProbe(tmp_path, "*", expected=0)


def test_all_of():
    assert probes.all_of(lambda: True, lambda: True)() is True
    assert probes.all_of(lambda: True, lambda: False)() is False
    assert probes.all_of()() is True
