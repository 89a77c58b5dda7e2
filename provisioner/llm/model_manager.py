# provisioner/llm/model_manager.py
from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from huggingface_hub import snapshot_download

from provisioner.core.probes import CountProbe

log = logging.getLogger("llamahost.models")


@dataclass(frozen=True)
class ShardedModelSpec:
    logical_name: str
    repo_id: str
    quant: str
    shard_count: int
    approx_size_gb: float = 0.0

    @property
    def allow_patterns(self) -> List[str]:
        return [f"{self.quant}/*"]

    @property
    def shard_glob(self) -> str:
        # single-file quants carry no -NNNNN-of-NNNNN suffix
        if self.shard_count == 1:
            return self.first_shard_name
        return f"{self.logical_name}-{self.quant}-*.gguf"

    @property
    def first_shard_name(self) -> str:
        if self.shard_count == 1:
            return f"{self.logical_name}-{self.quant}.gguf"
        return f"{self.logical_name}-{self.quant}-00001-of-{self.shard_count:05d}.gguf"


def spec_from_settings(s) -> ShardedModelSpec:
    return ShardedModelSpec(
        logical_name=s.model_name,
        repo_id=s.model_repo,
        quant=s.model_quant,
        shard_count=s.model_shards,
        approx_size_gb=s.model_size_gb,
    )


def shard_dir(spec: ShardedModelSpec, model_dir: str | os.PathLike) -> Path:
    # snapshot_download mirrors the repo layout: <local_dir>/<quant>/<shards>
    return Path(model_dir) / spec.quant


def first_shard_path(spec: ShardedModelSpec, model_dir: str | os.PathLike) -> Path:
    return shard_dir(spec, model_dir) / spec.first_shard_name


def shard_probe(spec: ShardedModelSpec, model_dir: str | os.PathLike) -> CountProbe:
    return CountProbe(shard_dir(spec, model_dir), spec.shard_glob, spec.shard_count)


def count_shards(spec: ShardedModelSpec, model_dir: str | os.PathLike) -> int:
    return shard_probe(spec, model_dir).found()


def validate_gguf(path: str | os.PathLike, min_bytes: int = 10 * 1024 * 1024) -> bool:
    try:
        if not os.path.exists(path):
            return False
        if os.path.getsize(path) < min_bytes:
            return False
        with open(path, "rb") as f:
            mag = f.read(4)
        return mag in (b"GGUF", b"gguf")
    except OSError:
        return False


def free_disk_gb(path: str | os.PathLike) -> float:
    p = Path(path)
    # Walk up to the nearest existing ancestor so a not-yet-created model dir still resolves
    while not p.exists() and p != p.parent:
        p = p.parent
    return round(shutil.disk_usage(p).free / (1024 ** 3), 2)


def ensure_download(spec: ShardedModelSpec, model_dir: str | os.PathLike, token: Optional[str] = None) -> Path:
    """
    Fetch the quant's shards into model_dir.

    snapshot_download skips files that are already complete, so calling this
    against a partial directory only fetches what is missing.
    """
    os.makedirs(model_dir, exist_ok=True)

    found = count_shards(spec, model_dir)
    if found:
        log.warning("📦 Partial download detected (%d/%d shards). Resuming…", found, spec.shard_count)
    else:
        free = free_disk_gb(model_dir)
        log.info(
            "📦 Downloading %s %s (~%.0f GB) | free disk %.1f GB",
            spec.repo_id, spec.quant, spec.approx_size_gb, free,
        )
        if spec.approx_size_gb and free < spec.approx_size_gb:
            log.warning(
                "Free disk (%.1f GB) is below the expected model size (%.0f GB); download may fail.",
                free, spec.approx_size_gb,
            )

    snapshot_download(
        repo_id=spec.repo_id,
        allow_patterns=spec.allow_patterns,
        local_dir=str(model_dir),
        token=token or None,
    )

    log.info("✅ Download complete | %d/%d shards", count_shards(spec, model_dir), spec.shard_count)
    return shard_dir(spec, model_dir)
