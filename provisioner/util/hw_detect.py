# provisioner/util/hw_detect.py
from __future__ import annotations

import platform
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

import psutil


@dataclass
class HardwareProfile:
    os: str
    arch: str
    cpu_cores: int
    ram_gb: float
    gpu_count: int = 0
    gpu_names: List[str] = field(default_factory=list)
    driver_version: Optional[str] = None
    compute_cap: Optional[str] = None  # e.g. "12.0" for Blackwell
    vram_gb: Optional[float] = None     # total across all GPUs

    @property
    def has_nvidia(self) -> bool:
        return self.gpu_count > 0


def _nvidia_query(fields: str) -> List[List[str]]:
    """Rows of `nvidia-smi --query-gpu=<fields>`; empty when no driver is present."""
    try:
        out = subprocess.check_output(
            ["nvidia-smi", f"--query-gpu={fields}", "--format=csv,noheader,nounits"],
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=10.0,
        )
    except (OSError, subprocess.SubprocessError):
        return []
    rows = []
    for line in out.strip().splitlines():
        if line.strip():
            rows.append([c.strip() for c in line.split(",")])
    return rows


def detect_hardware() -> HardwareProfile:
    os_name = platform.system().lower()
    arch = platform.machine().lower()
    cpu_cores = psutil.cpu_count(logical=True) or 1
    ram_gb = round(psutil.virtual_memory().total / (1024 ** 3), 2)

    rows = _nvidia_query("name,driver_version,compute_cap,memory.total")
    names: List[str] = []
    vram_mib = 0.0
    driver = None
    cap = None
    for row in rows:
        if len(row) < 4:
            continue
        names.append(row[0])
        driver = driver or row[1]
        cap = cap or row[2]
        try:
            vram_mib += float(row[3])
        except ValueError:
            pass

    return HardwareProfile(
        os=os_name,
        arch=arch,
        cpu_cores=cpu_cores,
        ram_gb=ram_gb,
        gpu_count=len(names),
        gpu_names=names,
        driver_version=driver,
        compute_cap=cap,
        vram_gb=round(vram_mib / 1024.0, 2) if names else None,
    )


def cuda_architecture(profile: HardwareProfile) -> Optional[str]:
    """
    CMAKE_CUDA_ARCHITECTURES value for the first GPU.
    Blackwell = 120, Hopper = 90, Ada = 89, Ampere = 80/86
    """
    if not profile.compute_cap:
        return None
    arch = profile.compute_cap.replace(".", "").strip()
    return arch if arch.isdigit() else None


def distro_id() -> str:
    """Repository slug used by NVIDIA's apt repos, e.g. 'ubuntu2404'."""
    info = platform.freedesktop_os_release()
    return f"{info.get('ID', 'ubuntu')}{info.get('VERSION_ID', '').replace('.', '')}"
