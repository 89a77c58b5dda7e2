# provisioner/llm/server.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

import requests

log = logging.getLogger("llamahost.llmsrv")


def server_binary(s) -> Path:
    return Path(s.llama_cpp_dir) / "build" / "bin" / "llama-server"


def tensor_split(gpu_count: int) -> str:
    """Even split across devices: '1,1,1' for three GPUs."""
    return ",".join(["1"] * max(gpu_count, 0))


def build_server_args(s, model_path: str | os.PathLike, gpu_count: int) -> List[str]:
    args = [
        "-m", str(model_path),
        "--host", s.server_host,
        "--port", str(s.server_port),
        "-ngl", str(s.gpu_layers),
        "--ctx-size", str(s.ctx_size),
        "--flash-attn", "on" if s.flash_attn else "off",
        "--split-mode", s.split_mode,
    ]
    if gpu_count > 0:
        args += ["--tensor-split", tensor_split(gpu_count)]
    return args


def health_url(port: int, host: str = "127.0.0.1") -> str:
    return f"http://{host}:{port}/health"


def check_health(url: str, timeout: float = 2.0) -> bool:
    """
    llama-server answers /health with {"status": "ok"} once the model is loaded
    and 503 {"error": {...}} while still loading.
    """
    try:
        r = requests.get(url, timeout=timeout)
    except requests.RequestException:
        return False
    if r.status_code != 200:
        return False
    try:
        body = r.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("status") == "ok"
