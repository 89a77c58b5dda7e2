# config.py
"""
Configuration for llamahost.

Usage (preferred):
    from config import load_settings
    s = load_settings()          # once, at program start
    print(s.server_port)

Settings are immutable after construction and are passed explicitly to the
step builders, the supervisor and the reporting helpers.

Override via env vars (prefix LLAMAHOST_, case-insensitive), e.g.:
  LLAMAHOST_WORKSPACE=/workspace
  LLAMAHOST_LOG_LEVEL=debug
  LLAMAHOST_MODEL_REPO=unsloth/GLM-5-GGUF
  LLAMAHOST_MODEL_QUANT=Q4_K_M
  LLAMAHOST_MODEL_SHARDS=11
  LLAMAHOST_SERVER_PORT=8080
  LLAMAHOST_HF_TOKEN=hf_xxx
  LLAMAHOST_APT_PACKAGES='["build-essential","cmake","git"]'
  LLAMAHOST_WEBUI_BACKEND_URL=https://<pod>-8080.proxy.runpod.net/v1
"""
from __future__ import annotations

import os
from typing import List, Optional, Literal
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["debug", "info", "warning", "error", "critical"]


class Settings(BaseSettings):
    # ---- Workspace ----
    workspace: str = "/workspace"
    # None -> <workspace>/llama.cpp
    llama_cpp_path: Optional[str] = None
    llama_cpp_repo_url: str = "https://github.com/ggml-org/llama.cpp.git"

    # ---- Model artifacts ----
    model_name: str = "GLM-5"
    model_repo: str = "unsloth/GLM-5-GGUF"
    model_quant: str = "Q4_K_M"
    model_shards: int = Field(default=11, ge=1)
    model_size_gb: float = 426.0
    # None -> <workspace>/models/<model_name>-<model_quant>
    model_path: Optional[str] = None
    hf_token: Optional[SecretStr] = None

    # ---- System packages / toolchain ----
    apt_packages: List[str] = Field(
        default_factory=lambda: [
            "build-essential",
            "cmake",
            "git",
            "curl",
            "wget",
            "python3",
            "python3-pip",
            "python3-venv",
            "software-properties-common",
            "apt-transport-https",
            "ca-certificates",
            "gnupg",
            "lsb-release",
            "lsof",
            "psmisc",
            "jq",
        ]
    )
    # Executables whose presence means the package step already ran
    required_executables: List[str] = Field(
        default_factory=lambda: ["gcc", "cmake", "git", "curl", "wget", "jq"]
    )
    nvidia_driver_package: str = "nvidia-driver-580"
    cuda_toolkit_package: str = "cuda-toolkit-12-8"
    cuda_keyring_url: str = (
        "https://developer.download.nvidia.com/compute/cuda/repos/{distro}/{arch}/cuda-keyring_1.1-1_all.deb"
    )
    cuda_home: str = "/usr/local/cuda"
    cuda_profile_script: str = "/etc/profile.d/cuda.sh"

    # Node.js + a globally installed npm CLI (empty package disables the step)
    node_min_major: int = 18
    nodesource_setup_url: str = "https://deb.nodesource.com/setup_22.x"
    npm_cli_package: str = "@anthropic-ai/claude-code"
    npm_cli_executable: str = "claude"

    # ---- Inference server (llama-server) ----
    server_host: str = "0.0.0.0"
    server_port: int = 8080
    ctx_size: int = 8192
    gpu_layers: int = 999
    flash_attn: bool = True
    split_mode: Literal["none", "layer", "row"] = "layer"
    server_ready_timeout_sec: float = 600.0
    server_ready_poll_sec: float = 5.0
    health_request_timeout_sec: float = 2.0

    # Supervisor behavior
    kill_grace_sec: float = 2.0
    log_tail_lines: int = 20

    # ---- Chat web UI (Open WebUI container) ----
    webui_backend_url: str = "http://localhost:8080/v1"
    webui_api_key: SecretStr = SecretStr("")
    webui_port: int = 3000
    webui_container: str = "open-webui"
    webui_image: str = "ghcr.io/open-webui/open-webui:main"
    webui_volume: str = "open-webui-data"
    webui_ready_timeout_sec: float = 60.0
    webui_ready_poll_sec: float = 2.0

    # Logging
    log_level: LogLevel = "info"

    # ---- Hosting environment (read from the platform's own variables) ----
    runpod_pod_id: Optional[str] = Field(default=None, validation_alias="RUNPOD_POD_ID")
    runpod_public_ip: Optional[str] = Field(default=None, validation_alias="RUNPOD_PUBLIC_IP")
    runpod_ssh_port: Optional[str] = Field(default=None, validation_alias="RUNPOD_TCP_PORT_22")

    model_config = SettingsConfigDict(
        env_prefix="LLAMAHOST_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @property
    def llama_cpp_dir(self) -> str:
        return os.path.abspath(self.llama_cpp_path or os.path.join(self.workspace, "llama.cpp"))

    @property
    def model_dir(self) -> str:
        default = os.path.join(self.workspace, "models", f"{self.model_name}-{self.model_quant}")
        return os.path.abspath(self.model_path or default)

    @property
    def server_log_file(self) -> str:
        return os.path.join(os.path.abspath(self.workspace), "llama-server.log")

    @property
    def server_pid_file(self) -> str:
        return os.path.join(os.path.abspath(self.workspace), "llama-server.pid")

    @property
    def install_log_file(self) -> str:
        return os.path.join(os.path.abspath(self.workspace), "llamahost-install.log")

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, v: str) -> LogLevel:
        vv = str(v).lower().strip()
        return vv if vv in {"debug", "info", "warning", "error", "critical"} else "info"  # type: ignore[return-value]

    @field_validator("model_quant", mode="before")
    @classmethod
    def _validate_quant(cls, v: str) -> str:
        """Quant labels appear upper-case in shard names (Q4_K_M, IQ2_XXS, ...)."""
        vv = str(v).strip().upper()
        if not vv:
            raise ValueError("model_quant must not be empty")
        return vv


def load_settings(**overrides) -> Settings:
    """Build the run's single Settings instance (env first, explicit overrides on top)."""
    return Settings(**overrides)
