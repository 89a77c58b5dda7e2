# provisioner/steps/server.py
"""
Ordered steps that take a fresh Ubuntu GPU host to a running llama-server.

Every step is safe to re-run: its probe detects finished work, and the
download step resumes a partial shard set instead of starting over. The
final step launches llama-server detached and hands its handle to the
caller through ServerLaunch so it can be released after the run.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import requests

from provisioner.core.errors import PreconditionError, ProcessDiedError
from provisioner.core.probes import executable_probe, path_probe
from provisioner.core.sequencer import Precondition, Step
from provisioner.llm.model_manager import (
    ensure_download,
    first_shard_path,
    shard_probe,
    spec_from_settings,
    validate_gguf,
)
from provisioner.llm.server import build_server_args, check_health, health_url, server_binary
from provisioner.supervisor import ProcessSupervisor, SupervisedProcess, WaitOutcome
from provisioner.util.hw_detect import HardwareProfile, cuda_architecture, detect_hardware, distro_id
from provisioner.util.shell import Runner, cuda_env, run_command

log = logging.getLogger("llamahost.steps.server")

_KEYRING_DEB = os.path.join(tempfile.gettempdir(), "cuda-keyring.deb")

_CUDA_PROFILE = """export PATH={home}/bin:$PATH
export LD_LIBRARY_PATH={home}/lib64:${{LD_LIBRARY_PATH:-}}
"""


@dataclass
class ServerLaunch:
    """Receives the llama-server handle when the launch step runs."""
    process: Optional[SupervisedProcess] = None

    def release(self) -> None:
        if self.process is not None:
            self.process.release()


def _download(url: str, dest: str, timeout: float = 60.0) -> None:
    """Stream `url` to `dest`; `dest` only appears once the body is complete."""
    part = f"{dest}.part"
    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            with open(part, "wb") as f:
                for chunk in r.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
        os.replace(part, dest)
    finally:
        if os.path.exists(part):
            os.remove(part)


def server_preconditions(s) -> List[Precondition]:
    def _root() -> None:
        if os.name != "posix" or os.geteuid() != 0:
            raise PreconditionError("This installer must be run as root (sudo ./install_server.py)")

    def _apt() -> None:
        if shutil.which("apt-get") is None:
            raise PreconditionError("apt-get not found; a Debian/Ubuntu host is required")

    return [Precondition("root", _root), Precondition("apt", _apt)]


def build_server_steps(
    s,
    supervisor: ProcessSupervisor,
    launch: Optional[ServerLaunch] = None,
    runner: Runner = run_command,
    hardware: Callable[[], HardwareProfile] = detect_hardware,
) -> List[Step]:
    launch = launch if launch is not None else ServerLaunch()
    env = cuda_env(s.cuda_home)
    apt_env = dict(env, DEBIAN_FRONTEND="noninteractive")
    cuda_bin = os.path.join(s.cuda_home, "bin")

    def apt_install(*packages: str) -> None:
        runner(["apt-get", "update", "-qq"], env=apt_env)
        runner(["apt-get", "install", "-y", "-qq", *packages], env=apt_env)

    def ensure_cuda_keyring() -> None:
        if runner(["dpkg", "-s", "cuda-keyring"], capture=True, check=False).ok:
            return
        url = s.cuda_keyring_url.format(distro=distro_id(), arch=hardware().arch)
        log.info("🔑 Adding NVIDIA apt repository | %s", url)
        _download(url, _KEYRING_DEB)
        runner(["dpkg", "-i", _KEYRING_DEB], env=apt_env)
        runner(["apt-get", "update", "-qq"], env=apt_env)

    # ---- 1. system packages ----
    def packages_probe() -> bool:
        return all(executable_probe(x)() for x in s.required_executables)

    def install_packages() -> None:
        apt_install(*s.apt_packages)

    # ---- 2. driver ----
    driver_probe = executable_probe("nvidia-smi")

    def install_driver() -> Optional[str]:
        log.warning("No NVIDIA driver detected. Installing %s…", s.nvidia_driver_package)
        ensure_cuda_keyring()
        runner(["apt-get", "install", "-y", "-qq", s.nvidia_driver_package], env=apt_env)
        return "NVIDIA driver installed. A REBOOT may be required before continuing."

    # ---- 3. toolkit ----
    nvcc_probe = executable_probe("nvcc", search_paths=[cuda_bin])

    def install_toolkit() -> None:
        log.warning("CUDA toolkit not found. Installing %s…", s.cuda_toolkit_package)
        ensure_cuda_keyring()
        runner(["apt-get", "install", "-y", "-qq", s.cuda_toolkit_package], env=apt_env)

    # ---- 4. profile script ----
    profile_probe = path_probe(s.cuda_profile_script, "file")

    def write_profile() -> None:
        path = Path(s.cuda_profile_script)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_CUDA_PROFILE.format(home=s.cuda_home), encoding="utf-8")

    # ---- 5. node ----
    node_probe = executable_probe("node", min_version=(s.node_min_major,))

    def install_node() -> None:
        log.warning("Installing Node.js from %s…", s.nodesource_setup_url)
        r = requests.get(s.nodesource_setup_url, timeout=60)
        r.raise_for_status()
        runner(["bash", "-"], env=apt_env, input_text=r.text)
        runner(["apt-get", "install", "-y", "-qq", "nodejs"], env=apt_env)

    # ---- 6. npm CLI ----
    cli_probe = executable_probe(s.npm_cli_executable)

    def install_cli() -> None:
        runner(["npm", "install", "-g", s.npm_cli_package], env=env)

    # ---- 7/8. llama.cpp ----
    src_dir = Path(s.llama_cpp_dir)
    source_probe = path_probe(src_dir / ".git", "dir")
    binary = server_binary(s)
    binary_probe = path_probe(binary, "executable")

    def clone_source() -> None:
        if src_dir.exists():
            log.warning("Removing incomplete checkout at %s", src_dir)
            shutil.rmtree(src_dir)
        src_dir.parent.mkdir(parents=True, exist_ok=True)
        runner(["git", "clone", s.llama_cpp_repo_url, str(src_dir)], env=env)

    def build_llama() -> None:
        profile = hardware()
        configure = ["cmake", "-B", "build", "-DGGML_CUDA=ON"]
        arch = cuda_architecture(profile)
        if arch:
            log.info("🧩 Detected GPU compute capability: %s", arch)
            configure.append(f"-DCMAKE_CUDA_ARCHITECTURES={arch}")
        runner(configure, cwd=str(src_dir), env=env)
        runner(["cmake", "--build", "build", f"-j{profile.cpu_cores}"], cwd=str(src_dir), env=env)
        log.info("✅ llama.cpp built | %s", binary)

    # ---- 9. model shards ----
    spec = spec_from_settings(s)
    shards = shard_probe(spec, s.model_dir)
    first_shard = first_shard_path(spec, s.model_dir)

    def download_model() -> None:
        token = s.hf_token.get_secret_value() if s.hf_token else None
        ensure_download(spec, s.model_dir, token=token)

    def model_ready() -> bool:
        return shards() and validate_gguf(first_shard)

    # ---- 10. server ----
    url = health_url(s.server_port)

    def healthy() -> bool:
        return check_health(url, timeout=s.health_request_timeout_sec)

    def launch_server() -> Optional[str]:
        profile = hardware()
        log.info("🧩 Detected %d GPU(s) for tensor split", profile.gpu_count)
        supervisor.free_endpoint(s.server_port)
        proc = supervisor.launch(
            binary,
            build_server_args(s, first_shard, profile.gpu_count),
            log_path=s.server_log_file,
            env=env,
            pid_path=s.server_pid_file,
        )
        launch.process = proc

        log.info("⏳ Waiting for server to load model and start listening…")
        res = supervisor.await_ready(proc, healthy, s.server_ready_timeout_sec, s.server_ready_poll_sec)
        if res.outcome is WaitOutcome.PROCESS_DIED:
            raise ProcessDiedError(
                f"llama-server exited with code {res.exit_code} before becoming ready",
                exit_code=res.exit_code,
                log_tail=res.log_tail,
                log_path=s.server_log_file,
                step="llama-server",
            )
        if res.outcome is WaitOutcome.TIMED_OUT:
            return (
                f"Server did not report ready within {s.server_ready_timeout_sec:.0f}s; "
                f"it may still be loading. Check {s.server_log_file}"
            )
        log.info("✅ Server is ready after %.0fs", res.elapsed)
        return None

    def server_up() -> bool:
        proc = launch.process
        return healthy() or (proc is not None and proc.poll() is None)

    steps = [
        Step("system-packages", packages_probe, install_packages, packages_probe, "Installing system packages"),
        Step("nvidia-driver", driver_probe, install_driver, driver_probe, "NVIDIA driver"),
        Step("cuda-toolkit", nvcc_probe, install_toolkit, nvcc_probe, "CUDA toolkit"),
        Step("cuda-profile", profile_probe, write_profile, profile_probe, "CUDA environment profile"),
        Step("nodejs", node_probe, install_node, node_probe, "Node.js"),
    ]
    if s.npm_cli_package:
        steps.append(Step("npm-cli", cli_probe, install_cli, cli_probe, f"npm CLI {s.npm_cli_package}"))
    steps += [
        Step("llama-cpp-source", source_probe, clone_source, source_probe, "Cloning llama.cpp"),
        Step("llama-cpp-build", binary_probe, build_llama, binary_probe, "Building llama.cpp with CUDA"),
        Step("model-download", model_ready, download_model, model_ready,
             f"Downloading {spec.logical_name} {spec.quant} ({spec.shard_count} shards)"),
        Step("llama-server", healthy, launch_server, server_up, "Launching llama.cpp server"),
    ]
    return steps
