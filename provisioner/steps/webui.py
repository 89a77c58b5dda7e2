# provisioner/steps/webui.py
from __future__ import annotations

import logging
from typing import List, Optional

import requests

from provisioner.container import ContainerHandle, DockerCLI
from provisioner.core.errors import PreconditionError, ProcessDiedError
from provisioner.core.sequencer import Precondition, Step
from provisioner.supervisor import ProcessSupervisor, WaitOutcome

log = logging.getLogger("llamahost.steps.webui")


def webui_url(s) -> str:
    return f"http://localhost:{s.webui_port}"


def webui_reachable(url: str, timeout: float = 2.0) -> bool:
    """Any HTTP answer counts; the UI serves its login page once it is up."""
    try:
        requests.get(url, timeout=timeout)
        return True
    except requests.RequestException:
        return False


def webui_env(s) -> dict:
    return {
        "OPENAI_API_BASE_URL": s.webui_backend_url,
        "OPENAI_API_KEY": s.webui_api_key.get_secret_value(),
        "OLLAMA_BASE_URL": "",
        "ENABLE_OLLAMA_API": "false",
        "WEBUI_AUTH": "true",
    }


def webui_preconditions(docker: DockerCLI) -> List[Precondition]:
    def _installed() -> None:
        if not docker.available():
            raise PreconditionError("Docker is not installed. Install it from https://docs.docker.com/get-docker/")

    def _daemon() -> None:
        if not docker.daemon_running():
            raise PreconditionError("Docker daemon is not running. Start Docker and try again.")

    return [Precondition("docker", _installed), Precondition("docker-daemon", _daemon)]


def build_webui_steps(s, docker: DockerCLI, supervisor: ProcessSupervisor) -> List[Step]:
    name = s.webui_container
    url = webui_url(s)

    def running() -> bool:
        return docker.is_running(name)

    def start_container() -> Optional[str]:
        if docker.exists(name):
            log.warning("Removing stopped container '%s'…", name)
            docker.remove(name)

        log.info("📥 Pulling %s…", s.webui_image)
        docker.pull(s.webui_image)

        log.info("🚀 Starting container '%s'…", name)
        docker.run(
            name,
            s.webui_image,
            ports=[f"{s.webui_port}:8080"],
            volumes=[f"{s.webui_volume}:/app/backend/data"],
            env=webui_env(s),
        )

        log.info("⏳ Waiting for Open WebUI to start…")
        res = supervisor.await_ready(
            ContainerHandle(docker, name),
            lambda: webui_reachable(url),
            s.webui_ready_timeout_sec,
            s.webui_ready_poll_sec,
        )
        if res.outcome is WaitOutcome.PROCESS_DIED:
            raise ProcessDiedError(
                f"container '{name}' exited with code {res.exit_code} before becoming ready",
                exit_code=res.exit_code,
                log_tail=res.log_tail,
                step="webui-container",
            )
        if res.outcome is WaitOutcome.TIMED_OUT:
            return f"Open WebUI may still be starting. Check: docker logs {name}"
        log.info("✅ Open WebUI is ready!")
        return None

    return [Step("webui-container", running, start_container, running, "Open WebUI container")]
