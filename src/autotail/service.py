"""
Tailscale 컨테이너 실행 모듈
compose 매니페스트 생성, 기동, 상태 폴링
"""

import os
import threading
from enum import Enum
from typing import Optional
from jinja2 import Template
from rich.console import Console
from .config import ServiceSettings
from .errors import DependencyInstallError, ServiceStartTimeoutError, OperationCancelledError
from .logger import get_logger
from .polling import poll_until, PollResult
from .runner import CommandRunner

console = Console()

COMPOSE_TEMPLATE = """# Generated by autotail. Overwritten on every run.
services:
  {{ name }}:
    image: {{ image }}
    container_name: {{ name }}
    hostname: {{ name }}
    network_mode: host
    cap_add:
      - NET_ADMIN
      - SYS_MODULE
    environment:
      - TS_STATE_DIR=/var/lib/tailscale
      - TS_USERSPACE=false
    volumes:
      - {{ state_dir }}:/var/lib/tailscale
      - /dev/net/tun:/dev/net/tun
    restart: unless-stopped
"""


class ServiceState(Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


def render_compose(settings: ServiceSettings) -> str:
    """docker-compose.yml 내용 생성"""
    return Template(COMPOSE_TEMPLATE).render(
        name=settings.container_name,
        image=settings.image,
        state_dir=settings.state_dir,
    )


class ServiceLauncher:
    """Tailscale 컨테이너 관리 클래스"""

    def __init__(self, settings: ServiceSettings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner
        self.logger = get_logger()
        self.state = ServiceState.NOT_STARTED

    @property
    def compose_file(self) -> str:
        return os.path.join(self.settings.compose_dir, "docker-compose.yml")

    def write_manifest(self):
        """compose 매니페스트 덮어쓰기"""
        self.runner.write_file(self.compose_file, render_compose(self.settings))
        self.logger.info(f"Wrote service manifest to {self.compose_file}")

    def start(self):
        """컨테이너 기동"""
        console.print("[cyan]Tailscale 컨테이너 시작 중...[/cyan]")
        result = self.runner.execute(["docker", "compose", "-f", self.compose_file, "up", "-d"])
        if not result.ok:
            self.state = ServiceState.FAILED
            raise DependencyInstallError("Failed to start the Tailscale container",
                                         command=result.args, detail=result.stderr)
        self.state = ServiceState.STARTING

    def is_running(self) -> bool:
        """docker inspect로 running 여부 확인"""
        result = self.runner.query([
            "docker", "inspect", "-f", "{{.State.Status}}", self.settings.container_name
        ])
        status = result.stdout.strip() if result.ok else "unknown"
        self.logger.debug(f"Container status: {status}")
        return status == "running"

    def collect_logs(self, tail: int = 50) -> str:
        """컨테이너 로그 수집"""
        result = self.runner.query(["docker", "logs", "--tail", str(tail), self.settings.container_name])
        return result.output

    def wait_until_running(self, cancel: Optional[threading.Event] = None,
                           deadline: Optional[float] = None,
                           sleep=None) -> ServiceState:
        """running 상태가 될 때까지 폴링"""
        if self.runner.dry_run:
            self.logger.info("[DRY RUN] Skipping container readiness polling")
            self.state = ServiceState.RUNNING
            return self.state

        retries = self.settings.retries
        delay = self.settings.delay
        self.logger.info(f"Waiting for container (attempts={retries}, delay={delay}s)")

        result = poll_until(self.is_running, retries, delay,
                            cancel=cancel, deadline=deadline, sleep=sleep)

        if result == PollResult.READY:
            self.state = ServiceState.RUNNING
            console.print("[green]✓ Tailscale 컨테이너 실행 중[/green]")
            return self.state

        self.state = ServiceState.FAILED
        if result == PollResult.CANCELLED:
            raise OperationCancelledError("Cancelled while waiting for the Tailscale container")

        logs = self.collect_logs()
        self.logger.error(f"Container did not start:\n{logs}")
        raise ServiceStartTimeoutError(
            f"Container '{self.settings.container_name}' not running after {retries} attempts",
            logs=logs,
            attempts=retries,
        )

    def launch(self, cancel: Optional[threading.Event] = None,
               deadline: Optional[float] = None) -> ServiceState:
        """매니페스트 생성 → 기동 → 대기"""
        self.write_manifest()
        self.start()
        return self.wait_until_running(cancel=cancel, deadline=deadline)
