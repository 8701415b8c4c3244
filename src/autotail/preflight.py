"""
호스트 사전 준비 모듈
Docker 설치/권한 확인, IP 포워딩 (idempotent), 오프로드 설정
"""

import os
import re
import tempfile
import requests
from rich.console import Console
from .config import PreflightSettings
from .errors import DependencyInstallError, PermissionStateError
from .logger import get_logger
from .runner import CommandRunner

console = Console()

FORWARDING_SETTINGS = [
    ("net.ipv4.ip_forward", "1"),
    ("net.ipv6.conf.all.forwarding", "1"),
]


class Preflight:
    """호스트 사전 준비"""

    def __init__(self, settings: PreflightSettings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner
        self.logger = get_logger()

    def ensure_container_runtime(self) -> bool:
        """Docker 설치 및 사용 가능 여부 확인

        Returns:
            bool: 계속 진행 가능하면 True, 방금 설치되어 재로그인이 필요하면 False
        """
        if not self.runner.which("docker"):
            self.logger.warning("Docker is not installed")
            self.install_docker()
            if not self.runner.dry_run:
                return False
            # dry-run: 설치되었다고 가정하고 계속
            return True

        result = self.runner.query(["docker", "info"])
        if result.ok:
            self.logger.debug("Docker is available")
            return True

        if "permission denied" in result.output.lower():
            user = os.environ.get("SUDO_USER") or os.environ.get("USER") or "$USER"
            raise PermissionStateError(
                "Current user cannot access the Docker daemon",
                detail=f"Run 'sudo usermod -aG docker {user}', log out and back in, then re-run.",
            )

        raise DependencyInstallError(
            "Docker is installed but the daemon is not usable",
            command=result.args,
            detail=result.output,
        )

    def install_docker(self):
        """공식 설치 스크립트로 Docker 설치"""
        console.print("[cyan]Docker 설치 중...[/cyan]")
        url = self.settings.docker_install_url

        if self.runner.dry_run:
            self.runner.execute(["sh", "-c", f"curl -fsSL {url} | sh"])
            return

        try:
            response = requests.get(url, timeout=60)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DependencyInstallError(f"Failed to download Docker install script: {e}")

        with tempfile.NamedTemporaryFile(mode='w', suffix='.sh', delete=False) as f:
            f.write(response.text)
            script_path = f.name

        try:
            result = self.runner.execute(["sh", script_path])
        finally:
            os.unlink(script_path)

        if not result.ok:
            raise DependencyInstallError("Docker installation failed",
                                         command=result.args, detail=result.stderr)

        console.print("[green]✓ Docker 설치 완료[/green]")
        self.logger.info("Docker installed successfully")

    def enable_forwarding(self):
        """IPv4/IPv6 포워딩 활성화 (이미 있는 설정은 다시 쓰지 않음)"""
        path = self.settings.sysctl_file
        settings = FORWARDING_SETTINGS if self.settings.enable_ipv6 else FORWARDING_SETTINGS[:1]

        existing = self.runner.read_file(path) or ""
        missing = [(key, value) for key, value in settings
                   if not _has_setting(existing, key, value)]

        if missing:
            block = "".join(f"{key} = {value}\n" for key, value in missing)
            if existing and not existing.endswith("\n"):
                block = "\n" + block
            self.runner.write_file(path, block, append=True)
            self.logger.info(f"Added forwarding settings to {path}: {[k for k, _ in missing]}")
        else:
            self.logger.info(f"Forwarding already configured in {path}")

        result = self.runner.execute(["sysctl", "-p", path])
        if not result.ok:
            raise DependencyInstallError("Failed to apply sysctl settings",
                                         command=result.args, detail=result.stderr)

    def tune_offload(self, interface: str):
        """인터페이스 오프로드 비활성화 (실패해도 계속 진행)"""
        if not self.settings.disable_offload:
            return

        if not self.runner.which("ethtool"):
            self.logger.warning("ethtool not found; skipping offload tuning (performance may degrade)")
            return

        result = self.runner.execute(["ethtool", "-K", interface, "gro", "off", "lro", "off"])
        if not result.ok:
            self.logger.warning(
                f"Could not disable offload on {interface} (performance may degrade): {result.stderr.strip()}"
            )


def _has_setting(content: str, key: str, value: str) -> bool:
    pattern = re.compile(rf"^\s*{re.escape(key)}\s*=\s*{re.escape(value)}\s*$", re.MULTILINE)
    return bool(pattern.search(content))
