"""
Tailscale 활성화 모듈
tailscale up 실행 및 로그인 URL 추출
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from rich.console import Console
from .config import NetworkConfig, ActivationSettings
from .errors import ActivationError
from .logger import get_logger
from .runner import CommandRunner

console = Console()

# tailscale up 출력은 계약된 형식이 아니므로 여기서만 파싱한다.
# 형식: https://<auth-host>/<token>
#   https://login.tailscale.com/a/1a2b3c4d
#   https://headscale.example.com/register/nodekey:abcd
LOGIN_URL_RE = re.compile(r"https://[A-Za-z0-9.-]+(?::\d+)?/[A-Za-z0-9._~:/-]*[A-Za-z0-9]")
# 경고 메시지에 붙는 tailscale.com 문서 링크는 로그인 URL이 아니다
# (예: https://tailscale.com/s/ethtool-config-udp-gro, https://tailscale.com/kb/1019/subnets)
LOGIN_HOST = "login.tailscale.com"
URL_HOST_RE = re.compile(r"^https://([^/:]+)")


class ActivationState(Enum):
    LOGIN_REQUIRED = "login_required"
    ALREADY_AUTHENTICATED = "already_authenticated"


@dataclass
class ActivationResult:
    state: ActivationState
    login_url: Optional[str] = None
    output: str = ""
    args: List[str] = field(default_factory=list)


def build_up_args(config: NetworkConfig, extra_args: Optional[List[str]] = None) -> List[str]:
    """tailscale up 플래그 생성"""
    args = ["--accept-routes"]
    if config.local_subnet:
        args.append(f"--advertise-routes={config.local_subnet}")
    if config.exit_node:
        args.append("--advertise-exit-node")
    if config.hostname:
        args.append(f"--hostname={config.hostname}")
    if extra_args:
        args.extend(extra_args)
    return args


def extract_login_url(text: str) -> Optional[str]:
    """출력에서 첫 번째 로그인 URL 추출 (문서 링크 제외)"""
    for match in LOGIN_URL_RE.finditer(text or ""):
        url = match.group(0)
        if not _is_doc_link(url):
            return url
    return None


def _is_doc_link(url: str) -> bool:
    host = URL_HOST_RE.match(url).group(1).lower()
    if host == LOGIN_HOST:
        return False
    return host == "tailscale.com" or host.endswith(".tailscale.com")


class Activator:
    """tailscale up 실행 클래스"""

    def __init__(self, settings: ActivationSettings, runner: CommandRunner, container_name: str):
        self.settings = settings
        self.runner = runner
        self.container_name = container_name
        self.logger = get_logger()

    def activate(self, config: NetworkConfig) -> ActivationResult:
        """Tailscale 세션 활성화"""
        up_args = build_up_args(config, self.settings.extra_args)
        cmd = ["docker", "exec", self.container_name, "tailscale", "up"] + up_args

        console.print("[cyan]Tailscale 활성화 중...[/cyan]")
        # 미인증 상태의 tailscale up은 로그인 완료까지 대기하므로 timeout으로 끊는다
        result = self.runner.execute(cmd, timeout=self.settings.timeout)
        output = result.output

        if not result.simulated:
            self.runner.write_file(self.settings.login_log, output)

        url = extract_login_url(output)
        if url:
            self.logger.info(f"Login required: {url}")
            return ActivationResult(ActivationState.LOGIN_REQUIRED, url, output, up_args)

        if result.ok:
            self.logger.info("Tailscale already authenticated")
            return ActivationResult(ActivationState.ALREADY_AUTHENTICATED, None, output, up_args)

        reason = "timed out" if result.timed_out else f"exited with {result.returncode}"
        raise ActivationError(
            f"tailscale up {reason} without a login URL (see {self.settings.login_log})",
            command=cmd,
            detail=output,
        )
