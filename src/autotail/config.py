"""
설정 관리 모듈
YAML/JSON 운영 설정과 실행별 네트워크 설정(NetworkConfig)
"""

import ipaddress
import os
import yaml
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict


@dataclass(frozen=True)
class StrictNat:
    """1:1 NETMAP 서브넷 쌍"""
    source: str
    target: str

    def __post_init__(self):
        if not self.source or not self.target:
            raise ValueError("strict NAT requires both source and target")


@dataclass(frozen=True)
class NetworkConfig:
    """해석이 끝난 네트워크 설정 (실행 중 불변)"""
    interface: str
    local_subnet: Optional[str] = None
    hostname: Optional[str] = None
    exit_node: bool = False
    strict_nat: Optional[StrictNat] = None


@dataclass
class ServiceSettings:
    """Tailscale 컨테이너 설정"""
    container_name: str = "tailscale"
    image: str = "tailscale/tailscale:latest"
    compose_dir: str = "/opt/autotail"
    state_dir: str = "/var/lib/autotail/tailscale"
    retries: int = 5
    delay: float = 3.0


@dataclass
class PreflightSettings:
    """호스트 사전 준비 설정"""
    sysctl_file: str = "/etc/sysctl.d/99-tailscale.conf"
    enable_ipv6: bool = True
    disable_offload: bool = True
    docker_install_url: str = "https://get.docker.com"


@dataclass
class NatSettings:
    """NAT 규칙 설정"""
    vpn_interface: str = "tailscale0"
    persist: bool = True


@dataclass
class ActivationSettings:
    """tailscale up 설정"""
    login_log: str = "/tmp/tailscale_login.log"
    timeout: int = 30
    extra_args: list = field(default_factory=list)


@dataclass
class AgentSettings:
    """에이전트 설정"""
    log_dir: str = "/var/log/autotail"
    log_level: str = "INFO"


class Config:
    """운영 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "/etc/autotail/config.yaml",
        "~/.autotail/config.yaml",
        "./config.yaml",
    ]

    SECTIONS = ("service", "preflight", "nat", "activation", "agent")

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.service = ServiceSettings()
        self.preflight = PreflightSettings()
        self.nat = NatSettings()
        self.activation = ActivationSettings()
        self.agent = AgentSettings()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            return

        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트 (알 수 없는 키는 무시)"""
        for section in self.SECTIONS:
            values = data.get(section) or {}
            target = getattr(self, section)
            for key, value in values.items():
                if hasattr(target, key):
                    setattr(target, key, value)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}


def normalize_cidr(value: str) -> str:
    """CIDR 문자열 정규화 (호스트 비트 허용)"""
    return str(ipaddress.ip_network(value.strip(), strict=False))
