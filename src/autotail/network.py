"""
네트워크 설정 해석 모듈
기본 라우트 기반 자동 감지 또는 수동 지정 값 검증
"""

import ipaddress
import json
import re
from typing import Optional, List, Dict
from .config import NetworkConfig, StrictNat, normalize_cidr
from .errors import (
    ConfigValidationError,
    DetectionError,
    InterfaceNotFoundError,
    NoRouteForSubnetError,
)
from .logger import get_logger
from .runner import CommandRunner

HOSTNAME_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")


class HostNetwork:
    """호스트 라우팅 테이블/인터페이스 조회 (ip -j)"""

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self.logger = get_logger()

    def _ip_json(self, args: List[str]) -> List[Dict]:
        result = self.runner.query(["ip", "-j"] + args)
        if not result.ok or not result.stdout.strip():
            return []
        try:
            return json.loads(result.stdout)
        except ValueError:
            self.logger.warning(f"Unparseable output from ip {' '.join(args)}")
            return []

    def default_interface(self) -> str:
        """기본 라우트의 출구 인터페이스"""
        for route in self._ip_json(["route", "show", "default"]):
            dev = route.get("dev")
            if dev:
                self.logger.debug(f"Default route via {dev}")
                return dev
        raise DetectionError("No default route found; specify --interface or --subnet")

    def interface_exists(self, interface: str) -> bool:
        """인터페이스 존재 여부"""
        return self.runner.query(["ip", "link", "show", interface]).returncode == 0

    def primary_subnet(self, interface: str) -> Optional[str]:
        """인터페이스의 첫 번째 IPv4 주소 블록"""
        for link in self._ip_json(["-4", "addr", "show", "dev", interface]):
            for addr in link.get("addr_info", []):
                if addr.get("family", "inet") != "inet" or not addr.get("local"):
                    continue
                network = ipaddress.ip_interface(f"{addr['local']}/{addr.get('prefixlen', 32)}").network
                self.logger.debug(f"Interface {interface} subnet: {network}")
                return str(network)
        return None

    def interface_for_subnet(self, subnet: str) -> str:
        """라우팅 테이블에서 서브넷을 소유한 인터페이스 찾기"""
        wanted = ipaddress.ip_network(subnet, strict=False)
        best = None
        for route in self._ip_json(["route", "show"]):
            dst = route.get("dst")
            if not dst or dst == "default" or not route.get("dev"):
                continue
            try:
                network = ipaddress.ip_network(dst, strict=False)
            except ValueError:
                continue
            if network.version != wanted.version or not wanted.subnet_of(network):
                continue
            # 가장 긴 prefix가 서브넷을 소유
            if best is None or network.prefixlen > best[0].prefixlen:
                best = (network, route["dev"])
        if best:
            self.logger.debug(f"Subnet {subnet} owned by {best[0]} dev {best[1]}")
            return best[1]
        raise NoRouteForSubnetError(f"No route matches subnet {subnet}; specify --interface")


class ConfigResolver:
    """CLI 입력을 NetworkConfig로 해석"""

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self.host = HostNetwork(runner)
        self.logger = get_logger()

    @staticmethod
    def validate(subnet: Optional[str] = None,
                 hostname: Optional[str] = None,
                 strict_nat: Optional[str] = None,
                 strict_nat_target: Optional[str] = None) -> Optional[StrictNat]:
        """외부 명령 없이 입력값 검증"""
        if bool(strict_nat) != bool(strict_nat_target):
            raise ConfigValidationError(
                "--strict-nat and --strict-nat-target must be given together"
            )

        for flag, value in (("--subnet", subnet),
                            ("--strict-nat", strict_nat),
                            ("--strict-nat-target", strict_nat_target)):
            if value is None:
                continue
            try:
                normalize_cidr(value)
            except ValueError:
                raise ConfigValidationError(f"Invalid CIDR for {flag}: {value!r}")

        if hostname is not None and not HOSTNAME_RE.match(hostname):
            raise ConfigValidationError(f"Invalid hostname: {hostname!r}")

        if strict_nat:
            return StrictNat(normalize_cidr(strict_nat), normalize_cidr(strict_nat_target))
        return None

    def resolve(self,
                interface: Optional[str] = None,
                subnet: Optional[str] = None,
                hostname: Optional[str] = None,
                exit_node: bool = False,
                strict_nat: Optional[str] = None,
                strict_nat_target: Optional[str] = None) -> NetworkConfig:
        """네트워크 설정 해석"""
        nat = self.validate(subnet, hostname, strict_nat, strict_nat_target)
        local_subnet = normalize_cidr(subnet) if subnet else None

        if interface or local_subnet:
            self.logger.info("Manual network configuration")
            if interface:
                if not self.host.interface_exists(interface):
                    raise InterfaceNotFoundError(f"Interface {interface} does not exist")
                if not local_subnet:
                    local_subnet = self.host.primary_subnet(interface)
            else:
                interface = self.host.interface_for_subnet(local_subnet)
        else:
            self.logger.info("Auto-detecting network configuration")
            interface = self.host.default_interface()
            local_subnet = self.host.primary_subnet(interface)
            if not local_subnet:
                raise DetectionError(f"Interface {interface} has no IPv4 address")

        config = NetworkConfig(
            interface=interface,
            local_subnet=local_subnet,
            hostname=hostname,
            exit_node=exit_node,
            strict_nat=nat,
        )
        self.logger.info(f"Resolved network config: {config}")
        return config
