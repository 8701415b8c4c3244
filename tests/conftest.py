"""
테스트 공통 fixture
외부 명령은 FakeRunner가 미리 정한 응답으로 대신한다.
"""

import json
import pytest
from autotail.config import Config
from autotail.logger import init_logger
from autotail.runner import CommandRunner, CommandResult


class FakeRunner(CommandRunner):
    """외부 명령을 실행하지 않고 prefix 기반 응답을 돌려주는 runner"""

    def __init__(self, responses=None, dry_run=False):
        super().__init__(dry_run=dry_run)
        self.responses = dict(responses or {})
        self.calls = []

    def respond(self, prefix, returncode=0, stdout="", stderr=""):
        self.responses[tuple(prefix)] = (returncode, stdout, stderr)

    def executed(self):
        """실제로 spawn된 변경 명령 (query 제외)"""
        return [tuple(args) for kind, args in self.history if kind == "execute"]

    def _spawn(self, args, timeout=None, env=None):
        self.calls.append(tuple(args))
        best = None
        for prefix, value in self.responses.items():
            if tuple(args[:len(prefix)]) == prefix:
                if best is None or len(prefix) > len(best[0]):
                    best = (prefix, value)

        if best is None:
            return CommandResult(args=list(args), returncode=0)

        value = best[1]
        if callable(value):
            value = value(args)
        if isinstance(value, CommandResult):
            return value
        returncode, stdout, stderr = value
        return CommandResult(args=list(args), returncode=returncode, stdout=stdout, stderr=stderr)


def host_responses(default_dev="eth0", address="192.168.2.10", prefixlen=24):
    """eth0 하나에 기본 라우트가 있는 호스트"""
    routes = [
        {"dst": "default", "gateway": "192.168.2.1", "dev": default_dev},
        {"dst": "192.168.2.0/24", "dev": default_dev, "prefsrc": address},
    ]
    addrs = [{
        "ifname": default_dev,
        "addr_info": [{"family": "inet", "local": address, "prefixlen": prefixlen}],
    }]
    return {
        ("ip", "-j", "route", "show", "default"): (0, json.dumps(routes[:1]), ""),
        ("ip", "-j", "route", "show"): (0, json.dumps(routes), ""),
        ("ip", "-j", "-4", "addr", "show", "dev", default_dev): (0, json.dumps(addrs), ""),
        ("ip", "link", "show"): (1, "", "Device does not exist."),
        ("ip", "link", "show", default_dev): (0, f"2: {default_dev}: <UP> state UP", ""),
        ("which",): (0, "/usr/bin/tool", ""),
        ("docker", "info"): (0, "Server Version: 24.0", ""),
        ("docker", "inspect"): (0, "running\n", ""),
        ("docker", "exec"): (0, "", ""),
        ("iptables", "-t", "filter", "-C"): (1, "", "Bad rule"),
        ("iptables", "-t", "nat", "-C"): (1, "", "Bad rule"),
    }


@pytest.fixture(autouse=True)
def console_logger():
    """파일 없이 콘솔 로거만 사용"""
    return init_logger(None, "DEBUG", False)


@pytest.fixture
def settings(tmp_path):
    """임시 경로를 쓰는 운영 설정"""
    config = Config(str(tmp_path / "missing.yaml"))
    config.service.compose_dir = str(tmp_path / "compose")
    config.service.state_dir = str(tmp_path / "state")
    config.service.delay = 0
    config.preflight.sysctl_file = str(tmp_path / "sysctl.conf")
    config.activation.login_log = str(tmp_path / "login.log")
    config.agent.log_dir = str(tmp_path / "logs")
    return config


@pytest.fixture
def runner():
    return FakeRunner(host_responses())


@pytest.fixture
def dry_runner():
    return FakeRunner(host_responses(), dry_run=True)
