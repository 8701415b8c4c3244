"""
호스트 사전 준비 모듈 테스트
"""

import pytest
import requests
from autotail.errors import PermissionStateError, DependencyInstallError
from autotail.preflight import Preflight


def test_docker_available(settings, runner):
    assert Preflight(settings.preflight, runner).ensure_container_runtime() == True


def test_docker_permission_denied(settings, runner):
    """docker 그룹 권한 없음"""
    runner.respond(["docker", "info"], returncode=1,
                   stderr="permission denied while trying to connect to the Docker daemon socket")
    with pytest.raises(PermissionStateError) as exc_info:
        Preflight(settings.preflight, runner).ensure_container_runtime()
    assert "usermod -aG docker" in exc_info.value.detail
    assert runner.executed() == []


def test_docker_daemon_down(settings, runner):
    runner.respond(["docker", "info"], returncode=1, stderr="Cannot connect to the Docker daemon")
    with pytest.raises(DependencyInstallError):
        Preflight(settings.preflight, runner).ensure_container_runtime()


def test_docker_missing_dry_run_continues(settings, dry_runner):
    """dry-run: 설치 로그만 남기고 계속 진행"""
    dry_runner.respond(["which", "docker"], returncode=1)
    assert Preflight(settings.preflight, dry_runner).ensure_container_runtime() == True
    assert dry_runner.planned == [("sh", "-c", "curl -fsSL https://get.docker.com | sh")]


class _Response:
    text = "#!/bin/sh\necho install\n"

    def raise_for_status(self):
        pass


def test_docker_missing_installs_and_requests_relogin(settings, runner, monkeypatch):
    """설치 후에는 재로그인을 위해 중단"""
    runner.respond(["which", "docker"], returncode=1)
    monkeypatch.setattr(requests, "get", lambda url, timeout: _Response())

    assert Preflight(settings.preflight, runner).ensure_container_runtime() == False
    executed = runner.executed()
    assert len(executed) == 1 and executed[0][0] == "sh"
    assert not any(call[:1] == ("usermod",) for call in runner.calls)


def test_docker_install_failure(settings, runner, monkeypatch):
    runner.respond(["which", "docker"], returncode=1)
    runner.respond(["sh"], returncode=1, stderr="unsupported distribution")
    monkeypatch.setattr(requests, "get", lambda url, timeout: _Response())

    with pytest.raises(DependencyInstallError):
        Preflight(settings.preflight, runner).ensure_container_runtime()


def test_docker_install_download_failure(settings, runner, monkeypatch):
    runner.respond(["which", "docker"], returncode=1)

    def fail(url, timeout):
        raise requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(requests, "get", fail)
    with pytest.raises(DependencyInstallError):
        Preflight(settings.preflight, runner).ensure_container_runtime()


def test_enable_forwarding_is_idempotent(settings, runner):
    """두 번 실행해도 설정 줄이 중복되지 않음"""
    preflight = Preflight(settings.preflight, runner)
    preflight.enable_forwarding()
    preflight.enable_forwarding()

    with open(settings.preflight.sysctl_file) as f:
        content = f.read()
    assert content.count("net.ipv4.ip_forward = 1") == 1
    assert content.count("net.ipv6.conf.all.forwarding = 1") == 1
    assert runner.executed().count(("sysctl", "-p", settings.preflight.sysctl_file)) == 2


def test_enable_forwarding_keeps_existing_lines(settings, runner):
    with open(settings.preflight.sysctl_file, "w") as f:
        f.write("vm.swappiness=10\nnet.ipv4.ip_forward=1")

    Preflight(settings.preflight, runner).enable_forwarding()

    with open(settings.preflight.sysctl_file) as f:
        lines = f.read().splitlines()
    assert lines == ["vm.swappiness=10", "net.ipv4.ip_forward=1", "net.ipv6.conf.all.forwarding = 1"]


def test_enable_forwarding_ipv4_only(settings, runner):
    settings.preflight.enable_ipv6 = False
    Preflight(settings.preflight, runner).enable_forwarding()
    with open(settings.preflight.sysctl_file) as f:
        assert "ipv6" not in f.read()


def test_offload_failure_is_warning(settings, runner, console_logger, caplog):
    """오프로드 설정 실패는 경고만"""
    console_logger.logger.propagate = True
    runner.respond(["ethtool"], returncode=1, stderr="Operation not supported")

    Preflight(settings.preflight, runner).tune_offload("eth0")

    assert any(r.levelname == "WARNING" and "offload" in r.getMessage() for r in caplog.records)


def test_offload_disabled(settings, runner):
    settings.preflight.disable_offload = False
    Preflight(settings.preflight, runner).tune_offload("eth0")
    assert runner.calls == []
