"""
Tailscale 활성화 모듈 테스트
"""

import pytest
from autotail.activation import (
    Activator,
    ActivationState,
    build_up_args,
    extract_login_url,
)
from autotail.config import NetworkConfig
from autotail.errors import ActivationError
from autotail.runner import CommandResult

LOGIN_OUTPUT = """
To authenticate, visit:

\thttps://login.tailscale.com/a/1b2c3d4e5f

"""


def test_build_up_args():
    config = NetworkConfig(interface="eth0", local_subnet="192.168.2.0/24",
                           hostname="edge-1", exit_node=True)
    assert build_up_args(config) == [
        "--accept-routes",
        "--advertise-routes=192.168.2.0/24",
        "--advertise-exit-node",
        "--hostname=edge-1",
    ]


def test_build_up_args_minimal():
    assert build_up_args(NetworkConfig(interface="eth0")) == ["--accept-routes"]


def test_extract_login_url():
    assert extract_login_url(LOGIN_OUTPUT) == "https://login.tailscale.com/a/1b2c3d4e5f"


def test_extract_login_url_headscale():
    text = "To authenticate, visit:\n\thttps://hs.example.com:8080/register/nodekey:ab12cd\n"
    assert extract_login_url(text) == "https://hs.example.com:8080/register/nodekey:ab12cd"


def test_extract_login_url_ignores_doc_links():
    text = ("Warning: UDP GRO forwarding is suboptimally configured on eth0, "
            "UDP forwarding throughput capability will increase with a configuration change.\n"
            "See https://tailscale.com/s/ethtool-config-udp-gro\n")
    assert extract_login_url(text) is None
    assert extract_login_url(text + LOGIN_OUTPUT) == "https://login.tailscale.com/a/1b2c3d4e5f"


@pytest.mark.parametrize("link", [
    "https://tailscale.com/kb/1019/subnets",
    "https://pkgs.tailscale.com/stable/",
])
def test_extract_login_url_ignores_other_tailscale_hosts(link):
    text = f"Some peers are advertising routes; see {link}\n"
    assert extract_login_url(text) is None
    assert extract_login_url(text + LOGIN_OUTPUT) == "https://login.tailscale.com/a/1b2c3d4e5f"


@pytest.mark.parametrize("text", ["", "Success.", "http://login.tailscale.com/a/abc"])
def test_extract_login_url_absent(text):
    assert extract_login_url(text) is None


def test_activate_login_required(settings, runner):
    """미인증: timeout 되더라도 URL이 있으면 LOGIN_REQUIRED"""
    runner.responses[("docker", "exec")] = CommandResult(
        args=[], returncode=-1, stderr=LOGIN_OUTPUT, timed_out=True)
    result = Activator(settings.activation, runner, "tailscale").activate(
        NetworkConfig(interface="eth0", local_subnet="192.168.2.0/24"))

    assert result.state == ActivationState.LOGIN_REQUIRED
    assert result.login_url == "https://login.tailscale.com/a/1b2c3d4e5f"
    with open(settings.activation.login_log) as f:
        assert "login.tailscale.com" in f.read()


def test_activate_already_authenticated(settings, runner):
    result = Activator(settings.activation, runner, "tailscale").activate(NetworkConfig(interface="eth0"))

    assert result.state == ActivationState.ALREADY_AUTHENTICATED
    assert result.login_url is None
    assert ("docker", "exec", "tailscale", "tailscale", "up", "--accept-routes") in runner.calls


def test_activate_failure_without_url(settings, runner):
    runner.respond(["docker", "exec"], returncode=1, stderr="backend error: invalid key")
    with pytest.raises(ActivationError):
        Activator(settings.activation, runner, "tailscale").activate(NetworkConfig(interface="eth0"))


def test_activate_dry_run(settings, dry_runner):
    result = Activator(settings.activation, dry_runner, "tailscale").activate(NetworkConfig(interface="eth0"))
    assert result.state == ActivationState.ALREADY_AUTHENTICATED
    assert dry_runner.calls == []
