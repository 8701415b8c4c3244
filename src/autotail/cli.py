"""
CLI 메인 인터페이스
Click 및 Rich 기반 사용자 친화적 CLI
"""

import signal
import sys
import threading
import click
from typing import Dict, Optional
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from . import __version__
from .activation import Activator, ActivationResult, ActivationState
from .config import Config, NetworkConfig
from .errors import AutotailError, OperationCancelledError
from .logger import init_logger, get_logger
from .nat import NatRuleEngine
from .network import ConfigResolver
from .preflight import Preflight
from .runner import CommandRunner
from .service import ServiceLauncher

console = Console()


class SetupOrchestrator:
    """노드 부트스트랩 오케스트레이터

    1. 네트워크 설정 해석 → 2. 사전 준비 → 3. 컨테이너 기동
    → 4. NAT 규칙 → 5. 활성화. 실패 시 그 자리에서 중단하며 이미 적용된
    규칙은 되돌리지 않는다.
    """

    def __init__(self, settings: Config, options: Dict, runner: CommandRunner,
                 cancel: Optional[threading.Event] = None, deadline: Optional[float] = None):
        self.settings = settings
        self.options = options
        self.runner = runner
        self.cancel = cancel or threading.Event()
        self.deadline = deadline
        self.logger = get_logger()
        self.execution_log = []
        self.current_step = ""
        self.network_config: Optional[NetworkConfig] = None
        self.activation: Optional[ActivationResult] = None
        self.restart_required = False

    def log_step(self, step: str, status: str, message: str = ""):
        """실행 단계 로깅"""
        self.execution_log.append({
            "step": step,
            "status": status,
            "message": message
        })

    def show_summary(self):
        """실행 결과 요약 표시"""
        table = Table(title="실행 결과 요약", show_header=True, header_style="bold magenta")
        table.add_column("단계", style="cyan", width=24)
        table.add_column("상태", width=6)
        table.add_column("메시지")

        for log in self.execution_log:
            status_icon = "✓" if log["status"] == "success" else "✗"
            status_color = "green" if log["status"] == "success" else "red"
            table.add_row(
                log["step"],
                f"[{status_color}]{status_icon}[/{status_color}]",
                escape(log["message"] or "")
            )

        console.print()
        console.print(table)

        log_files = self.logger.get_log_files()
        if log_files["main_log"]:
            console.print(f"\n[bold]로그 파일:[/bold]")
            console.print(f"  Main: {log_files['main_log']}")
            console.print(f"  Error: {log_files['error_log']}")

    def _begin(self, step: str):
        self.current_step = step
        self.logger.info(f"== {step}")

    def run(self) -> bool:
        """메인 실행 로직

        Returns:
            bool: 성공 또는 정보성 조기 종료(Docker 설치 직후)면 True
        """
        try:
            console.print(Panel.fit(
                "[bold cyan]autotail[/bold cyan]\n"
                "Docker 기반 Tailscale 메시 노드를 구성합니다.",
                border_style="cyan"
            ))

            if self.runner.dry_run:
                self.logger.warning("DRY RUN MODE - No changes will be made")

            # 1. 네트워크 설정
            self._begin("네트워크 설정")
            config = ConfigResolver(self.runner).resolve(**self.options)
            self.network_config = config
            self.log_step("네트워크 설정", "success",
                          f"{config.interface} {config.local_subnet or ''}".strip())

            # 2. 사전 준비
            self._begin("Docker 확인")
            preflight = Preflight(self.settings.preflight, self.runner)
            if not preflight.ensure_container_runtime():
                self.restart_required = True
                self.log_step("Docker 확인", "success", "설치됨, 재로그인 필요")
                console.print("\n[yellow]Docker가 설치되었습니다. 로그아웃 후 다시 로그인한 뒤 재실행하세요.[/yellow]")
                self.show_summary()
                return True
            self.log_step("Docker 확인", "success", "사용 가능")

            self._begin("IP 포워딩")
            preflight.enable_forwarding()
            preflight.tune_offload(config.interface)
            self.log_step("IP 포워딩", "success", "활성화")

            # 3. 컨테이너 기동
            self._begin("Tailscale 컨테이너")
            launcher = ServiceLauncher(self.settings.service, self.runner)
            state = launcher.launch(cancel=self.cancel, deadline=self.deadline)
            self.log_step("Tailscale 컨테이너", "success", state.value)

            # 4. NAT 규칙
            self._begin("NAT 규칙")
            engine = NatRuleEngine(self.settings.nat, self.runner)
            ruleset = engine.configure(config)
            mode = "strict NETMAP" if config.strict_nat else "MASQUERADE"
            self.log_step("NAT 규칙", "success", f"{mode}, {len(ruleset.rules)} rules")

            # 5. 활성화
            self._begin("Tailscale 활성화")
            activator = Activator(self.settings.activation, self.runner,
                                  self.settings.service.container_name)
            self.activation = activator.activate(config)
            self.log_step("Tailscale 활성화", "success", self.activation.state.value)

            self.logger.info("Setup complete")
            self.show_summary()
            self._report_activation()
            return True

        except KeyboardInterrupt:
            self.cancel.set()
            return self._fail(OperationCancelledError("Interrupted by user"))

        except AutotailError as e:
            return self._fail(e)

    def _fail(self, error: AutotailError) -> bool:
        name = type(error).__name__
        self.log_step(self.current_step or "초기화", "failed", name)
        self.logger.error(f"{name}: {error.render()}")
        console.print(f"\n[bold red]✗ [{name}][/bold red] [red]{escape(error.render())}[/red]")
        self.show_summary()
        return False

    def _report_activation(self):
        result = self.activation
        if result.state == ActivationState.LOGIN_REQUIRED:
            console.print(Panel.fit(
                f"[bold yellow]첫 로그인이 필요합니다.[/bold yellow]\n"
                f"브라우저에서 다음 URL을 열어 인증을 완료하세요:\n\n"
                f"[bold]{escape(result.login_url)}[/bold]",
                border_style="yellow"
            ))
        else:
            console.print("\n[bold green]✓ Tailscale 노드 구성 완료 (이미 인증됨)[/bold green]")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option('--interface', '-i', help='네트워크 인터페이스 (예: eth0)')
@click.option('--subnet', '-s', help='광고할 서브넷 (예: 192.168.2.0/24)')
@click.option('--strict-nat', 'strict_nat', metavar='CIDR', help='1:1 NAT 원본 서브넷 (예: 192.168.2.0/24)')
@click.option('--strict-nat-target', 'strict_nat_target', metavar='CIDR',
              help='1:1 NAT 대상 서브넷 (예: 192.168.1.0/24)')
@click.option('--exit-node', '-e', is_flag=True, help='exit node로 광고')
@click.option('--hostname', help='Tailscale 호스트명')
@click.option('--verbose', '-v', is_flag=True, help='상세 출력')
@click.option('--dry-run', is_flag=True, help='변경 없이 실행 계획만 출력')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.version_option(version=__version__)
def cli(interface, subnet, strict_nat, strict_nat_target, exit_node, hostname,
        verbose, dry_run, config_path):
    """Docker 컨테이너로 Tailscale 메시 노드를 구성합니다.

    \b
    예시:
      autotail -s 192.168.2.0/24 --strict-nat 192.168.2.0/24 \\
               --strict-nat-target 192.168.1.0/24 -v --dry-run
      autotail -s 192.168.2.0/24 --exit-node
    """
    settings = Config(config_path)

    try:
        init_logger(settings.agent.log_dir, settings.agent.log_level, verbose)
    except OSError as e:
        init_logger(None, settings.agent.log_level, verbose)
        get_logger().warning(f"Cannot write logs to {settings.agent.log_dir}: {e}")

    logger = get_logger()
    logger.info(f"Starting autotail (dry_run={dry_run}, verbose={verbose})")

    cancel = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: cancel.set())

    options = {
        "interface": interface,
        "subnet": subnet,
        "hostname": hostname,
        "exit_node": exit_node,
        "strict_nat": strict_nat,
        "strict_nat_target": strict_nat_target,
    }
    orchestrator = SetupOrchestrator(settings, options, CommandRunner(dry_run=dry_run), cancel=cancel)
    success = orchestrator.run()

    sys.exit(0 if success else 1)


def main(args=None):
    """메인 엔트리 포인트 (잘못된 옵션은 종료 코드 1)"""
    try:
        cli.main(args=args, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    except click.Abort:
        console.print("\n[yellow]사용자에 의해 중단되었습니다.[/yellow]")
        sys.exit(1)


if __name__ == '__main__':
    main()
