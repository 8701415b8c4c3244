"""
NAT 규칙 관리 모듈
autotail 전용 체인(AUTOTAIL_*)을 매 실행마다 비우고 선언된 RuleSet으로 다시 채운다.
"""

from dataclasses import dataclass, field
from typing import List, Tuple
from rich.console import Console
from .config import NetworkConfig, NatSettings
from .errors import RuleApplicationError
from .logger import get_logger
from .runner import CommandRunner, CommandResult

console = Console()

FORWARD_CHAIN = "AUTOTAIL_FWD"
PREROUTING_CHAIN = "AUTOTAIL_PRE"
POSTROUTING_CHAIN = "AUTOTAIL_POST"

# (table, 내장 체인, 관리 체인)
MANAGED_CHAINS = [
    ("filter", "FORWARD", FORWARD_CHAIN),
    ("nat", "PREROUTING", PREROUTING_CHAIN),
    ("nat", "POSTROUTING", POSTROUTING_CHAIN),
]


@dataclass(frozen=True)
class Rule:
    """iptables 규칙 하나 (table, chain, match/target spec)"""
    table: str
    chain: str
    spec: Tuple[str, ...]

    def command(self, action: str) -> List[str]:
        return ["iptables", "-t", self.table, action, self.chain] + list(self.spec)


@dataclass
class RuleSet:
    """적용할 규칙 목록 (순서 유지)"""
    rules: List[Rule] = field(default_factory=list)
    flush_tables: Tuple[str, ...] = ()
    routes: List[List[str]] = field(default_factory=list)


class NatRuleEngine:
    """포워딩/NAT 규칙 적용 클래스"""

    def __init__(self, settings: NatSettings, runner: CommandRunner):
        self.settings = settings
        self.runner = runner
        self.logger = get_logger()

    def plan(self, config: NetworkConfig) -> RuleSet:
        """설정에 맞는 목표 규칙 생성"""
        vpn = self.settings.vpn_interface
        uplink = config.interface

        ruleset = RuleSet(rules=[
            Rule("filter", FORWARD_CHAIN, ("-i", vpn, "-o", uplink, "-j", "ACCEPT")),
            Rule("filter", FORWARD_CHAIN, ("-i", uplink, "-o", vpn,
                                           "-m", "state", "--state", "RELATED,ESTABLISHED",
                                           "-j", "ACCEPT")),
        ])

        nat = config.strict_nat
        if nat:
            ruleset.flush_tables = ("filter", "nat")
            # PREROUTING 먼저: 같은 흐름에 대해 대칭 변환이 되어야 함
            ruleset.rules.append(Rule("nat", PREROUTING_CHAIN, (
                "-i", vpn, "-d", nat.target, "-j", "NETMAP", "--to", nat.source)))
            ruleset.rules.append(Rule("nat", POSTROUTING_CHAIN, (
                "-o", vpn, "-s", nat.source, "-j", "NETMAP", "--to", nat.target)))
            ruleset.routes.append(["ip", "route", "replace", nat.target, "dev", vpn])
        else:
            ruleset.rules.append(Rule("nat", POSTROUTING_CHAIN, ("-o", uplink, "-j", "MASQUERADE")))

        return ruleset

    def apply(self, ruleset: RuleSet) -> int:
        """규칙 적용

        관리 체인을 비운 뒤 다시 채우므로 이전 실행의 규칙은 남지 않는다.

        Returns:
            int: 추가한 규칙 수
        """
        console.print("\n[bold cyan]NAT 규칙 설정 중...[/bold cyan]")

        for table in ruleset.flush_tables:
            self.logger.warning(f"Flushing iptables table '{table}' for strict NAT")
            self._run(["iptables", "-t", table, "-F"])

        flushed = set(ruleset.flush_tables)
        for table, parent, chain in MANAGED_CHAINS:
            self._create_chain(table, chain)
            # 테이블 flush 직후에는 점프 규칙도 사라진 상태
            self._ensure_jump_rule(table, parent, chain, known_absent=table in flushed)
            self._flush_chain(table, chain)

        for rule in ruleset.rules:
            self._run(rule.command("-A"))
            console.print(f"  ✓ {rule.table}/{rule.chain} {' '.join(rule.spec)}")

        for route in ruleset.routes:
            self._run(route)
            console.print(f"  ✓ {' '.join(route[1:])}")

        self.logger.info(f"NAT rules applied ({len(ruleset.rules)} rules in managed chains)")
        return len(ruleset.rules)

    def persist(self):
        """재부팅 후에도 규칙 유지 (iptables-persistent)"""
        if not self.settings.persist:
            self.logger.info("Rule persistence disabled")
            return

        if not self.runner.which("netfilter-persistent"):
            self.logger.info("Installing iptables-persistent")
            result = self.runner.execute(
                ["apt-get", "install", "-y", "iptables-persistent"],
                env={"DEBIAN_FRONTEND": "noninteractive"},
            )
            if not result.ok:
                raise RuleApplicationError("Failed to install iptables-persistent",
                                           command=result.args, detail=result.stderr)

        self._run(["netfilter-persistent", "save"])
        self.logger.info("iptables rules saved")

    def configure(self, config: NetworkConfig) -> RuleSet:
        """계획 → 적용 → 저장"""
        ruleset = self.plan(config)
        self.apply(ruleset)
        self.persist()
        return ruleset

    # --- Private methods ---

    def _create_chain(self, table: str, chain: str):
        """체인이 없으면 생성"""
        if self.runner.query(["iptables", "-t", table, "-L", chain, "-n"]).returncode != 0:
            self._run(["iptables", "-t", table, "-N", chain])
            self.logger.debug(f"Created chain: {table}/{chain}")

    def _ensure_jump_rule(self, table: str, parent: str, chain: str, known_absent: bool = False):
        """내장 체인에서 관리 체인으로의 점프 규칙 보장"""
        if not known_absent:
            check = self.runner.query(["iptables", "-t", table, "-C", parent, "-j", chain])
            if check.returncode == 0:
                return
        self._run(["iptables", "-t", table, "-I", parent, "1", "-j", chain])
        self.logger.debug(f"Added jump: {parent} -> {chain}")

    def _flush_chain(self, table: str, chain: str):
        self._run(["iptables", "-t", table, "-F", chain])

    def _run(self, args: List[str]) -> CommandResult:
        result = self.runner.execute(args)
        if not result.ok:
            raise RuleApplicationError("Firewall command failed", command=result.args,
                                       detail=result.stderr)
        return result
