"""
외부 명령 실행 모듈
조회(query)는 항상 실행하고, 변경(execute/write_file)은 dry-run에서 로그만 남긴다.
"""

import os
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Dict, Tuple
from .logger import get_logger


@dataclass
class CommandResult:
    """외부 명령 실행 결과"""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    simulated: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout + stderr"""
        return (self.stdout or "") + (self.stderr or "")


class CommandRunner:
    """외부 명령 실행기"""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.logger = get_logger()
        # (kind, args) 기록: kind는 query/execute/write
        self.history: List[Tuple[str, Tuple[str, ...]]] = []
        # 변경 작업만 순서대로 기록 (dry-run 계획 비교용)
        self.planned: List[Tuple[str, ...]] = []

    def query(self, args: List[str], timeout: Optional[int] = None) -> CommandResult:
        """부작용 없는 조회 명령 실행"""
        self.history.append(("query", tuple(args)))
        self.logger.debug(f"Query: {' '.join(args)}")
        return self._spawn(args, timeout=timeout)

    def execute(self, args: List[str], timeout: Optional[int] = None,
                env: Optional[Dict[str, str]] = None) -> CommandResult:
        """변경 명령 실행 (dry-run이면 시뮬레이션)"""
        self.history.append(("execute", tuple(args)))
        self.planned.append(tuple(args))

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would execute: {' '.join(args)}")
            return CommandResult(args=list(args), returncode=0, simulated=True)

        self.logger.debug(f"Executing: {' '.join(args)}")
        return self._spawn(args, timeout=timeout, env=env)

    def write_file(self, path: str, content: str, append: bool = False):
        """파일 쓰기 (dry-run이면 시뮬레이션)"""
        action = "append" if append else "write"
        self.history.append(("write", (action, path)))
        self.planned.append((action, path, content))

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would {action} {path}:\n{content.rstrip()}")
            return

        self.logger.debug(f"Writing {path} ({action})")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'a' if append else 'w', encoding='utf-8') as f:
            f.write(content)

    def read_file(self, path: str) -> Optional[str]:
        """파일 읽기 (없으면 None)"""
        self.history.append(("read", (path,)))
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None

    def which(self, binary: str) -> bool:
        """바이너리 설치 여부"""
        return self.query(["which", binary]).returncode == 0

    def _spawn(self, args: List[str], timeout: Optional[int] = None,
               env: Optional[Dict[str, str]] = None) -> CommandResult:
        """subprocess 실행"""
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env
            )
            return CommandResult(
                args=list(args),
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr
            )

        except subprocess.TimeoutExpired as e:
            self.logger.warning(f"Command timed out after {timeout}s: {' '.join(args)}")
            return CommandResult(
                args=list(args),
                returncode=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                timed_out=True
            )

        except FileNotFoundError:
            self.logger.debug(f"Command not found: {args[0]}")
            return CommandResult(
                args=list(args),
                returncode=127,
                stderr=f"{args[0]}: command not found"
            )


def _decode(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
