"""
오류 정의 모듈
모든 오류는 실행을 중단시키며 CLI에서 사람이 읽을 수 있는 형태로 출력된다.
"""

from typing import List, Optional


class AutotailError(Exception):
    """autotail 공통 예외"""

    def __init__(self, message: str, command: Optional[List[str]] = None, detail: str = ""):
        super().__init__(message)
        self.message = message
        self.command = command
        self.detail = detail

    def render(self) -> str:
        """사용자 출력용 문자열"""
        parts = [self.message]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.detail:
            parts.append(self.detail.strip())
        return "\n".join(parts)


class ConfigValidationError(AutotailError):
    """잘못된 CLI 옵션 조합 (부작용 발생 전)"""


class DetectionError(AutotailError):
    """기본 라우트/주소 자동 감지 실패"""


class InterfaceNotFoundError(AutotailError):
    """지정한 인터페이스가 호스트에 없음"""


class NoRouteForSubnetError(AutotailError):
    """서브넷을 소유한 인터페이스를 라우팅 테이블에서 찾을 수 없음"""


class DependencyInstallError(AutotailError):
    """컨테이너 런타임 설치 또는 사용 불가"""


class PermissionStateError(AutotailError):
    """docker 그룹 권한 없음"""


class ServiceStartTimeoutError(AutotailError):
    """재시도 횟수 내에 컨테이너가 running 상태가 되지 않음"""

    def __init__(self, message: str, logs: str = "", attempts: int = 0):
        super().__init__(message, detail=logs)
        self.logs = logs
        self.attempts = attempts


class RuleApplicationError(AutotailError):
    """iptables/route 명령 실패 (이미 적용된 규칙은 롤백하지 않음)"""


class ActivationError(AutotailError):
    """tailscale up 실패"""


class OperationCancelledError(AutotailError):
    """취소 또는 데드라인 초과로 중단됨"""
