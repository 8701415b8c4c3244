"""
고정 간격 폴링 (backoff 없음, 취소/데드라인 지원)
"""

import threading
import time
from enum import Enum
from typing import Callable, Optional


class PollResult(Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


def poll_until(predicate: Callable[[], bool],
               attempts: int,
               interval: float,
               cancel: Optional[threading.Event] = None,
               deadline: Optional[float] = None,
               sleep: Optional[Callable[[float], None]] = None) -> PollResult:
    """predicate가 True가 될 때까지 최대 attempts번 확인

    Args:
        predicate: 상태 확인 함수
        attempts: 최대 확인 횟수
        interval: 확인 사이 대기 시간 (초, 고정)
        cancel: set되면 즉시 CANCELLED
        deadline: time.monotonic() 기준 절대 시각, 넘으면 CANCELLED
        sleep: 테스트용 대기 함수 (기본값: Event.wait)

    Returns:
        PollResult
    """
    for attempt in range(1, attempts + 1):
        if _should_stop(cancel, deadline):
            return PollResult.CANCELLED

        if predicate():
            return PollResult.READY

        if attempt == attempts:
            break

        wait = interval
        if deadline is not None:
            wait = max(0.0, min(interval, deadline - time.monotonic()))

        if sleep is not None:
            sleep(wait)
        else:
            # cancel이 set되면 대기 중에도 바로 깨어남
            (cancel or threading.Event()).wait(wait)

        if _should_stop(cancel, deadline):
            return PollResult.CANCELLED

    return PollResult.TIMED_OUT


def _should_stop(cancel: Optional[threading.Event], deadline: Optional[float]) -> bool:
    if cancel is not None and cancel.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline
