"""
로깅 시스템
파일 및 콘솔 로깅, verbose 모드 지원
"""

import logging
import os
from datetime import datetime
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console()


class AgentLogger:
    """에이전트 로거

    콘솔은 verbose일 때 DEBUG, 아니면 WARNING 이상만 출력한다.
    log_dir가 주어지면 main/error 로그 파일을 함께 남긴다.
    """

    def __init__(self, log_dir: Optional[str] = None, log_level: str = "INFO", verbose: bool = False):
        self.log_dir = log_dir
        self.log_level = getattr(logging, log_level.upper(), logging.INFO)
        self.verbose = verbose
        self.log_file = None
        self.error_file = None

        self.logger = logging.getLogger("autotail")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        # 기존 핸들러 제거
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = os.path.join(log_dir, f"autotail_{timestamp}.log")
            self.error_file = os.path.join(log_dir, f"error_{timestamp}.log")

            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG if verbose else self.log_level)
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

            error_handler = logging.FileHandler(self.error_file, encoding='utf-8')
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            self.logger.addHandler(error_handler)

        # 콘솔 핸들러 (Rich)
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=True,
            show_path=verbose
        )
        rich_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        self.logger.addHandler(rich_handler)

    def debug(self, message: str):
        """디버그 로그"""
        self.logger.debug(message)

    def info(self, message: str):
        """정보 로그"""
        self.logger.info(message)

    def warning(self, message: str):
        """경고 로그"""
        self.logger.warning(message)

    def error(self, message: str):
        """에러 로그"""
        self.logger.error(message)

    def exception(self, message: str):
        """예외 로그 (트레이스백 포함)"""
        self.logger.exception(message)

    def get_log_files(self) -> dict:
        """로그 파일 경로 반환"""
        return {
            "main_log": self.log_file,
            "error_log": self.error_file,
            "log_dir": self.log_dir
        }


# 글로벌 로거 인스턴스
_logger: Optional[AgentLogger] = None


def get_logger() -> AgentLogger:
    """로거 인스턴스 가져오기 (초기화 전이면 콘솔 전용)"""
    global _logger
    if _logger is None:
        _logger = AgentLogger()
    return _logger


def init_logger(log_dir: Optional[str], log_level: str, verbose: bool) -> AgentLogger:
    """로거 초기화"""
    global _logger
    _logger = AgentLogger(log_dir, log_level, verbose)
    return _logger
