"""
autotail
Docker 컨테이너 안에서 Tailscale 메시 노드를 자동으로 구성하는 에이전트

Features:
- 인터페이스/서브넷 자동 감지 또는 수동 지정
- Docker 기반 Tailscale 데몬 실행 및 상태 폴링
- IP 포워딩 및 iptables NAT 규칙 idempotent 적용
- Strict NAT (1:1 NETMAP) 서브넷 매핑
- dry-run 모드 지원
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
