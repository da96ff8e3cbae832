"""
wif_kit
-------

GitHub Actions 용 GCP Workload Identity Federation 프로비저닝 CLI 패키지.
서비스 계정, Workload Identity Pool/Provider, 리포지토리별 impersonation 바인딩을
환경변수 기반으로 설정하고 한 번에 생성하는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
