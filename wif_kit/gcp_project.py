"""
gcp_project
-----------

대상 프로젝트 컨텍스트(프로젝트 번호, 호출자) 확인과 필수 API enable 을 담당하는 모듈.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import WifConfig
from .gcloud import CloudClient
from .logging_utils import echo_success, get_logger
from .subprocess_utils import CommandError


logger = get_logger(__name__)


REQUIRED_APIS = ["iam.googleapis.com"]

_API_LABELS = {
    "iam.googleapis.com": "Identity and Access Management (IAM) API",
}


class ProvisioningError(RuntimeError):
    """gcloud 자체는 성공했지만 결과를 사용할 수 없는 경우."""


@dataclass(frozen=True)
class ProjectContext:
    project_id: str
    project_number: str
    caller_email: str

    @property
    def caller_member(self) -> str:
        # Cloud Shell 이 서비스 계정으로 인증된 경우도 있으므로 member 타입을 구분한다.
        if self.caller_email.endswith(".gserviceaccount.com"):
            return f"serviceAccount:{self.caller_email}"
        return f"user:{self.caller_email}"


def resolve_context(client: CloudClient, cfg: WifConfig) -> ProjectContext:
    """
    활성 프로젝트를 설정하고 프로젝트 번호/호출자 계정을 확인한다.
    어느 하나라도 실패하면 예외를 그대로 올려 전체 실행을 중단한다.
    """
    client.set_project(cfg.project_id)
    echo_success(f"프로젝트를 {cfg.project_id} 로 설정했습니다")

    project_number = client.get_project_number(cfg.project_id)
    if not project_number:
        raise ProvisioningError(f"프로젝트 번호를 확인할 수 없습니다: {cfg.project_id}")
    echo_success(f"프로젝트 번호 확인: {project_number}")

    caller = cfg.caller_email or client.get_active_account()
    if not caller:
        raise ProvisioningError(
            "활성화된 gcloud 계정이 없습니다. `gcloud auth login` 후 다시 실행하세요."
        )
    logger.info("호출자 계정: %s", caller)

    return ProjectContext(
        project_id=cfg.project_id,
        project_number=project_number,
        caller_email=caller,
    )


def enable_apis(client: CloudClient, cfg: WifConfig) -> None:
    for api in REQUIRED_APIS:
        client.enable_service(cfg.project_id, api)
        echo_success(f"{_API_LABELS.get(api, api)} 을(를) 활성화했습니다")


def check_project_and_apis(client: CloudClient, cfg: WifConfig) -> list[str]:
    """
    프로젝트 접근 가능 여부와 필수 API 활성화 상태를 확인만 한다.
    실제 enable 은 수행하지 않는다.
    """
    results: list[str] = []

    try:
        number = client.get_project_number(cfg.project_id)
    except CommandError as e:
        if e.returncode is None:
            # gcloud 미설치 또는 timeout
            results.append(f"Project: gcloud 를 실행할 수 없어 확인 불가 ({e})")
        else:
            results.append(f"Project: 조회 실패 ({cfg.project_id}, exit={e.returncode})")
        return results
    results.append(f"Project: 존재함 ({cfg.project_id}, number={number})")

    for api in REQUIRED_APIS:
        if client.is_service_enabled(cfg.project_id, api):
            results.append(f"API: 활성화됨 ({api})")
        else:
            results.append(f"API: 비활성화 (enable 필요) ({api})")

    return results
