"""
gcp_iam
-------

호출자/서비스 계정에 대한 프로젝트 IAM 역할 부여와
GitHub Actions 용 서비스 계정 생성을 담당하는 모듈.
"""

from __future__ import annotations

from typing import Iterable, List

from .config import WifConfig
from .gcloud import CloudClient
from .gcp_project import ProjectContext
from .logging_utils import echo_info, echo_success, get_logger


logger = get_logger(__name__)


# 이후 단계(서비스 계정 생성, API enable)를 수행하기 위해 호출자에게 필요한 최소 역할
REQUIRED_CALLER_ROLES = [
    "roles/iam.serviceAccountAdmin",
    "roles/serviceusage.serviceUsageAdmin",
]


def merge_roles(*role_lists: Iterable[str]) -> List[str]:
    """여러 역할 목록을 합치되, 처음 등장한 순서를 유지하며 중복을 제거한다."""
    merged: List[str] = []
    for roles in role_lists:
        for role in roles:
            if role not in merged:
                merged.append(role)
    return merged


def _grant_project_roles(client: CloudClient, project_id: str, member: str,
                         roles: Iterable[str]) -> List[str]:
    granted: List[str] = []
    for role in roles:
        client.add_project_iam_binding(project_id, member, role)
        granted.append(role)
        echo_success(f"'{member.split(':', 1)[-1]}' 에 '{role}' 역할을 부여했습니다")
    return granted


def grant_caller_roles(client: CloudClient, cfg: WifConfig, ctx: ProjectContext) -> List[str]:
    """
    호출자 계정에 필수 역할 + 설정된 추가 역할을 부여한다.
    이미 가진 역할을 다시 부여해도 GCP 쪽에서 no-op 이다.
    """
    roles = merge_roles(REQUIRED_CALLER_ROLES, cfg.caller_roles)
    logger.info("호출자 역할 부여: %s -> %s", ctx.caller_email, roles)
    return _grant_project_roles(client, cfg.project_id, ctx.caller_member, roles)


def ensure_service_account(client: CloudClient, cfg: WifConfig) -> bool:
    """
    서비스 계정이 없으면 생성한다.

    Returns:
        새로 생성했으면 True, 이미 존재해서 건너뛰었으면 False
    """
    email = cfg.service_account_email
    if client.service_account_exists(cfg.project_id, email):
        echo_info(f"서비스 계정 '{cfg.service_account_name}' 이(가) 이미 존재합니다")
        return False

    client.create_service_account(
        cfg.project_id,
        cfg.service_account_name,
        display_name=cfg.service_account_display_name,
        description=cfg.service_account_description,
    )
    echo_success(f"서비스 계정 '{cfg.service_account_name}' 을(를) 생성했습니다")
    return True


def grant_service_account_roles(client: CloudClient, cfg: WifConfig) -> List[str]:
    roles = merge_roles(cfg.service_account_roles)
    if not roles:
        logger.info("SERVICE_ACCOUNT_ROLES 가 비어 있어 서비스 계정 역할 부여를 건너뜁니다.")
        return []
    member = f"serviceAccount:{cfg.service_account_email}"
    return _grant_project_roles(client, cfg.project_id, member, roles)


def check_service_account(client: CloudClient, cfg: WifConfig) -> str:
    email = cfg.service_account_email
    if client.service_account_exists(cfg.project_id, email):
        return f"Service Account: 존재함 ({email})"
    return f"Service Account: 없음 (생성 예정) ({email})"
