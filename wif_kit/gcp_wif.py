"""
gcp_wif
-------

Workload Identity Pool / OIDC Provider 생성과
GitHub 리포지토리별 서비스 계정 impersonation 바인딩을 담당하는 모듈.

기본 동작에서 pool/provider 는 존재 여부를 확인하지 않고 바로 생성한다.
이미 만들어진 프로젝트에서 다시 실행하면 gcloud 의 ALREADY_EXISTS 오류로 중단된다.
WIF_SKIP_EXISTING_FEDERATION=true 이면 서비스 계정과 같은 방식(describe 후 생성)으로 동작한다.
"""

from __future__ import annotations

from typing import List

from .config import WifConfig
from .gcloud import WORKLOAD_IDENTITY_LOCATION, CloudClient
from .gcp_project import ProjectContext
from .logging_utils import echo_info, echo_success, echo_warning, get_logger


logger = get_logger(__name__)


WORKLOAD_IDENTITY_USER_ROLE = "roles/iam.workloadIdentityUser"


def pool_resource_name(project_number: str, pool: str) -> str:
    return (
        f"projects/{project_number}/locations/{WORKLOAD_IDENTITY_LOCATION}"
        f"/workloadIdentityPools/{pool}"
    )


def provider_resource_name(project_number: str, pool: str, provider: str) -> str:
    """GitHub workflow 의 google-github-actions/auth `workload_identity_provider` 값."""
    return f"{pool_resource_name(project_number, pool)}/providers/{provider}"


def principal_set_for(project_number: str, pool: str, repository: str) -> str:
    return (
        f"principalSet://iam.googleapis.com/{pool_resource_name(project_number, pool)}"
        f"/attribute.repository/{repository}"
    )


def create_pool(client: CloudClient, cfg: WifConfig) -> bool:
    if cfg.skip_existing_federation and client.workload_identity_pool_exists(cfg.project_id, cfg.pool_name):
        echo_info(f"Workload Identity Pool '{cfg.pool_name}' 이(가) 이미 존재합니다")
        return False

    client.create_workload_identity_pool(
        cfg.project_id,
        cfg.pool_name,
        display_name=cfg.pool_display_name,
        description=cfg.pool_description,
    )
    echo_success(f"Workload Identity Pool '{cfg.pool_name}' 을(를) 생성했습니다")
    return True


def create_provider(client: CloudClient, cfg: WifConfig) -> bool:
    if cfg.skip_existing_federation and client.oidc_provider_exists(
        cfg.project_id, cfg.pool_name, cfg.provider_name
    ):
        echo_info(f"Workload Identity Provider '{cfg.provider_name}' 이(가) 이미 존재합니다")
        return False

    if not cfg.attribute_condition:
        echo_warning(
            "WIF_PROVIDER_ATTRIBUTE_CONDITION 이 비어 있습니다. "
            "GitHub 의 모든 리포지토리 토큰이 provider 를 통과하게 됩니다."
        )

    logger.debug("attribute mapping: %s", cfg.attribute_mapping_str)
    client.create_oidc_provider(
        cfg.project_id,
        cfg.pool_name,
        cfg.provider_name,
        display_name=cfg.provider_display_name,
        description=cfg.provider_description,
        issuer_uri=cfg.issuer_uri,
        attribute_mapping=cfg.attribute_mapping_str,
        attribute_condition=cfg.attribute_condition,
    )
    echo_success(f"Workload Identity Provider '{cfg.provider_name}' 을(를) 생성했습니다")
    return True


def bind_repositories(client: CloudClient, cfg: WifConfig, ctx: ProjectContext) -> List[str]:
    """
    허용된 리포지토리마다 principalSet 에 workloadIdentityUser 역할을 부여한다.

    Returns:
        바인딩한 principalSet 목록 (리포지토리 순서 유지)
    """
    members: List[str] = []
    for repository in cfg.repositories:
        member = principal_set_for(ctx.project_number, cfg.pool_name, repository)
        client.add_service_account_iam_binding(
            cfg.service_account_email,
            member,
            WORKLOAD_IDENTITY_USER_ROLE,
        )
        members.append(member)
        echo_success(
            f"'{repository}' 가 '{cfg.service_account_email}' 을(를) impersonate 할 수 있도록 허용했습니다"
        )

    if not members:
        logger.warning("GITHUB_REPOSITORIES 가 비어 있어 trust binding 을 만들지 않았습니다.")
    return members


def check_federation(client: CloudClient, cfg: WifConfig) -> list[str]:
    results: list[str] = []
    if client.workload_identity_pool_exists(cfg.project_id, cfg.pool_name):
        results.append(f"Pool: 존재함 ({cfg.pool_name})")
        if client.oidc_provider_exists(cfg.project_id, cfg.pool_name, cfg.provider_name):
            results.append(f"Provider: 존재함 ({cfg.provider_name})")
        else:
            results.append(f"Provider: 없음 (생성 예정) ({cfg.provider_name})")
    else:
        results.append(f"Pool: 없음 (생성 예정) ({cfg.pool_name})")
        results.append(f"Provider: 없음 (생성 예정) ({cfg.provider_name})")
    return results
