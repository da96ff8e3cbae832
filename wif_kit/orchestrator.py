from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .config import WifConfig
from .gcloud import CloudClient
from .gcp_project import ProjectContext, ProvisioningError
from .logging_utils import get_logger
from . import gcp_project, gcp_iam, gcp_wif


logger = get_logger(__name__)

# 실행 순서 그대로. 앞 단계가 실패하면 뒤 단계는 실행하지 않는다.
STAGES: List[Tuple[str, str]] = [
    ("context", "프로젝트 설정 및 프로젝트 번호/호출자 확인"),
    ("caller-roles", "호출자 계정 역할 부여"),
    ("apis", "IAM API 활성화"),
    ("service-account", "서비스 계정 생성 및 역할 부여"),
    ("federation", "Workload Identity Pool / OIDC Provider 생성"),
    ("trust-bindings", "리포지토리별 impersonation 바인딩"),
]
ALL_STAGES: List[str] = [name for name, _ in STAGES]


@dataclass
class ProvisionResult:
    completed: List[str] = field(default_factory=list)
    failed_stage: Optional[str] = None
    error: Optional[BaseException] = None
    context: Optional[ProjectContext] = None
    service_account_created: Optional[bool] = None
    trust_bindings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_stage is None


def _require_context(result: ProvisionResult) -> ProjectContext:
    if result.context is None:
        raise ProvisioningError("프로젝트 컨텍스트가 아직 확인되지 않았습니다 (context 단계 미실행)")
    return result.context


def plan_all(cfg: WifConfig) -> str:
    """
    현재 설정과 실행될 단계를 요약 텍스트로 리턴한다. 실제 GCP 호출은 하지 않는다.
    """
    lines: List[str] = []
    lines.append("# Provisioning plan")
    lines.append(f"- project: {cfg.project_id}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- caller: {cfg.caller_email or '(gcloud 활성 계정)'}")
    lines.append(f"- caller_roles: {', '.join(gcp_iam.merge_roles(gcp_iam.REQUIRED_CALLER_ROLES, cfg.caller_roles))}")
    lines.append(f"- service_account: {cfg.service_account_email}")
    lines.append(f"- service_account_roles: {', '.join(cfg.service_account_roles) or '(none)'}")
    lines.append(f"- pool: {cfg.pool_name}")
    lines.append(f"- provider: {cfg.provider_name}")
    lines.append(f"- issuer_uri: {cfg.issuer_uri}")
    lines.append(f"- attribute_mapping: {cfg.attribute_mapping_str}")
    lines.append(f"- attribute_condition: {cfg.attribute_condition or '(not set)'}")
    lines.append(f"- skip_existing_federation: {cfg.skip_existing_federation}")
    lines.append("")

    lines.append("## Authorized repositories")
    if cfg.repositories:
        for repo in cfg.repositories:
            lines.append(f"- {repo}")
    else:
        lines.append("- (none)")
    lines.append("")

    lines.append("## Stages")
    for idx, (name, desc) in enumerate(STAGES, start=1):
        lines.append(f"{idx}. {name}: {desc}")

    return "\n".join(lines)


def apply_all(cfg: WifConfig, client: CloudClient) -> ProvisionResult:
    """
    모든 단계를 순서대로 실행한다.

    첫 실패에서 즉시 중단하며 이전 단계는 되돌리지 않는다.
    예외는 ProvisionResult.error 에 담아 돌려주므로 호출 측에서 exit code 를 결정한다.
    """
    result = ProvisionResult()

    for name in ALL_STAGES:
        logger.info("단계 실행: %s", name)
        try:
            if name == "context":
                result.context = gcp_project.resolve_context(client, cfg)
            elif name == "caller-roles":
                gcp_iam.grant_caller_roles(client, cfg, _require_context(result))
            elif name == "apis":
                gcp_project.enable_apis(client, cfg)
            elif name == "service-account":
                result.service_account_created = gcp_iam.ensure_service_account(client, cfg)
                gcp_iam.grant_service_account_roles(client, cfg)
            elif name == "federation":
                gcp_wif.create_pool(client, cfg)
                gcp_wif.create_provider(client, cfg)
            elif name == "trust-bindings":
                result.trust_bindings = gcp_wif.bind_repositories(client, cfg, _require_context(result))
        except Exception as e:  # noqa: BLE001
            logger.debug("단계 실행 실패: %s", name, exc_info=True)
            result.failed_stage = name
            result.error = e
            return result

        result.completed.append(name)

    return result


def summarize(cfg: WifConfig, result: ProvisionResult) -> str:
    lines: List[str] = []
    lines.append("# Provisioning summary")
    lines.append(f"- project: {cfg.project_id}")
    lines.append("")

    lines.append("## Completed stages")
    if result.completed:
        for s in result.completed:
            lines.append(f"- {s}")
    else:
        lines.append("- (none)")

    if not result.ok:
        lines.append("")
        lines.append("## Failed stage")
        lines.append(f"- {result.failed_stage}")
        skipped = ALL_STAGES[ALL_STAGES.index(result.failed_stage) + 1:]
        lines.append("")
        lines.append("## Not executed")
        if skipped:
            for s in skipped:
                lines.append(f"- {s}")
        else:
            lines.append("- (none)")
        return "\n".join(lines)

    ctx = _require_context(result)
    lines.append("")
    lines.append("## GitHub Actions (google-github-actions/auth)")
    lines.append(
        "- workload_identity_provider: "
        + gcp_wif.provider_resource_name(ctx.project_number, cfg.pool_name, cfg.provider_name)
    )
    lines.append(f"- service_account: {cfg.service_account_email}")
    return "\n".join(lines)


def check_all(cfg: WifConfig, client: CloudClient, show_all: bool = False) -> tuple[str, bool]:
    """
    리소스를 만들지 않고 현재 프로젝트 상태를 점검한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: apply 가 실패할 것으로 보이는 크리티컬 이슈가 있는지 여부
    """
    lines: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    lines.append("# Provisioning pre-check")
    lines.append(f"- project: {cfg.project_id}")
    lines.append("")

    # 1) 프로젝트 및 API
    lines.append("## Project & APIs")
    project_results = gcp_project.check_project_and_apis(client, cfg)
    for r in project_results:
        if show_all:
            lines.append(f"- {r}")
        if "확인 불가" in r or "조회 실패" in r:
            critical.append(r)
        elif "API: 비활성화" in r:
            warnings.append(r)
    lines.append("")

    # 프로젝트에 접근하지 못하면 이후 체크는 의미가 없다.
    if critical:
        return _render_check(lines, critical, warnings, show_all), True

    # 2) 서비스 계정
    lines.append("## Service Account")
    try:
        sa_status = gcp_iam.check_service_account(client, cfg)
        if show_all:
            lines.append(f"- {sa_status}")
        if "없음" in sa_status:
            warnings.append(sa_status)
    except Exception as e:  # noqa: BLE001
        msg = f"Service Account: 체크 중 예외 발생: {e}"
        if show_all:
            lines.append(f"- {msg}")
        critical.append(msg)
    lines.append("")

    # 3) Workload Identity Federation
    lines.append("## Workload Identity Federation")
    try:
        for r in gcp_wif.check_federation(client, cfg):
            if show_all:
                lines.append(f"- {r}")
            if "없음" in r:
                warnings.append(r)
            elif not cfg.skip_existing_federation:
                # 기본 설정에서는 이미 있는 pool/provider 를 만들려다 실패한다.
                critical.append(r + " - 재실행 시 생성 단계에서 실패합니다 (WIF_SKIP_EXISTING_FEDERATION 참고)")
    except Exception as e:  # noqa: BLE001
        msg = f"Federation: 체크 중 예외 발생: {e}"
        if show_all:
            lines.append(f"- {msg}")
        critical.append(msg)
    lines.append("")

    if not cfg.repositories:
        warnings.append("GITHUB_REPOSITORIES 가 비어 있어 trust binding 이 만들어지지 않습니다.")

    return _render_check(lines, critical, warnings, show_all), bool(critical)


def _render_check(lines: List[str], critical: List[str], warnings: List[str], show_all: bool) -> str:
    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. apply 전에 해결해야 합니다.")
    elif warnings:
        lines.append("- 상태: 경고만 있습니다. apply 시 일부 리소스가 새로 생성됩니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음")

    if show_all or critical:
        lines.append("")
        lines.append("### Critical issues")
        if critical:
            for i in critical:
                lines.append(f"- {i}")
        else:
            lines.append("- (none)")

    if show_all or warnings:
        lines.append("")
        lines.append("### Warnings")
        if warnings:
            for i in warnings:
                lines.append(f"- {i}")
        else:
            lines.append("- (none)")

    if not show_all:
        lines.append("")
        lines.append("자세한 상태를 보려면 `wif-kit check -a` 를 실행하세요.")

    return "\n".join(lines)
