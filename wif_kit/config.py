from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.wif"]

GITHUB_OIDC_ISSUER_URI = "https://token.actions.githubusercontent.com"

DEFAULT_ATTRIBUTE_MAPPING = [
    "google.subject=assertion.sub",
    "attribute.actor=assertion.actor",
    "attribute.aud=assertion.aud",
    "attribute.repository=assertion.repository",
    "attribute.repository_owner=assertion.repository_owner",
]

# trust binding 단계가 principalSet 을 attribute.repository 로 만들기 때문에 반드시 필요
REQUIRED_MAPPING_DESTINATIONS = ("google.subject", "attribute.repository")

_REPOSITORY_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_SERVICE_ACCOUNT_NAME_RE = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y"}


def _get_str(name: str, default: str) -> str:
    # .env 에 키만 있고 값이 비어 있으면 기본값을 쓴다.
    return os.getenv(name) or default


def _get_list(name: str, default: Optional[List[str]] = None) -> List[str]:
    """
    쉼표 또는 공백으로 구분된 목록 환경변수를 파싱한다.
    bash 배열처럼 ("a" "b") 형태로 적어도 괄호/따옴표는 무시한다.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return list(default or [])
    cleaned = raw.strip().strip("()")
    items = re.split(r"[,\s]+", cleaned)
    items = [i.strip().strip("\"'") for i in items]
    return [i for i in items if i]


def _get_mapping(name: str, default: List[str]) -> List[str]:
    """
    attribute mapping 환경변수를 쉼표로만 나눈다.
    CEL 식 안의 공백과 따옴표는 그대로 두고 각 쌍의 앞뒤 공백만 정리한다.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return list(default)
    items = [i.strip() for i in raw.split(",")]
    return [i for i in items if i]


def join_attribute_mapping(pairs: List[str]) -> str:
    """설정 순서를 유지한 채 dest=source 쌍을 쉼표로 이어 붙인다."""
    return ",".join(pairs)


@dataclass
class WifConfig:
    # 필수
    project_id: str

    # 호출자 (비어 있으면 gcloud 활성 계정을 사용)
    caller_email: Optional[str] = None
    caller_roles: List[str] = field(default_factory=list)

    # 서비스 계정
    service_account_name: str = "github-actions-sa"
    service_account_display_name: str = "GitHub Actions SA"
    service_account_description: str = "Service account used by GitHub actions to manage resources"
    service_account_roles: List[str] = field(default_factory=list)

    # Workload Identity Federation
    pool_name: str = "github-actions-pool"
    pool_display_name: str = "GitHub Actions Pool"
    pool_description: str = "Workload Identity Pool for GitHub Actions"

    provider_name: str = "github-actions-provider"
    provider_display_name: str = "GitHub Actions Provider"
    provider_description: str = "Workload Identity Provider for GitHub Actions"
    attribute_mapping: List[str] = field(default_factory=lambda: list(DEFAULT_ATTRIBUTE_MAPPING))
    attribute_condition: str = ""

    # impersonation 을 허용할 "<owner>/<repository>" 목록
    repositories: List[str] = field(default_factory=list)

    # true 면 pool/provider 도 describe 후 없을 때만 생성한다.
    skip_existing_federation: bool = False

    @property
    def service_account_email(self) -> str:
        return f"{self.service_account_name}@{self.project_id}.iam.gserviceaccount.com"

    @property
    def issuer_uri(self) -> str:
        return GITHUB_OIDC_ISSUER_URI

    @property
    def attribute_mapping_str(self) -> str:
        return join_attribute_mapping(self.attribute_mapping)

    def validate(self) -> None:
        """
        원격 호출 전에 설정 오류를 한 번에 모아서 ValueError 로 알린다.
        """
        errors: List[str] = []

        if not self.project_id:
            errors.append("GCP_PROJECT_ID 가 비어 있습니다.")

        if not _SERVICE_ACCOUNT_NAME_RE.match(self.service_account_name or ""):
            errors.append(
                f"SERVICE_ACCOUNT_NAME 형식이 올바르지 않습니다: {self.service_account_name!r} "
                "(소문자로 시작하는 6~30자의 소문자/숫자/하이픈)"
            )

        for role in [*self.caller_roles, *self.service_account_roles]:
            if not role.startswith("roles/"):
                errors.append(f"역할 이름은 roles/ 로 시작해야 합니다: {role!r}")

        for repo in self.repositories:
            if not _REPOSITORY_RE.match(repo):
                errors.append(f"GITHUB_REPOSITORIES 항목은 <owner>/<repository> 형식이어야 합니다: {repo!r}")

        destinations: List[str] = []
        for pair in self.attribute_mapping:
            dest, sep, source = pair.partition("=")
            if not sep or not dest.strip() or not source.strip():
                errors.append(f"attribute mapping 은 destination=source 형식이어야 합니다: {pair!r}")
                continue
            destinations.append(dest.strip())

        duplicated = sorted({d for d in destinations if destinations.count(d) > 1})
        if duplicated:
            errors.append("attribute mapping destination 이 중복되었습니다: " + ", ".join(duplicated))

        for required in REQUIRED_MAPPING_DESTINATIONS:
            if required not in destinations:
                errors.append(f"attribute mapping 에 {required} 가 반드시 포함되어야 합니다.")

        if errors:
            raise ValueError("설정이 올바르지 않습니다:\n- " + "\n- ".join(errors))

    @classmethod
    def from_env(cls) -> "WifConfig":
        missing: List[str] = []
        def req(name: str) -> str:
            val = os.getenv(name)
            if not val:
                missing.append(name)
            return val or ""

        defaults = cls(project_id="")
        cfg = cls(
            project_id=req("GCP_PROJECT_ID"),
            caller_email=os.getenv("CALLER_EMAIL") or None,
            caller_roles=_get_list("CALLER_ROLES"),
            service_account_name=_get_str("SERVICE_ACCOUNT_NAME", defaults.service_account_name),
            service_account_display_name=_get_str("SERVICE_ACCOUNT_DISPLAY_NAME", defaults.service_account_display_name),
            service_account_description=_get_str("SERVICE_ACCOUNT_DESCRIPTION", defaults.service_account_description),
            service_account_roles=_get_list("SERVICE_ACCOUNT_ROLES"),
            pool_name=_get_str("WIF_POOL_NAME", defaults.pool_name),
            pool_display_name=_get_str("WIF_POOL_DISPLAY_NAME", defaults.pool_display_name),
            pool_description=_get_str("WIF_POOL_DESCRIPTION", defaults.pool_description),
            provider_name=_get_str("WIF_PROVIDER_NAME", defaults.provider_name),
            provider_display_name=_get_str("WIF_PROVIDER_DISPLAY_NAME", defaults.provider_display_name),
            provider_description=_get_str("WIF_PROVIDER_DESCRIPTION", defaults.provider_description),
            attribute_mapping=_get_mapping("WIF_PROVIDER_ATTRIBUTE_MAPPING", DEFAULT_ATTRIBUTE_MAPPING),
            attribute_condition=os.getenv("WIF_PROVIDER_ATTRIBUTE_CONDITION", "").strip(),
            repositories=_get_list("GITHUB_REPOSITORIES"),
            skip_existing_federation=_get_bool("WIF_SKIP_EXISTING_FEDERATION", False),
        )

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다: " + ", ".join(sorted(set(missing)))
            )

        cfg.validate()
        return cfg
