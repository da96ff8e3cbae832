"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 wif_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.
GCP 호출은 FakeCloudClient 로 대체한다.
"""

from __future__ import annotations

import os
import sys
from typing import List, Optional, Set, Tuple

import pytest

from wif_kit.gcloud import CloudClient
from wif_kit.subprocess_utils import CommandError


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


ENV_KEYS = [
    "GCP_PROJECT_ID",
    "CALLER_EMAIL",
    "CALLER_ROLES",
    "SERVICE_ACCOUNT_NAME",
    "SERVICE_ACCOUNT_DISPLAY_NAME",
    "SERVICE_ACCOUNT_DESCRIPTION",
    "SERVICE_ACCOUNT_ROLES",
    "WIF_POOL_NAME",
    "WIF_POOL_DISPLAY_NAME",
    "WIF_POOL_DESCRIPTION",
    "WIF_PROVIDER_NAME",
    "WIF_PROVIDER_DISPLAY_NAME",
    "WIF_PROVIDER_DESCRIPTION",
    "WIF_PROVIDER_ATTRIBUTE_MAPPING",
    "WIF_PROVIDER_ATTRIBUTE_CONDITION",
    "GITHUB_REPOSITORIES",
    "WIF_SKIP_EXISTING_FEDERATION",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class FakeCloudClient(CloudClient):
    """
    CloudClient 를 구현한 메모리 기반 fake.
    추상 메서드가 늘어나면 인스턴스 생성에서 바로 실패한다.

    calls 에 (메서드 이름, 인자...) 를 순서대로 기록하고,
    이미 존재하는 리소스를 다시 만들면 gcloud 처럼 ALREADY_EXISTS 로 실패한다.
    """

    def __init__(
        self,
        *,
        project_number: str = "123456789012",
        active_account: str = "dev@example.com",
        service_accounts: Optional[Set[str]] = None,
        pools: Optional[Set[str]] = None,
        providers: Optional[Set[Tuple[str, str]]] = None,
        enabled_services: Optional[Set[str]] = None,
        fail_on: Optional[str] = None,
    ) -> None:
        self.project_number = project_number
        self.active_account = active_account
        self.service_accounts = set(service_accounts or ())
        self.pools = set(pools or ())
        self.providers = set(providers or ())
        self.enabled_services = set(enabled_services or ())
        self.fail_on = fail_on
        self.calls: List[tuple] = []

    def _record(self, name: str, *args) -> None:  # noqa: ANN002
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise CommandError(
                f"명령 실행 실패: {name} (exit=1)\nstderr:\nERROR: PERMISSION_DENIED",
                cmd=["gcloud", name],
                returncode=1,
                stderr="ERROR: PERMISSION_DENIED",
            )

    def _already_exists(self, name: str, what: str) -> None:
        raise CommandError(
            f"명령 실행 실패: {name} (exit=1)\nstderr:\nERROR: ALREADY_EXISTS: {what} already exists",
            cmd=["gcloud", name],
            returncode=1,
            stderr=f"ERROR: ALREADY_EXISTS: {what} already exists",
        )

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    # ---- CloudClient ----

    def set_project(self, project_id):
        self._record("set_project", project_id)

    def get_project_number(self, project_id):
        self._record("get_project_number", project_id)
        return self.project_number

    def get_active_account(self):
        self._record("get_active_account")
        return self.active_account

    def add_project_iam_binding(self, project_id, member, role):
        self._record("add_project_iam_binding", project_id, member, role)

    def enable_service(self, project_id, service):
        self._record("enable_service", project_id, service)
        self.enabled_services.add(service)

    def is_service_enabled(self, project_id, service):
        self._record("is_service_enabled", project_id, service)
        return service in self.enabled_services

    def service_account_exists(self, project_id, email):
        self._record("service_account_exists", project_id, email)
        return email in self.service_accounts

    def create_service_account(self, project_id, name, display_name, description):
        self._record("create_service_account", project_id, name, display_name, description)
        self.service_accounts.add(f"{name}@{project_id}.iam.gserviceaccount.com")

    def workload_identity_pool_exists(self, project_id, pool):
        self._record("workload_identity_pool_exists", project_id, pool)
        return pool in self.pools

    def create_workload_identity_pool(self, project_id, pool, display_name, description):
        self._record("create_workload_identity_pool", project_id, pool, display_name, description)
        if pool in self.pools:
            self._already_exists("create_workload_identity_pool", pool)
        self.pools.add(pool)

    def oidc_provider_exists(self, project_id, pool, provider):
        self._record("oidc_provider_exists", project_id, pool, provider)
        return (pool, provider) in self.providers

    def create_oidc_provider(self, project_id, pool, provider, *, display_name, description,
                             issuer_uri, attribute_mapping, attribute_condition=""):
        self._record(
            "create_oidc_provider",
            project_id,
            pool,
            provider,
            issuer_uri,
            attribute_mapping,
            attribute_condition,
        )
        if (pool, provider) in self.providers:
            self._already_exists("create_oidc_provider", provider)
        self.providers.add((pool, provider))

    def add_service_account_iam_binding(self, email, member, role):
        self._record("add_service_account_iam_binding", email, member, role)


@pytest.fixture
def fake_client() -> FakeCloudClient:
    return FakeCloudClient()
