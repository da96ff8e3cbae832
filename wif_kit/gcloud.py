"""
gcloud
------

오케스트레이터가 사용하는 GCP control plane 호출을 한곳에 모은 모듈.

CloudClient 는 "무엇을 호출하는지"만 정의하는 인터페이스이고,
GcloudClient 는 이를 gcloud CLI 로 전달한다. 테스트에서는 메모리 기반 fake 로 교체한다.
"""

from __future__ import annotations

import abc
import shlex
from typing import Callable, List, Optional, Sequence

from .logging_utils import echo_trace, get_logger
from .subprocess_utils import CommandError, RunResult, run_command


logger = get_logger(__name__)

WORKLOAD_IDENTITY_LOCATION = "global"


class CloudClient(abc.ABC):
    """GCP IAM 프로비저닝에 필요한 관리 API 호출."""

    @abc.abstractmethod
    def set_project(self, project_id: str) -> None: ...

    @abc.abstractmethod
    def get_project_number(self, project_id: str) -> str: ...

    @abc.abstractmethod
    def get_active_account(self) -> str: ...

    @abc.abstractmethod
    def add_project_iam_binding(self, project_id: str, member: str, role: str) -> None: ...

    @abc.abstractmethod
    def enable_service(self, project_id: str, service: str) -> None: ...

    @abc.abstractmethod
    def is_service_enabled(self, project_id: str, service: str) -> bool: ...

    @abc.abstractmethod
    def service_account_exists(self, project_id: str, email: str) -> bool: ...

    @abc.abstractmethod
    def create_service_account(
        self, project_id: str, name: str, display_name: str, description: str
    ) -> None: ...

    @abc.abstractmethod
    def workload_identity_pool_exists(self, project_id: str, pool: str) -> bool: ...

    @abc.abstractmethod
    def create_workload_identity_pool(
        self, project_id: str, pool: str, display_name: str, description: str
    ) -> None: ...

    @abc.abstractmethod
    def oidc_provider_exists(self, project_id: str, pool: str, provider: str) -> bool: ...

    @abc.abstractmethod
    def create_oidc_provider(
        self,
        project_id: str,
        pool: str,
        provider: str,
        *,
        display_name: str,
        description: str,
        issuer_uri: str,
        attribute_mapping: str,
        attribute_condition: str = "",
    ) -> None: ...

    @abc.abstractmethod
    def add_service_account_iam_binding(self, email: str, member: str, role: str) -> None: ...


Runner = Callable[[Sequence[str]], RunResult]


class GcloudClient(CloudClient):
    """
    gcloud CLI 기반 구현.

    trace=True 이면 각 명령을 실행 직전에 회색으로 출력한다.
    """

    def __init__(self, *, trace: bool = False, runner: Optional[Runner] = None,
                 gcloud_bin: str = "gcloud") -> None:
        self._trace = trace
        self._runner = runner or run_command
        self._gcloud = gcloud_bin

    def _run(self, *args: str) -> str:
        cmd: List[str] = [self._gcloud, *args]
        if self._trace:
            echo_trace(shlex.join(cmd))
        return self._runner(cmd).stdout.strip()

    def _exists(self, *args: str) -> bool:
        """describe 가 NOT_FOUND 로 실패하면 False, 그 외 실패는 그대로 올린다."""
        try:
            self._run(*args)
        except CommandError as e:
            if e.is_not_found:
                return False
            raise
        return True

    # ---- project / session ----

    def set_project(self, project_id: str) -> None:
        self._run("config", "set", "project", project_id)

    def get_project_number(self, project_id: str) -> str:
        return self._run("projects", "describe", project_id, "--format=value(projectNumber)")

    def get_active_account(self) -> str:
        out = self._run("auth", "list", "--filter=status:ACTIVE", "--format=value(account)")
        # 활성 계정은 하나지만 혹시 여러 줄이면 첫 줄만 사용
        return out.splitlines()[0].strip() if out else ""

    def add_project_iam_binding(self, project_id: str, member: str, role: str) -> None:
        self._run(
            "projects",
            "add-iam-policy-binding",
            project_id,
            f"--member={member}",
            f"--role={role}",
            "--condition=None",
            "--format=none",
        )

    # ---- services ----

    def enable_service(self, project_id: str, service: str) -> None:
        self._run("services", "enable", service, f"--project={project_id}")

    def is_service_enabled(self, project_id: str, service: str) -> bool:
        out = self._run(
            "services",
            "list",
            "--enabled",
            f"--project={project_id}",
            f"--filter=config.name:{service}",
            "--format=value(config.name)",
        )
        return bool(out)

    # ---- service accounts ----

    def service_account_exists(self, project_id: str, email: str) -> bool:
        return self._exists("iam", "service-accounts", "describe", email, f"--project={project_id}")

    def create_service_account(
        self, project_id: str, name: str, display_name: str, description: str
    ) -> None:
        self._run(
            "iam",
            "service-accounts",
            "create",
            name,
            f"--project={project_id}",
            f"--description={description}",
            f"--display-name={display_name}",
        )

    def add_service_account_iam_binding(self, email: str, member: str, role: str) -> None:
        self._run(
            "iam",
            "service-accounts",
            "add-iam-policy-binding",
            email,
            f"--role={role}",
            f"--member={member}",
            "--format=none",
        )

    # ---- workload identity federation ----

    def workload_identity_pool_exists(self, project_id: str, pool: str) -> bool:
        return self._exists(
            "iam",
            "workload-identity-pools",
            "describe",
            pool,
            f"--project={project_id}",
            f"--location={WORKLOAD_IDENTITY_LOCATION}",
        )

    def create_workload_identity_pool(
        self, project_id: str, pool: str, display_name: str, description: str
    ) -> None:
        self._run(
            "iam",
            "workload-identity-pools",
            "create",
            pool,
            f"--project={project_id}",
            f"--location={WORKLOAD_IDENTITY_LOCATION}",
            f"--display-name={display_name}",
            f"--description={description}",
        )

    def oidc_provider_exists(self, project_id: str, pool: str, provider: str) -> bool:
        return self._exists(
            "iam",
            "workload-identity-pools",
            "providers",
            "describe",
            provider,
            f"--project={project_id}",
            f"--location={WORKLOAD_IDENTITY_LOCATION}",
            f"--workload-identity-pool={pool}",
        )

    def create_oidc_provider(
        self,
        project_id: str,
        pool: str,
        provider: str,
        *,
        display_name: str,
        description: str,
        issuer_uri: str,
        attribute_mapping: str,
        attribute_condition: str = "",
    ) -> None:
        args = [
            "iam",
            "workload-identity-pools",
            "providers",
            "create-oidc",
            provider,
            f"--project={project_id}",
            f"--location={WORKLOAD_IDENTITY_LOCATION}",
            f"--workload-identity-pool={pool}",
            f"--display-name={display_name}",
            f"--description={description}",
            f"--issuer-uri={issuer_uri}",
            f"--attribute-mapping={attribute_mapping}",
        ]
        if attribute_condition:
            args.append(f"--attribute-condition={attribute_condition}")
        self._run(*args)
