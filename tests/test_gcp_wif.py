import pytest

from conftest import FakeCloudClient

from wif_kit import gcp_wif
from wif_kit.config import WifConfig
from wif_kit.gcp_project import ProjectContext
from wif_kit.subprocess_utils import CommandError


def _ctx() -> ProjectContext:
    return ProjectContext(project_id="test-project", project_number="123456789012", caller_email="dev@example.com")


def test_principal_set_scoped_to_pool_and_repository() -> None:
    member = gcp_wif.principal_set_for("123456789012", "github-actions-pool", "acme/infra")

    assert member == (
        "principalSet://iam.googleapis.com/projects/123456789012/locations/global/"
        "workloadIdentityPools/github-actions-pool/attribute.repository/acme/infra"
    )


def test_provider_resource_name() -> None:
    assert gcp_wif.provider_resource_name("1", "pool", "prov") == (
        "projects/1/locations/global/workloadIdentityPools/pool/providers/prov"
    )


def test_one_binding_per_repository() -> None:
    cfg = WifConfig(project_id="test-project", repositories=["acme/infra", "acme/web"])
    client = FakeCloudClient()

    members = gcp_wif.bind_repositories(client, cfg, _ctx())

    calls = client.calls_named("add_service_account_iam_binding")
    assert len(calls) == 2
    for (_, email, member, role), repo in zip(calls, cfg.repositories):
        assert email == cfg.service_account_email
        assert role == "roles/iam.workloadIdentityUser"
        assert member.endswith(f"/attribute.repository/{repo}")
        assert "/workloadIdentityPools/github-actions-pool/" in member
    assert members == [c[2] for c in calls]


def test_no_repositories_means_no_bindings() -> None:
    client = FakeCloudClient()

    assert gcp_wif.bind_repositories(client, WifConfig(project_id="test-project"), _ctx()) == []
    assert client.calls_named("add_service_account_iam_binding") == []


def test_provider_receives_joined_mapping_and_condition() -> None:
    cfg = WifConfig(
        project_id="test-project",
        attribute_condition="attribute.repository_owner == 'acme'",
    )
    client = FakeCloudClient()

    gcp_wif.create_pool(client, cfg)
    gcp_wif.create_provider(client, cfg)

    (_, project, pool, provider, issuer, mapping, condition), = client.calls_named("create_oidc_provider")
    assert (project, pool, provider) == ("test-project", "github-actions-pool", "github-actions-provider")
    assert issuer == "https://token.actions.githubusercontent.com"
    assert mapping == ",".join(cfg.attribute_mapping)
    assert condition == "attribute.repository_owner == 'acme'"


def test_existing_pool_fails_by_default() -> None:
    cfg = WifConfig(project_id="test-project")
    client = FakeCloudClient(pools={cfg.pool_name})

    with pytest.raises(CommandError) as excinfo:
        gcp_wif.create_pool(client, cfg)

    assert excinfo.value.is_already_exists
    assert client.calls_named("workload_identity_pool_exists") == []


def test_skip_existing_federation_describes_before_create() -> None:
    cfg = WifConfig(project_id="test-project", skip_existing_federation=True)
    client = FakeCloudClient(pools={cfg.pool_name}, providers={(cfg.pool_name, cfg.provider_name)})

    assert gcp_wif.create_pool(client, cfg) is False
    assert gcp_wif.create_provider(client, cfg) is False
    assert client.calls_named("create_workload_identity_pool") == []
    assert client.calls_named("create_oidc_provider") == []


def test_check_federation_reports_missing_pool() -> None:
    results = gcp_wif.check_federation(FakeCloudClient(), WifConfig(project_id="test-project"))

    assert results[0].startswith("Pool: 없음")
    assert results[1].startswith("Provider: 없음")
