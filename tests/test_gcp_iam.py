from conftest import FakeCloudClient

from wif_kit import gcp_iam
from wif_kit.config import WifConfig
from wif_kit.gcp_project import ProjectContext


def _ctx(email: str = "dev@example.com") -> ProjectContext:
    return ProjectContext(project_id="test-project", project_number="123456789012", caller_email=email)


def test_merge_roles_keeps_first_occurrence_order() -> None:
    merged = gcp_iam.merge_roles(
        ["roles/a", "roles/b"],
        ["roles/c", "roles/a", "roles/c"],
    )

    assert merged == ["roles/a", "roles/b", "roles/c"]


def test_caller_roles_granted_exactly_once_regardless_of_order() -> None:
    roles = ["roles/run.admin", "roles/iam.serviceAccountAdmin", "roles/storage.admin"]

    granted_sets = []
    for ordering in (roles, list(reversed(roles))):
        client = FakeCloudClient()
        cfg = WifConfig(project_id="test-project", caller_roles=ordering)
        gcp_iam.grant_caller_roles(client, cfg, _ctx())

        bound = [c[3] for c in client.calls_named("add_project_iam_binding")]
        assert len(bound) == len(set(bound))
        granted_sets.append(set(bound))

    assert granted_sets[0] == granted_sets[1]
    assert granted_sets[0] == set(gcp_iam.REQUIRED_CALLER_ROLES) | set(roles)


def test_caller_member_type_for_service_account_caller() -> None:
    client = FakeCloudClient()
    cfg = WifConfig(project_id="test-project")

    gcp_iam.grant_caller_roles(client, cfg, _ctx("ci@other.iam.gserviceaccount.com"))

    members = {c[2] for c in client.calls_named("add_project_iam_binding")}
    assert members == {"serviceAccount:ci@other.iam.gserviceaccount.com"}


def test_existing_service_account_skips_creation() -> None:
    cfg = WifConfig(project_id="test-project")
    client = FakeCloudClient(service_accounts={cfg.service_account_email})

    created = gcp_iam.ensure_service_account(client, cfg)

    assert created is False
    assert client.calls_named("create_service_account") == []


def test_missing_service_account_is_created_with_descriptions() -> None:
    cfg = WifConfig(project_id="test-project", service_account_display_name="CI", service_account_description="for ci")
    client = FakeCloudClient()

    created = gcp_iam.ensure_service_account(client, cfg)

    assert created is True
    assert client.calls_named("create_service_account") == [
        ("create_service_account", "test-project", "github-actions-sa", "CI", "for ci")
    ]


def test_service_account_roles_bound_to_service_account_member() -> None:
    cfg = WifConfig(project_id="test-project", service_account_roles=["roles/run.admin", "roles/run.admin"])
    client = FakeCloudClient()

    granted = gcp_iam.grant_service_account_roles(client, cfg)

    assert granted == ["roles/run.admin"]
    assert client.calls_named("add_project_iam_binding") == [
        (
            "add_project_iam_binding",
            "test-project",
            "serviceAccount:github-actions-sa@test-project.iam.gserviceaccount.com",
            "roles/run.admin",
        )
    ]
