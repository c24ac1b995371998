"""Tests for create/update request building and SSH key sequencing."""

import pytest

from tfe_sync.clients.exceptions import ClientError, SSHKeyLinkError, WorkspaceUpdateError
from tfe_sync.config.models import VCSRepoConfig, WorkspaceConfig
from tfe_sync.core.state import VCSRepoState, WorkspaceState
from tfe_sync.resources.mutations import (
    apply_update,
    build_create_options,
    build_update_options,
    changed_fields,
    ssh_key_changed,
    sync_ssh_key,
)


@pytest.fixture
def recorded_state():
    """Record matching a default declaration of acme/web."""
    return WorkspaceState(
        id="acme/web",
        external_id="ws-0001",
        name="web",
        organization="acme",
        terraform_version="1.6.0",
        working_directory="",
    )


class TestBuildCreateOptions:
    """Test the creation request."""

    def test_defaults(self):
        config = WorkspaceConfig(address="web", name="web", organization="acme", auto_apply=True)

        attributes = build_create_options(config).to_payload()["data"]["attributes"]

        assert attributes == {
            "name": "web",
            "auto-apply": True,
            "file-triggers-enabled": True,
            "operations": True,
            "queue-all-runs": True,
            "working-directory": "",
        }

    def test_explicit_empty_working_directory(self):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", working_directory="",
        )

        options = build_create_options(config)

        assert options.working_directory == ""

    def test_working_directory(self):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", working_directory="infra/prod",
        )

        assert build_create_options(config).working_directory == "infra/prod"

    def test_optional_fields(self):
        config = WorkspaceConfig(
            address="web",
            name="web",
            organization="acme",
            terraform_version="1.5.7",
            trigger_prefixes=["modules/", "shared/"],
        )

        options = build_create_options(config)

        assert options.terraform_version == "1.5.7"
        assert options.trigger_prefixes == ["modules/", "shared/"]

    def test_empty_optional_fields_are_omitted(self):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme",
            terraform_version="", trigger_prefixes=[],
        )

        attributes = build_create_options(config).to_payload()["data"]["attributes"]

        assert "terraform-version" not in attributes
        assert "trigger-prefixes" not in attributes

    def test_vcs_repo_without_branch(self):
        config = WorkspaceConfig(
            address="web",
            name="web",
            organization="acme",
            vcs_repo=VCSRepoConfig(identifier="acme/web-infra", oauth_token_id="ot-123"),
        )

        attributes = build_create_options(config).to_payload()["data"]["attributes"]

        assert attributes["vcs-repo"] == {
            "identifier": "acme/web-infra",
            "oauth-token-id": "ot-123",
            "ingress-submodules": False,
        }

    def test_vcs_repo_with_branch(self):
        config = WorkspaceConfig(
            address="web",
            name="web",
            organization="acme",
            vcs_repo=VCSRepoConfig(
                identifier="acme/web-infra", oauth_token_id="ot-123", branch="release"
            ),
        )

        assert build_create_options(config).vcs_repo.branch == "release"


class TestBuildUpdateOptions:
    """Test the update request."""

    def test_undeclared_working_directory_is_not_sent(self):
        config = WorkspaceConfig(address="web", name="web", organization="acme")

        attributes = build_update_options(config).to_payload()["data"]["attributes"]

        assert "working-directory" not in attributes

    def test_declared_empty_working_directory_is_sent(self):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", working_directory="",
        )

        attributes = build_update_options(config).to_payload()["data"]["attributes"]

        assert attributes["working-directory"] == ""

    def test_vcs_branch_is_always_sent(self):
        config = WorkspaceConfig(
            address="web",
            name="web",
            organization="acme",
            vcs_repo=VCSRepoConfig(identifier="acme/web-infra", oauth_token_id="ot-123"),
        )

        attributes = build_update_options(config).to_payload()["data"]["attributes"]

        assert attributes["vcs-repo"]["branch"] == ""

    def test_cleared_trigger_prefixes_and_vcs_repo_are_not_sent(self):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", trigger_prefixes=[],
        )

        attributes = build_update_options(config).to_payload()["data"]["attributes"]

        assert "trigger-prefixes" not in attributes
        assert "vcs-repo" not in attributes


class TestChangeDetection:
    """Test which declarations require the primary update call."""

    def test_no_changes(self, recorded_state):
        config = WorkspaceConfig(address="web", name="web", organization="acme")

        assert changed_fields(config, recorded_state) == set()

    def test_undeclared_computed_fields_are_not_changes(self, recorded_state):
        state = recorded_state.model_copy(update={"working_directory": "infra"})
        config = WorkspaceConfig(address="web", name="web", organization="acme")

        assert changed_fields(config, state) == set()

    def test_declared_empty_working_directory_is_a_change(self, recorded_state):
        state = recorded_state.model_copy(update={"working_directory": "infra"})
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", working_directory="",
        )

        assert changed_fields(config, state) == {"working_directory"}

    def test_multiple_changes(self, recorded_state):
        config = WorkspaceConfig(
            address="web",
            name="web2",
            organization="acme",
            auto_apply=True,
            terraform_version="1.7.0",
            trigger_prefixes=["modules/"],
        )

        assert changed_fields(config, recorded_state) == {
            "name",
            "auto_apply",
            "terraform_version",
            "trigger_prefixes",
        }

    def test_vcs_repo_changes(self, recorded_state):
        repo = VCSRepoConfig(identifier="acme/infra", oauth_token_id="ot-1")
        config = WorkspaceConfig(address="web", name="web", organization="acme", vcs_repo=repo)

        assert changed_fields(config, recorded_state) == {"vcs_repo"}

        state = recorded_state.model_copy(
            update={"vcs_repo": VCSRepoState(identifier="acme/infra", oauth_token_id="ot-1")}
        )
        assert changed_fields(config, state) == set()

    def test_ssh_key_is_not_an_updatable_field(self, recorded_state):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", ssh_key_id="sshkey-1",
        )

        assert changed_fields(config, recorded_state) == set()
        assert ssh_key_changed(config, recorded_state)


@pytest.mark.asyncio
class TestApplyUpdate:
    """Test the primary update call."""

    async def test_skipped_without_changes(self, fake_client, recorded_state):
        config = WorkspaceConfig(
            address="web", name="web", organization="acme", ssh_key_id="sshkey-1",
        )

        result = await apply_update(fake_client, "acme", "web", config, recorded_state)

        assert result is None
        fake_client.update_workspace.assert_not_awaited()

    async def test_update_called_with_changes(self, fake_client, recorded_state):
        fake_client.add("acme", "web", id="ws-0001")
        config = WorkspaceConfig(address="web", name="web", organization="acme", auto_apply=True)

        result = await apply_update(fake_client, "acme", "web", config, recorded_state)

        assert result.auto_apply is True
        fake_client.update_workspace.assert_awaited_once()
        args = fake_client.update_workspace.await_args.args
        assert args[0:2] == ("acme", "web")

    async def test_update_failure(self, fake_client, recorded_state):
        fake_client.update_workspace.side_effect = ClientError("Client error: 422", status_code=422)
        config = WorkspaceConfig(address="web", name="web", organization="acme", auto_apply=True)

        with pytest.raises(WorkspaceUpdateError, match="Error updating workspace web"):
            await apply_update(fake_client, "acme", "web", config, recorded_state)


@pytest.mark.asyncio
class TestSyncSSHKey:
    """Test SSH key link and unlink."""

    async def test_assign(self, fake_client):
        fake_client.add("acme", "web", id="ws-0001")

        await sync_ssh_key(fake_client, "ws-0001", "sshkey-1", "web")

        fake_client.assign_ssh_key.assert_awaited_once_with("ws-0001", "sshkey-1")
        fake_client.unassign_ssh_key.assert_not_awaited()

    async def test_unassign(self, fake_client):
        fake_client.add("acme", "web", id="ws-0001", ssh_key_id="sshkey-1")

        await sync_ssh_key(fake_client, "ws-0001", "", "web")

        fake_client.unassign_ssh_key.assert_awaited_once_with("ws-0001")
        fake_client.assign_ssh_key.assert_not_awaited()

    async def test_assign_failure(self, fake_client):
        fake_client.assign_ssh_key.side_effect = ClientError("Client error: 422", status_code=422)

        with pytest.raises(SSHKeyLinkError, match="Error assigning SSH key") as exc_info:
            await sync_ssh_key(fake_client, "ws-0001", "sshkey-1", "web", "acme")

        assert exc_info.value.operation == "assign_ssh_key"
        assert exc_info.value.organization == "acme"

    async def test_unassign_failure(self, fake_client):
        with pytest.raises(SSHKeyLinkError, match="Error unassigning SSH key"):
            await sync_ssh_key(fake_client, "ws-missing", "", "web")
