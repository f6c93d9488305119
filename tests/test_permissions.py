"""Unit tests for teamvault.security.permissions — ordered access rules."""

import pytest

from teamvault.db.models import FileEntity, Folder, Team, TeamMember, User
from teamvault.engine.errors import AuthorizationError
from teamvault.engine.logging import AuditTrail, FileLogger
from teamvault.security.permissions import (
    Capability,
    PermissionEvaluator,
    evaluate,
    resource_ref,
    team_of,
)


@pytest.fixture
def people():
    return {
        "leader": User(id=1, username="leader"),
        "member": User(id=2, username="member"),
        "outsider": User(id=3, username="outsider"),
    }


@pytest.fixture
def team(people):
    team = Team(id=10, name="Ops", owner_id=1)
    TeamMember(team=team, user_id=1, is_team_leader=True, can_edit=True, can_delete=True, can_invite=True)
    TeamMember(team=team, user_id=2, is_team_leader=False, can_edit=True, can_delete=False, can_invite=False)
    return team


@pytest.fixture
def team_folder(team):
    return Folder(id=20, name="docs", owner_id=2, team=team, parent_id=19)


@pytest.fixture
def personal_folder():
    return Folder(id=30, name="member", owner_id=2, parent_id=None)


class TestHelpers:

    def test_resource_ref(self, team, team_folder):
        assert resource_ref(team) == "team:10"
        assert resource_ref(team_folder) == "folder:20"
        assert resource_ref(FileEntity(id=5)) == "file:5"

    def test_team_of(self, team, team_folder, personal_folder):
        assert team_of(team) is team
        assert team_of(team_folder) is team
        assert team_of(personal_folder) is None
        assert team_of(FileEntity(id=1, folder=team_folder)) is team


class TestPersonalResources:

    def test_owner_has_everything(self, people, personal_folder):
        for cap in (Capability.READ, Capability.EDIT, Capability.DELETE, Capability.FOLDER_DELETE):
            assert evaluate(people["member"], personal_folder, cap)

    def test_others_have_nothing(self, people, personal_folder):
        for cap in Capability:
            assert not evaluate(people["outsider"], personal_folder, cap)


class TestTeamResources:

    def test_member_flags(self, people, team_folder):
        member = people["member"]
        file = FileEntity(id=40, owner_id=1, folder=team_folder)
        assert evaluate(member, file, Capability.READ)
        assert evaluate(member, file, Capability.EDIT)
        assert not evaluate(member, file, Capability.DELETE)

    def test_outsider_denied(self, people, team_folder):
        assert not evaluate(people["outsider"], team_folder, Capability.READ)

    def test_folder_delete_leader_only(self, people, team_folder):
        # member owns the folder but only the leader may delete team folders
        assert not evaluate(people["member"], team_folder, Capability.FOLDER_DELETE)
        assert evaluate(people["leader"], team_folder, Capability.FOLDER_DELETE)

    def test_folder_delete_needs_folder(self, people, team):
        assert not evaluate(people["leader"], team, Capability.FOLDER_DELETE)

    def test_file_purge(self, people, team_folder):
        file = FileEntity(id=41, owner_id=2, folder=team_folder)
        assert evaluate(people["member"], file, Capability.FILE_PURGE)
        assert evaluate(people["leader"], file, Capability.FILE_PURGE)
        assert not evaluate(people["outsider"], file, Capability.FILE_PURGE)

    def test_restore_owner_only(self, people, team_folder):
        file = FileEntity(id=42, owner_id=2, folder=team_folder)
        assert evaluate(people["member"], file, Capability.RESTORE)
        assert not evaluate(people["leader"], file, Capability.RESTORE)

    def test_manage_team(self, people, team):
        assert evaluate(people["leader"], team, Capability.MANAGE_TEAM)
        assert not evaluate(people["member"], team, Capability.MANAGE_TEAM)

    def test_invite_flag(self, people, team):
        assert evaluate(people["leader"], team, Capability.INVITE)
        assert not evaluate(people["member"], team, Capability.INVITE)

    def test_flag_change_takes_effect(self, people, team, team_folder):
        member = team.member_for(2)
        member.can_delete = True
        assert evaluate(people["member"], team_folder, Capability.DELETE)

    def test_string_capability(self, people, team):
        assert evaluate(people["member"], team, "READ")


class TestPermissionEvaluator:

    def test_require_passes(self, people, personal_folder):
        PermissionEvaluator().require(people["member"], personal_folder, Capability.EDIT)

    def test_require_raises_and_audits(self, tmp_path, people, personal_folder):
        file_logger = FileLogger(str(tmp_path))
        evaluator = PermissionEvaluator(audit=AuditTrail(file_logger=file_logger))
        with pytest.raises(AuthorizationError) as exc_info:
            evaluator.require(people["outsider"], personal_folder, Capability.EDIT)
        err = exc_info.value
        assert err.object_ref == "folder:30"
        assert err.username == "outsider"
        assert err.required_capability == "EDIT"

        entries = file_logger.query("folders", "security")
        assert len(entries) == 1
        assert entries[0]["event"] == "permission_denied"
        assert entries[0]["capability"] == "EDIT"

    def test_custom_reason(self, people, personal_folder):
        with pytest.raises(AuthorizationError, match="no peeking"):
            PermissionEvaluator().require(
                people["outsider"], personal_folder, Capability.READ, reason="no peeking"
            )
