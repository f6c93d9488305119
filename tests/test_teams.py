"""Tests for teamvault.teams.service — teams, membership and leadership."""

import pytest

from teamvault.engine.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


class TestCreateTeam:

    def test_creates_root_and_leader(self, vault, alice, team):
        assert team.name == "Research"
        assert team.owner_id == alice.id
        assert team.root_folder_id is not None

        members = vault.teams.list_members(team.id, "alice")
        assert len(members) == 1
        leader = members[0]
        assert leader.username == "alice"
        assert leader.is_team_leader
        assert leader.can_edit and leader.can_delete and leader.can_invite

    def test_root_folder_is_tagged(self, vault, team):
        contents = vault.folders.get_team_root_contents(team.id, "alice")
        assert contents.folder_id == team.root_folder_id
        assert contents.team_id == team.id

    def test_name_required(self, vault, alice):
        with pytest.raises(ValidationError):
            vault.teams.create_team("alice", "   ")

    def test_get_team(self, vault, team):
        assert vault.teams.get_team(team.id, "alice") == team

    def test_get_team_outsider(self, vault, team, bob):
        with pytest.raises(AuthorizationError):
            vault.teams.get_team(team.id, "bob")

    def test_list_my_teams(self, vault, team, bob, join_team):
        other = vault.teams.create_team("alice", "Ops")
        join_team(other.id, "bob")
        assert [t.id for t in vault.teams.list_my_teams("alice")] == [team.id, other.id]
        assert [t.id for t in vault.teams.list_my_teams("bob")] == [other.id]


class TestMembers:

    def test_joined_member_defaults(self, team, bob, join_team):
        member = join_team(team.id, "bob")
        assert not member.is_team_leader
        assert member.can_edit
        assert not member.can_delete
        assert not member.can_invite

    def test_member_without_invite_flag(self, vault, team, bob, carol, join_team):
        join_team(team.id, "bob")
        with pytest.raises(AuthorizationError):
            vault.teams.invite_member(team.id, "bob", "carol")

    def test_member_with_invite_flag(self, vault, team, bob, carol, join_team):
        member = join_team(team.id, "bob")
        vault.teams.update_member_permissions(team.id, member.id, "alice", True, False, True)
        invitation = vault.teams.invite_member(team.id, "bob", "carol")
        assert invitation.status == "PENDING"

    def test_update_permissions(self, vault, team, bob, join_team):
        member = join_team(team.id, "bob")
        updated = vault.teams.update_member_permissions(team.id, member.id, "alice", False, True, False)
        assert (updated.can_edit, updated.can_delete, updated.can_invite) == (False, True, False)

    def test_update_permissions_requires_leader(self, vault, team, bob, join_team):
        member = join_team(team.id, "bob")
        with pytest.raises(AuthorizationError):
            vault.teams.update_member_permissions(team.id, member.id, "bob", True, True, True)

    def test_leader_permissions_fixed(self, vault, team):
        leader = vault.teams.list_members(team.id, "alice")[0]
        with pytest.raises(InvalidStateError):
            vault.teams.update_member_permissions(team.id, leader.id, "alice", False, False, False)

    def test_permission_change_applies_immediately(self, vault, team, bob, join_team):
        member = join_team(team.id, "bob")
        vault.teams.update_member_permissions(team.id, member.id, "alice", False, False, False)
        with pytest.raises(AuthorizationError):
            vault.files.upload_file("bob", "a.txt", b"x", team_id=team.id)

    def test_remove_member(self, vault, team, bob, join_team):
        member = join_team(team.id, "bob")
        vault.teams.remove_member(team.id, member.id, "alice")
        assert [m.username for m in vault.teams.list_members(team.id, "alice")] == ["alice"]
        with pytest.raises(AuthorizationError):
            vault.teams.list_members(team.id, "bob")

    def test_remove_leader(self, vault, team):
        leader = vault.teams.list_members(team.id, "alice")[0]
        with pytest.raises(InvalidStateError):
            vault.teams.remove_member(team.id, leader.id, "alice")

    def test_remove_member_of_other_team(self, vault, team, bob, join_team):
        other = vault.teams.create_team("alice", "Ops")
        member = join_team(other.id, "bob")
        with pytest.raises(NotFoundError):
            vault.teams.remove_member(team.id, member.id, "alice")

    def test_leave_team(self, vault, team, bob, join_team):
        join_team(team.id, "bob")
        vault.teams.leave_team(team.id, "bob")
        assert vault.teams.list_my_teams("bob") == []

    def test_leader_cannot_leave(self, vault, team):
        with pytest.raises(InvalidStateError):
            vault.teams.leave_team(team.id, "alice")

    def test_non_member_leave(self, vault, team, bob):
        with pytest.raises(NotFoundError):
            vault.teams.leave_team(team.id, "bob")


class TestDelegateLeadership:

    def test_swap(self, vault, team, alice, bob, join_team):
        member = join_team(team.id, "bob")
        new_leader = vault.teams.delegate_leadership(team.id, member.id, "alice")
        assert new_leader.is_team_leader
        assert new_leader.can_edit and new_leader.can_delete and new_leader.can_invite

        info = vault.teams.get_team(team.id, "bob")
        assert info.owner_id == bob.id
        leaders = [m for m in vault.teams.list_members(team.id, "bob") if m.is_team_leader]
        assert [m.username for m in leaders] == ["bob"]

    def test_old_leader_loses_management(self, vault, team, bob, join_team):
        member = join_team(team.id, "bob")
        vault.teams.delegate_leadership(team.id, member.id, "alice")
        with pytest.raises(AuthorizationError):
            vault.teams.delete_team(team.id, "alice")
        vault.teams.leave_team(team.id, "alice")
        vault.teams.delete_team(team.id, "bob")
        assert vault.teams.list_my_teams("bob") == []

    def test_delegate_to_self(self, vault, team):
        leader = vault.teams.list_members(team.id, "alice")[0]
        with pytest.raises(InvalidStateError):
            vault.teams.delegate_leadership(team.id, leader.id, "alice")

    def test_non_leader_cannot_delegate(self, vault, team, bob, carol, join_team):
        join_team(team.id, "bob")
        carol_member = join_team(team.id, "carol")
        with pytest.raises(AuthorizationError):
            vault.teams.delegate_leadership(team.id, carol_member.id, "bob")


class TestDeleteTeam:

    def test_removes_tree_and_blobs(self, vault, team, bob, join_team):
        join_team(team.id, "bob")
        sub = vault.folders.create_folder("alice", "specs", team_id=team.id)
        f1 = vault.files.upload_file("alice", "plan.txt", b"v1", team_id=team.id)
        f2 = vault.files.upload_file("bob", "notes.md", b"n1", folder_id=sub.id, team_id=team.id)
        vault.files.save_new_version(f2.id, "bob", b"n2")

        blob_files = [p for p in vault.blobs.root.rglob("*") if p.is_file()]
        assert len(blob_files) == 3

        vault.teams.delete_team(team.id, "alice")

        assert [p for p in vault.blobs.root.rglob("*") if p.is_file()] == []
        with pytest.raises(NotFoundError):
            vault.teams.get_team(team.id, "alice")
        with pytest.raises(NotFoundError):
            vault.files.get_file(f1.id, "alice")
        assert vault.teams.list_my_teams("bob") == []
        assert vault.invitations.list_notifications("bob") == []

    def test_member_cannot_delete(self, vault, team, bob, join_team):
        join_team(team.id, "bob")
        with pytest.raises(AuthorizationError):
            vault.teams.delete_team(team.id, "bob")

    def test_personal_files_untouched(self, vault, team, personal_root):
        mine = vault.files.upload_file("alice", "mine.txt", b"keep", folder_id=personal_root("alice"))
        vault.teams.delete_team(team.id, "alice")
        assert vault.files.get_active_content(mine.id, "alice") == "keep"
