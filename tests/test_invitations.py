"""Tests for teamvault.teams.invitations — invitation flow and notifications."""

import pytest

from teamvault.engine.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


class RecordingSink:
    """Collects notifications instead of storing them."""

    def __init__(self):
        self.sent = []

    def notify(self, session, recipient, content, type, invitation=None):
        self.sent.append((recipient.username, type, invitation.id if invitation else None))


class TestInvite:

    def test_invite_creates_pending_and_notifies(self, vault, team, bob):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        assert invitation.status == "PENDING"
        assert invitation.team_id == team.id

        pending = vault.invitations.list_pending_invitations("bob")
        assert [i.id for i in pending] == [invitation.id]

        notes = vault.invitations.list_notifications("bob")
        assert len(notes) == 1
        assert notes[0].type == "TEAM_INVITE"
        assert notes[0].invitation_id == invitation.id
        assert "Research" in notes[0].content
        assert not notes[0].is_read

    def test_duplicate_pending(self, vault, team, bob):
        vault.teams.invite_member(team.id, "alice", "bob")
        with pytest.raises(ValidationError, match="pending"):
            vault.teams.invite_member(team.id, "alice", "bob")

    def test_already_member(self, vault, team, bob, join_team):
        join_team(team.id, "bob")
        with pytest.raises(ValidationError, match="already a member"):
            vault.teams.invite_member(team.id, "alice", "bob")

    def test_unknown_invitee(self, vault, team):
        with pytest.raises(NotFoundError):
            vault.teams.invite_member(team.id, "alice", "ghost")

    def test_outsider_cannot_invite(self, vault, team, bob, carol):
        with pytest.raises(AuthorizationError):
            vault.teams.invite_member(team.id, "bob", "carol")


class TestAccept:

    def test_accept(self, vault, team, bob):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        accepted = vault.invitations.accept_invitation(invitation.id, "bob")
        assert accepted.status == "ACCEPTED"
        assert vault.invitations.list_pending_invitations("bob") == []

        members = {m.username: m for m in vault.teams.list_members(team.id, "bob")}
        assert set(members) == {"alice", "bob"}
        assert members["bob"].can_edit and not members["bob"].can_invite

        notes = vault.invitations.list_notifications("alice")
        assert [n.type for n in notes] == ["INVITE_ACCEPTED"]
        assert notes[0].invitation_id == invitation.id

    def test_accept_twice(self, vault, team, bob):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        vault.invitations.accept_invitation(invitation.id, "bob")
        with pytest.raises(InvalidStateError):
            vault.invitations.accept_invitation(invitation.id, "bob")

    def test_wrong_invitee(self, vault, team, bob, carol):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        with pytest.raises(AuthorizationError):
            vault.invitations.accept_invitation(invitation.id, "carol")

        denials = vault.audit.file_logger.query("teams", "security")
        assert denials[-1]["event"] == "invitation_denied"
        assert denials[-1]["username"] == "carol"

    def test_unknown_invitation(self, vault, bob):
        with pytest.raises(NotFoundError):
            vault.invitations.accept_invitation(999, "bob")


class TestReject:

    def test_reject(self, vault, team, bob):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        rejected = vault.invitations.reject_invitation(invitation.id, "bob")
        assert rejected.status == "REJECTED"
        assert vault.teams.list_my_teams("bob") == []
        assert [n.type for n in vault.invitations.list_notifications("alice")] == ["INVITE_REJECTED"]

    def test_reject_after_accept(self, vault, team, bob):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        vault.invitations.accept_invitation(invitation.id, "bob")
        with pytest.raises(InvalidStateError):
            vault.invitations.reject_invitation(invitation.id, "bob")

    def test_reinvite_after_reject(self, vault, team, bob):
        invitation = vault.teams.invite_member(team.id, "alice", "bob")
        vault.invitations.reject_invitation(invitation.id, "bob")
        again = vault.teams.invite_member(team.id, "alice", "bob")
        assert again.id != invitation.id


class TestNotifications:

    def test_mark_read(self, vault, team, bob):
        vault.teams.invite_member(team.id, "alice", "bob")
        note = vault.invitations.list_notifications("bob")[0]
        updated = vault.invitations.mark_notification_read(note.id, "bob")
        assert updated.is_read
        assert vault.invitations.list_notifications("bob", unread_only=True) == []
        assert len(vault.invitations.list_notifications("bob")) == 1

    def test_mark_other_users_notification(self, vault, team, bob):
        vault.teams.invite_member(team.id, "alice", "bob")
        note = vault.invitations.list_notifications("bob")[0]
        with pytest.raises(NotFoundError):
            vault.invitations.mark_notification_read(note.id, "alice")


class TestCustomSink:

    def test_sink_receives_notifications(self, vault_config):
        import uuid

        from teamvault.vault import Vault

        sink = RecordingSink()
        with Vault(vault_config, engine_name=f"sink-{uuid.uuid4().hex}", async_logging=False, sink=sink) as v:
            v.accounts.signup("alice", "secret-pw", "secret-pw")
            v.accounts.signup("bob", "secret-pw", "secret-pw")
            team = v.teams.create_team("alice", "Lab")
            invitation = v.teams.invite_member(team.id, "alice", "bob")
            v.invitations.accept_invitation(invitation.id, "bob")
            assert v.invitations.list_notifications("bob") == []

        assert sink.sent == [
            ("bob", "TEAM_INVITE", invitation.id),
            ("alice", "INVITE_ACCEPTED", invitation.id),
        ]
