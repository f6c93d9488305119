"""
TeamVault Team Service — teams, members and leadership.

Each team has exactly one leader: ``Team.owner_id`` and the single
TeamMember with ``is_team_leader``.  The leader holds every capability
flag, cannot be removed, cannot leave, and hands over leadership only
through ``delegate_leadership``.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from teamvault.db.lookups import find_team_root, load_member, load_team, load_user
from teamvault.db.models import (
    INVITATION_PENDING,
    NOTIFY_TEAM_INVITE,
    Folder,
    Invitation,
    Notification,
    Team,
    TeamMember,
)
from teamvault.db.session import session_scope
from teamvault.documents.folders import FolderService
from teamvault.documents.models import InvitationInfo, MemberInfo, TeamInfo
from teamvault.engine.errors import InvalidStateError, NotFoundError, ValidationError
from teamvault.engine.locks import LockRegistry, team_key
from teamvault.engine.logging import AuditTrail, log_team_event
from teamvault.security.permissions import Capability, PermissionEvaluator
from teamvault.teams.invitations import DatabaseNotificationSink, NotificationSink

logger = logging.getLogger("teamvault.teams.service")


def _member_info(member: TeamMember) -> MemberInfo:
    return MemberInfo(
        id=member.id,
        user_id=member.user_id,
        username=member.user.username,
        name=member.user.name,
        is_team_leader=member.is_team_leader,
        can_edit=member.can_edit,
        can_delete=member.can_delete,
        can_invite=member.can_invite,
    )


def _team_info(team: Team, root: Optional[Folder]) -> TeamInfo:
    return TeamInfo(
        id=team.id,
        name=team.name,
        owner_id=team.owner_id,
        root_folder_id=root.id if root is not None else None,
    )


class TeamService:
    def __init__(
        self,
        db_session_factory: sessionmaker,
        evaluator: PermissionEvaluator,
        folders: FolderService,
        sink: Optional[NotificationSink] = None,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self._db_session_factory = db_session_factory
        self._evaluator = evaluator
        self._folders = folders
        self._sink = sink or DatabaseNotificationSink()
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()

    # -------------------------------------------------------------------
    # Create / list
    # -------------------------------------------------------------------

    def create_team(self, username: str, name: str) -> TeamInfo:
        """Create a team, its root folder and the creator's leader membership."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name is required", field="name")

        with session_scope(self._db_session_factory) as session:
            owner = load_user(session, username)
            team = Team(name=name, owner=owner)
            session.add(team)
            session.flush()
            root = self._folders.create_team_root(session, team, owner)
            leader = TeamMember(team=team, user=owner)
            leader.promote_to_leader()
            session.add(leader)
            session.flush()
            info = _team_info(team, root)

        logger.info(f"Created team {info.id} '{name}' led by '{username}'")
        self._audit.record(log_team_event("created", info.id, username, root_folder_id=info.root_folder_id))
        return info

    def get_team(self, team_id: int, username: str) -> TeamInfo:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            team = load_team(session, team_id)
            self._evaluator.require(user, team, Capability.READ)
            return _team_info(team, find_team_root(session, team))

    def list_my_teams(self, username: str) -> List[TeamInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            teams = (
                session.query(Team)
                .join(TeamMember, TeamMember.team_id == Team.id)
                .filter(TeamMember.user_id == user.id)
                .order_by(Team.id)
                .all()
            )
            return [_team_info(t, find_team_root(session, t)) for t in teams]

    def list_members(self, team_id: int, username: str) -> List[MemberInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            team = load_team(session, team_id)
            self._evaluator.require(user, team, Capability.READ)
            return [_member_info(m) for m in team.members]

    # -------------------------------------------------------------------
    # Invitations
    # -------------------------------------------------------------------

    def invite_member(self, team_id: int, username: str, invitee_username: str) -> InvitationInfo:
        """
        Invite a user to the team.

        Raises:
            AuthorizationError: the inviter is not a member with can_invite.
            ValidationError: the invitee is already a member or already has
                a pending invitation to this team.
        """
        with self._locks.hold([team_key(team_id)]):
            with session_scope(self._db_session_factory) as session:
                inviter = load_user(session, username)
                team = load_team(session, team_id, lock=True)
                self._evaluator.require(inviter, team, Capability.INVITE)
                invitee = load_user(session, invitee_username)

                if team.member_for(invitee.id) is not None:
                    raise ValidationError(
                        f"'{invitee_username}' is already a member of team {team_id}",
                        object_ref=f"team:{team_id}",
                        field="invitee",
                    )
                pending = (
                    session.query(Invitation)
                    .filter_by(team_id=team.id, invitee_id=invitee.id, status=INVITATION_PENDING)
                    .first()
                )
                if pending is not None:
                    raise ValidationError(
                        f"'{invitee_username}' already has a pending invitation to team {team_id}",
                        object_ref=f"team:{team_id}",
                        field="invitee",
                    )

                invitation = Invitation(team=team, inviter=inviter, invitee=invitee)
                session.add(invitation)
                session.flush()
                self._sink.notify(
                    session,
                    invitee,
                    f"{inviter.name} invited you to '{team.name}'",
                    NOTIFY_TEAM_INVITE,
                    invitation,
                )
                session.flush()
                info = InvitationInfo.model_validate(invitation)

        self._audit.record(
            log_team_event("member_invited", team_id, username, invitee=invitee_username, invitation_id=info.id)
        )
        return info

    # -------------------------------------------------------------------
    # Membership management
    # -------------------------------------------------------------------

    def update_member_permissions(
        self,
        team_id: int,
        member_id: int,
        username: str,
        can_edit: bool,
        can_delete: bool,
        can_invite: bool,
    ) -> MemberInfo:
        with self._locks.hold([team_key(team_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                team = load_team(session, team_id, lock=True)
                self._evaluator.require(user, team, Capability.MANAGE_TEAM)
                member = load_member(session, team, member_id, lock=True)
                if member.is_team_leader:
                    raise InvalidStateError(
                        "The team leader's permissions cannot be changed",
                        object_ref=f"team:{team_id}",
                        member_id=member_id,
                    )
                member.can_edit = bool(can_edit)
                member.can_delete = bool(can_delete)
                member.can_invite = bool(can_invite)
                session.flush()
                info = _member_info(member)

        self._audit.record(
            log_team_event(
                "member_permissions_updated",
                team_id,
                username,
                member_id=member_id,
                can_edit=info.can_edit,
                can_delete=info.can_delete,
                can_invite=info.can_invite,
            )
        )
        return info

    def remove_member(self, team_id: int, member_id: int, username: str) -> None:
        with self._locks.hold([team_key(team_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                team = load_team(session, team_id, lock=True)
                self._evaluator.require(user, team, Capability.MANAGE_TEAM)
                member = load_member(session, team, member_id, lock=True)
                if member.is_team_leader:
                    raise InvalidStateError(
                        "The team leader cannot be removed",
                        object_ref=f"team:{team_id}",
                        member_id=member_id,
                    )
                removed_username = member.user.username
                team.members.remove(member)
                session.flush()

        logger.info(f"Removed '{removed_username}' from team {team_id}")
        self._audit.record(log_team_event("member_removed", team_id, username, member=removed_username))

    def leave_team(self, team_id: int, username: str) -> None:
        with self._locks.hold([team_key(team_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                team = load_team(session, team_id, lock=True)
                member = team.member_for(user.id)
                if member is None:
                    raise NotFoundError(
                        f"'{username}' is not a member of team {team_id}",
                        object_ref=f"team:{team_id}",
                    )
                if member.is_team_leader:
                    raise InvalidStateError(
                        "The team leader cannot leave; delegate leadership first",
                        object_ref=f"team:{team_id}",
                    )
                team.members.remove(member)
                session.flush()

        self._audit.record(log_team_event("member_left", team_id, username))

    def delegate_leadership(self, team_id: int, member_id: int, username: str) -> MemberInfo:
        """Hand leadership to another member; flags and owner swap atomically."""
        with self._locks.hold([team_key(team_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                team = load_team(session, team_id, lock=True)
                self._evaluator.require(user, team, Capability.MANAGE_TEAM)
                new_leader = load_member(session, team, member_id, lock=True)
                if new_leader.user_id == user.id:
                    raise InvalidStateError(
                        f"'{username}' already leads team {team_id}",
                        object_ref=f"team:{team_id}",
                    )

                current = team.member_for(user.id)
                if current is not None:
                    current.demote_from_leader()
                new_leader.promote_to_leader()
                team.owner = new_leader.user
                session.flush()
                info = _member_info(new_leader)

        logger.info(f"Team {team_id} leadership: '{username}' -> '{info.username}'")
        self._audit.record(log_team_event("leader_delegated", team_id, username, new_leader=info.username))
        return info

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------

    def delete_team(self, team_id: int, username: str) -> None:
        """
        Delete the team with its invitations, their notifications, every
        folder and file of the team tree (blobs included) and memberships.
        """
        with self._locks.hold([team_key(team_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                team = load_team(session, team_id, lock=True)
                self._evaluator.require(user, team, Capability.MANAGE_TEAM)

                invitation_ids = [i.id for i in team.invitations]
                if invitation_ids:
                    session.query(Notification).filter(
                        Notification.invitation_id.in_(invitation_ids)
                    ).delete(synchronize_session="fetch")

                roots = (
                    session.query(Folder)
                    .filter(Folder.team_id == team.id, Folder.parent_id.is_(None))
                    .all()
                )
                folders_removed = 0
                addresses = []
                for root in roots:
                    removed, root_addresses = self._folders.purge_subtree(session, root)
                    folders_removed += removed
                    addresses.extend(root_addresses)

                session.delete(team)
                session.flush()
        self._folders.release_blobs(addresses)

        logger.info(f"Deleted team {team_id} ({folders_removed} folder(s))")
        self._audit.record(log_team_event("deleted", team_id, username, folders_removed=folders_removed))
