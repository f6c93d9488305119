"""
TeamVault Invitations & Notifications.

An invitation is PENDING until its invitee accepts (becoming a member with
edit rights only) or rejects it.  Either way the inviter is notified.
Notifications go through a NotificationSink; the default one stores
Notification rows in the same transaction as the change that caused them.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from teamvault.db.lookups import load_invitation, load_user
from teamvault.db.models import (
    INVITATION_ACCEPTED,
    INVITATION_PENDING,
    INVITATION_REJECTED,
    NOTIFY_INVITE_ACCEPTED,
    NOTIFY_INVITE_REJECTED,
    Invitation,
    Notification,
    TeamMember,
    User,
)
from teamvault.db.session import session_scope
from teamvault.documents.models import InvitationInfo, NotificationInfo
from teamvault.engine.errors import AuthorizationError, InvalidStateError, NotFoundError
from teamvault.engine.locks import LockRegistry, team_key
from teamvault.engine.logging import AuditTrail, log_security_event, log_team_event

logger = logging.getLogger("teamvault.teams.invitations")


class NotificationSink(Protocol):
    def notify(
        self,
        session: Session,
        recipient: User,
        content: str,
        type: str,
        invitation: Optional[Invitation] = None,
    ) -> None:
        ...


class DatabaseNotificationSink:
    """Persists notifications as rows in the caller's transaction."""

    def notify(
        self,
        session: Session,
        recipient: User,
        content: str,
        type: str,
        invitation: Optional[Invitation] = None,
    ) -> None:
        session.add(
            Notification(
                recipient_id=recipient.id,
                content=content,
                type=type,
                invitation_id=invitation.id if invitation is not None else None,
            )
        )
        logger.debug(f"Notified '{recipient.username}' ({type})")


class InvitationService:
    def __init__(
        self,
        db_session_factory: sessionmaker,
        sink: Optional[NotificationSink] = None,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self._db_session_factory = db_session_factory
        self._sink = sink or DatabaseNotificationSink()
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()

    def _pending_for(self, session: Session, invitation_id: int, username: str):
        user = load_user(session, username)
        invitation = load_invitation(session, invitation_id, lock=True)
        if invitation.invitee_id != user.id:
            self._audit.record(
                log_security_event(
                    "invitation_denied",
                    f"team:{invitation.team_id}",
                    username,
                    reason=f"not the invitee of invitation {invitation_id}",
                )
            )
            raise AuthorizationError(
                f"'{username}' is not the invitee of invitation {invitation_id}",
                object_ref=f"invitation:{invitation_id}",
                username=username,
            )
        if invitation.status != INVITATION_PENDING:
            raise InvalidStateError(
                f"Invitation {invitation_id} was already {invitation.status.lower()}",
                object_ref=f"invitation:{invitation_id}",
            )
        return user, invitation

    def _team_id_of(self, invitation_id: int) -> int:
        with session_scope(self._db_session_factory) as session:
            return load_invitation(session, invitation_id).team_id

    def accept_invitation(self, invitation_id: int, username: str) -> InvitationInfo:
        """Join the team with can_edit only and notify the inviter."""
        with self._locks.hold([team_key(self._team_id_of(invitation_id))]):
            with session_scope(self._db_session_factory) as session:
                user, invitation = self._pending_for(session, invitation_id, username)
                team = invitation.team
                if team.member_for(user.id) is not None:
                    raise InvalidStateError(
                        f"'{username}' is already a member of team {team.id}",
                        object_ref=f"team:{team.id}",
                    )
                invitation.status = INVITATION_ACCEPTED
                session.add(
                    TeamMember(
                        team=team,
                        user=user,
                        is_team_leader=False,
                        can_edit=True,
                        can_delete=False,
                        can_invite=False,
                    )
                )
                self._sink.notify(
                    session,
                    invitation.inviter,
                    f"{user.name} accepted the invitation to '{team.name}'",
                    NOTIFY_INVITE_ACCEPTED,
                    invitation,
                )
                session.flush()
                info = InvitationInfo.model_validate(invitation)

        logger.info(f"'{username}' joined team {info.team_id}")
        self._audit.record(log_team_event("invitation_accepted", info.team_id, username, invitation_id=info.id))
        return info

    def reject_invitation(self, invitation_id: int, username: str) -> InvitationInfo:
        with session_scope(self._db_session_factory) as session:
            user, invitation = self._pending_for(session, invitation_id, username)
            invitation.status = INVITATION_REJECTED
            self._sink.notify(
                session,
                invitation.inviter,
                f"{user.name} declined the invitation to '{invitation.team.name}'",
                NOTIFY_INVITE_REJECTED,
                invitation,
            )
            session.flush()
            info = InvitationInfo.model_validate(invitation)

        self._audit.record(log_team_event("invitation_rejected", info.team_id, username, invitation_id=info.id))
        return info

    def list_pending_invitations(self, username: str) -> List[InvitationInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            rows = (
                session.query(Invitation)
                .filter(Invitation.invitee_id == user.id, Invitation.status == INVITATION_PENDING)
                .order_by(Invitation.id)
                .all()
            )
            return [InvitationInfo.model_validate(i) for i in rows]

    # -------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------

    def list_notifications(self, username: str, unread_only: bool = False) -> List[NotificationInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            query = session.query(Notification).filter(Notification.recipient_id == user.id)
            if unread_only:
                query = query.filter(Notification.is_read.is_(False))
            rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
            return [NotificationInfo.model_validate(n) for n in rows]

    def mark_notification_read(self, notification_id: int, username: str) -> NotificationInfo:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            notification = session.get(Notification, notification_id)
            if notification is None or notification.recipient_id != user.id:
                raise NotFoundError(
                    f"Notification {notification_id} not found",
                    object_ref=f"notification:{notification_id}",
                )
            notification.is_read = True
            session.flush()
            return NotificationInfo.model_validate(notification)
