"""
Row lookups shared by the services.

Each loader raises NotFoundError instead of returning None.  ``lock=True``
adds ``SELECT ... FOR UPDATE`` (a no-op on SQLite).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from teamvault.db.models import FileEntity, FileVersion, Folder, Invitation, Team, TeamMember, User
from teamvault.engine.errors import NotFoundError


def _one(session: Session, model, ident: int, lock: bool):
    query = session.query(model).filter(model.__mapper__.primary_key[0] == ident)
    if lock:
        query = query.with_for_update()
    return query.first()


def load_user(session: Session, username: str) -> User:
    user = session.query(User).filter_by(username=username).first()
    if user is None:
        raise NotFoundError(f"User '{username}' not found", object_ref=f"user:{username}")
    return user


def load_team(session: Session, team_id: int, lock: bool = False) -> Team:
    team = _one(session, Team, team_id, lock)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found", object_ref=f"team:{team_id}")
    return team


def load_folder(session: Session, folder_id: int, lock: bool = False) -> Folder:
    folder = _one(session, Folder, folder_id, lock)
    if folder is None:
        raise NotFoundError(f"Folder {folder_id} not found", object_ref=f"folder:{folder_id}")
    return folder


def load_file(session: Session, file_id: int, lock: bool = False) -> FileEntity:
    file = _one(session, FileEntity, file_id, lock)
    if file is None:
        raise NotFoundError(f"File {file_id} not found", object_ref=f"file:{file_id}")
    return file


def load_version(session: Session, version_id: int) -> FileVersion:
    version = _one(session, FileVersion, version_id, False)
    if version is None:
        raise NotFoundError(f"Version {version_id} not found", object_ref=f"version:{version_id}")
    return version


def load_member(session: Session, team: Team, member_id: int, lock: bool = False) -> TeamMember:
    """Fetch a TeamMember by id, requiring that it belongs to ``team``."""
    member = _one(session, TeamMember, member_id, lock)
    if member is None or member.team_id != team.id:
        raise NotFoundError(
            f"Member {member_id} does not belong to team {team.id}",
            object_ref=f"team:{team.id}",
            member_id=member_id,
        )
    return member


def load_invitation(session: Session, invitation_id: int, lock: bool = False) -> Invitation:
    invitation = _one(session, Invitation, invitation_id, lock)
    if invitation is None:
        raise NotFoundError(
            f"Invitation {invitation_id} not found",
            object_ref=f"invitation:{invitation_id}",
        )
    return invitation


def find_team_root(session: Session, team: Team) -> Optional[Folder]:
    """The team's root folder, or None if it has not been created."""
    return (
        session.query(Folder)
        .filter(Folder.team_id == team.id, Folder.parent_id.is_(None))
        .order_by(Folder.id)
        .first()
    )


def find_personal_roots(session: Session, user: User):
    return (
        session.query(Folder)
        .filter(Folder.owner_id == user.id, Folder.team_id.is_(None), Folder.parent_id.is_(None))
        .order_by(Folder.id)
        .all()
    )
