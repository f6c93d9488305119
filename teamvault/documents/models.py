"""
TeamVault read models — Pydantic views returned by the services.

ORM rows never leave a session scope; callers get these detached,
validated snapshots instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    name: str
    email: Optional[str] = None
    role: str


class FileInfo(BaseModel):
    """File metadata as stored, without content."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    original_name: str
    folder_id: int
    owner_id: int
    size: int = Field(ge=0)
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    active_version_id: Optional[int] = None
    created_at: Optional[datetime] = None


class FolderInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    owner_id: int
    team_id: Optional[int] = None
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None


class FolderNode(BaseModel):
    """A folder and its nested subfolders (``get_folder_tree``)."""

    id: int
    name: str
    team_id: Optional[int] = None
    children: List["FolderNode"] = Field(default_factory=list)


class DashboardItem(BaseModel):
    """One entry in a folder listing; ``key`` is unique across kinds."""

    key: str
    id: int
    name: str
    type: str  # "folder" or "file"
    extension: Optional[str] = None
    size: Optional[int] = None
    owner: Optional[str] = None
    created_at: Optional[datetime] = None


class Breadcrumb(BaseModel):
    id: int
    name: str
    kind: str = "folder"  # "team" for the team crumb of a team tree


class FolderContents(BaseModel):
    folder_id: int
    folder_name: str
    team_id: Optional[int] = None
    items: List[DashboardItem] = Field(default_factory=list)
    breadcrumbs: List[Breadcrumb] = Field(default_factory=list)


class SignatureInfo(BaseModel):
    id: int
    file_id: int
    version_id: int
    signer: str
    signed_at: datetime


class VersionInfo(BaseModel):
    version_id: int
    file_id: int
    editor: str
    created_at: datetime
    is_active: bool
    signatures: List[SignatureInfo] = Field(default_factory=list)


class FileDownload(BaseModel):
    file_id: int
    name: str
    content: bytes


class SearchResult(BaseModel):
    id: int
    name: str
    path: str
    folder_id: int
    size: int
    owner: str


class TeamInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    owner_id: int
    root_folder_id: Optional[int] = None


class MemberInfo(BaseModel):
    id: int
    user_id: int
    username: str
    name: str
    is_team_leader: bool
    can_edit: bool
    can_delete: bool
    can_invite: bool


class InvitationInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: int
    inviter_id: int
    invitee_id: int
    status: str
    created_at: Optional[datetime] = None


class NotificationInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    recipient_id: int
    content: str
    type: str
    invitation_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None
