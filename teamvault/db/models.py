"""
TeamVault Models — All SQLAlchemy models for the metadata database.

Tables defined here:
1.  users          — Accounts (ADMIN for the first registrant, USER otherwise)
2.  teams          — Teams, owner_id is the current leader
3.  team_members   — User ↔ Team with capability flags
4.  folders        — Personal (team_id NULL) and team folder trees
5.  files          — File metadata, trash state, active version pointer
6.  file_versions  — Append-only version log (one blob per version)
7.  signatures     — Signatures on a file's active version
8.  share_links    — Public links to a file
9.  invitations    — Pending/processed team invitations
10. notifications  — Messages delivered to users
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from teamvault.db.base import AuditMixin, Base, SoftDeleteMixin, utcnow

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"

INVITATION_PENDING = "PENDING"
INVITATION_ACCEPTED = "ACCEPTED"
INVITATION_REJECTED = "REJECTED"

NOTIFY_TEAM_INVITE = "TEAM_INVITE"
NOTIFY_INVITE_ACCEPTED = "INVITE_ACCEPTED"
NOTIFY_INVITE_REJECTED = "INVITE_REJECTED"


# ---------------------------------------------------------------------------
# 1. Users
# ---------------------------------------------------------------------------

class User(Base, AuditMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)
    name = Column(String(200), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(10), default=ROLE_USER, nullable=False)

    memberships = relationship("TeamMember", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'USER')", name="ck_users_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


# ---------------------------------------------------------------------------
# 2. Teams
# ---------------------------------------------------------------------------

class Team(Base, AuditMixin):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamMember.id",
    )
    invitations = relationship("Invitation", back_populates="team", cascade="all, delete-orphan")

    def member_for(self, user_id: int):
        """Return the TeamMember row of ``user_id`` or None."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    @property
    def leader(self):
        for member in self.members:
            if member.is_team_leader:
                return member
        return None

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.name}', owner_id={self.owner_id})>"


# ---------------------------------------------------------------------------
# 3. Team Members
# ---------------------------------------------------------------------------

class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_team_leader = Column(Boolean, default=False, nullable=False)
    can_edit = Column(Boolean, default=False, nullable=False)
    can_delete = Column(Boolean, default=False, nullable=False)
    can_invite = Column(Boolean, default=False, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        Index("idx_tm_user_id", "user_id"),
    )

    def promote_to_leader(self) -> None:
        self.is_team_leader = True
        self.can_edit = True
        self.can_delete = True
        self.can_invite = True

    def demote_from_leader(self) -> None:
        self.is_team_leader = False

    def __repr__(self) -> str:
        return (
            f"<TeamMember(id={self.id}, team_id={self.team_id}, user_id={self.user_id}, "
            f"leader={self.is_team_leader})>"
        )


# ---------------------------------------------------------------------------
# 4. Folders
# ---------------------------------------------------------------------------

class Folder(Base, AuditMixin):
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("folders.id"), nullable=True, index=True)

    owner = relationship("User", foreign_keys=[owner_id])
    team = relationship("Team", foreign_keys=[team_id])
    parent = relationship("Folder", remote_side=[id], back_populates="children")
    children = relationship("Folder", back_populates="parent", order_by="Folder.id")
    files = relationship("FileEntity", back_populates="folder", order_by="FileEntity.id")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_personal(self) -> bool:
        return self.team_id is None

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name='{self.name}', team_id={self.team_id}, parent_id={self.parent_id})>"


# ---------------------------------------------------------------------------
# 5. Files
# ---------------------------------------------------------------------------

class FileEntity(Base, SoftDeleteMixin):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    folder_id = Column(Integer, ForeignKey("folders.id"), nullable=False, index=True)
    original_name = Column(String(255), nullable=False)
    stored_name = Column(String(255), unique=True, nullable=False)
    size = Column(Integer, default=0, nullable=False)
    active_version_id = Column(
        Integer,
        ForeignKey("file_versions.version_id", use_alter=True, name="fk_files_active_version"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])
    folder = relationship("Folder", back_populates="files")
    versions = relationship(
        "FileVersion",
        back_populates="file",
        foreign_keys="FileVersion.file_id",
        cascade="all, delete-orphan",
        order_by="FileVersion.version_id",
    )
    active_version = relationship(
        "FileVersion",
        foreign_keys=[active_version_id],
        post_update=True,
    )

    def move_to_trash(self, user_id: int) -> None:
        self.is_deleted = True
        self.deleted_at = utcnow()
        self.deleted_by = user_id

    def restore_from_trash(self) -> None:
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None

    @property
    def extension(self) -> str:
        if "." in self.original_name:
            return self.original_name.rsplit(".", 1)[-1]
        return "file"

    def __repr__(self) -> str:
        return (
            f"<FileEntity(id={self.id}, name='{self.original_name}', "
            f"active_version_id={self.active_version_id}, deleted={self.is_deleted})>"
        )


# ---------------------------------------------------------------------------
# 6. File Versions
# ---------------------------------------------------------------------------

class FileVersion(Base):
    __tablename__ = "file_versions"

    version_id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=False, index=True)
    stored_path = Column(String(255), nullable=False)
    editor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    file = relationship("FileEntity", back_populates="versions", foreign_keys=[file_id])
    editor = relationship("User", foreign_keys=[editor_id])

    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<FileVersion(version_id={self.version_id}, file_id={self.file_id})>"


# ---------------------------------------------------------------------------
# 7. Signatures
# ---------------------------------------------------------------------------

class Signature(Base):
    __tablename__ = "signatures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=False, index=True)
    version_id = Column(Integer, ForeignKey("file_versions.version_id"), nullable=False)
    signer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    signed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    signer = relationship("User", foreign_keys=[signer_id])

    __table_args__ = (
        UniqueConstraint("version_id", "signer_id", name="uq_signature_version_signer"),
    )


# ---------------------------------------------------------------------------
# 8. Share Links
# ---------------------------------------------------------------------------

class ShareLink(Base):
    __tablename__ = "share_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# 9. Invitations
# ---------------------------------------------------------------------------

class Invitation(Base):
    __tablename__ = "invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    inviter_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    invitee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(10), default=INVITATION_PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    team = relationship("Team", back_populates="invitations")
    inviter = relationship("User", foreign_keys=[inviter_id])
    invitee = relationship("User", foreign_keys=[invitee_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'REJECTED')",
            name="ck_invitations_status",
        ),
    )


# ---------------------------------------------------------------------------
# 10. Notifications
# ---------------------------------------------------------------------------

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)
    invitation_id = Column(Integer, ForeignKey("invitations.id"), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    recipient = relationship("User", foreign_keys=[recipient_id])

    __table_args__ = (
        CheckConstraint(
            "type IN ('TEAM_INVITE', 'INVITE_ACCEPTED', 'INVITE_REJECTED')",
            name="ck_notifications_type",
        ),
    )
