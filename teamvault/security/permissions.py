"""
TeamVault Permission Evaluator — ownership and team-membership access rules.

Every mutating operation asks one question: may ``subject`` perform
``capability`` on ``resource``?  Resources are Folder, FileEntity and Team
rows.  Rules are evaluated in order and the first matching rule wins:

    1. FOLDER_DELETE  personal folder → owner; team folder → team leader
    2. FILE_PURGE     file owner, or leader of the team owning the file's folder
    3. RESTORE        owner only
    4. MANAGE_TEAM    team leader only
    5. Ownership      owner may do anything else
    6. Team member    READ: member; EDIT: can_edit; DELETE: can_delete;
                      INVITE: can_invite
    7. Otherwise      denied

Membership is read from the ORM relationships each time, so changes take
effect on the very next check.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Optional

from teamvault.db.models import FileEntity, Folder, Team, User
from teamvault.engine.errors import AuthorizationError
from teamvault.engine.logging import AuditTrail, log_security_event

logger = logging.getLogger("teamvault.security.permissions")


class Capability(str, enum.Enum):
    READ = "READ"
    EDIT = "EDIT"
    DELETE = "DELETE"
    RESTORE = "RESTORE"
    FOLDER_DELETE = "FOLDER_DELETE"
    FILE_PURGE = "FILE_PURGE"
    INVITE = "INVITE"
    MANAGE_TEAM = "MANAGE_TEAM"


# Which TeamMember flag grants which capability (None = membership suffices)
MEMBER_FLAGS = {
    Capability.READ: None,
    Capability.EDIT: "can_edit",
    Capability.DELETE: "can_delete",
    Capability.INVITE: "can_invite",
}


def resource_ref(resource: Any) -> str:
    """Stable ``kind:id`` reference used in errors and audit entries."""
    if isinstance(resource, FileEntity):
        return f"file:{resource.id}"
    if isinstance(resource, Folder):
        return f"folder:{resource.id}"
    if isinstance(resource, Team):
        return f"team:{resource.id}"
    return f"{type(resource).__name__.lower()}:{getattr(resource, 'id', '?')}"


def team_of(resource: Any) -> Optional[Team]:
    """The team a resource belongs to, or None for personal resources."""
    if isinstance(resource, Team):
        return resource
    if isinstance(resource, Folder):
        return resource.team
    if isinstance(resource, FileEntity):
        return resource.folder.team if resource.folder is not None else None
    return None


def _owns(subject: User, resource: Any) -> bool:
    return getattr(resource, "owner_id", None) == subject.id


def evaluate(subject: User, resource: Any, capability: Capability) -> bool:
    """Decide whether ``subject`` holds ``capability`` on ``resource``."""
    capability = Capability(capability)
    team = team_of(resource)

    if capability is Capability.FOLDER_DELETE:
        if not isinstance(resource, Folder):
            return False
        if team is None:
            return _owns(subject, resource)
        return team.owner_id == subject.id

    if capability is Capability.FILE_PURGE:
        if _owns(subject, resource):
            return True
        return team is not None and team.owner_id == subject.id

    if capability is Capability.RESTORE:
        return _owns(subject, resource)

    if capability is Capability.MANAGE_TEAM:
        return team is not None and team.owner_id == subject.id

    if _owns(subject, resource):
        return True

    if team is not None:
        member = team.member_for(subject.id)
        if member is None or capability not in MEMBER_FLAGS:
            return False
        flag = MEMBER_FLAGS[capability]
        return flag is None or bool(getattr(member, flag))

    return False


class PermissionEvaluator:
    """
    Wraps ``evaluate`` with enforcement: denials raise AuthorizationError and
    are written to the security audit log.
    """

    def __init__(self, audit: Optional[AuditTrail] = None):
        self._audit = audit

    def check(self, subject: User, resource: Any, capability: Capability) -> bool:
        return evaluate(subject, resource, capability)

    def require(
        self,
        subject: User,
        resource: Any,
        capability: Capability,
        reason: Optional[str] = None,
    ) -> None:
        """
        Raise AuthorizationError unless ``subject`` holds ``capability``.

        Args:
            subject: Acting user.
            resource: Folder, FileEntity or Team row.
            capability: Required capability.
            reason: Human-readable denial message (a default is derived).
        """
        capability = Capability(capability)
        if evaluate(subject, resource, capability):
            return

        ref = resource_ref(resource)
        message = reason or f"Access denied: {subject.username} lacks {capability.value} on {ref}"
        logger.warning(message)
        if self._audit is not None:
            self._audit.record(
                log_security_event(
                    "permission_denied",
                    ref,
                    subject.username,
                    capability=capability.value,
                    reason=message,
                )
            )
        raise AuthorizationError(
            message,
            object_ref=ref,
            username=subject.username,
            required_capability=capability.value,
        )
