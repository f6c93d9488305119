"""
TeamVault Lifecycle (Trash) Manager.

Files go through three states: live → trashed → purged.  Trash and restore
only flip flags; a purge removes rows and blobs for good.  Folders skip the
trash entirely: deleting one purges everything below it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from teamvault.db.lookups import load_user
from teamvault.db.models import FileEntity
from teamvault.db.session import session_scope
from teamvault.documents.folders import FolderService
from teamvault.documents.models import FileInfo
from teamvault.documents.service import FileService
from teamvault.engine.locks import LockRegistry, file_key
from teamvault.engine.logging import AuditTrail, log_file_event, log_system_event

logger = logging.getLogger("teamvault.documents.lifecycle")


class TrashManager:
    def __init__(
        self,
        db_session_factory: sessionmaker,
        files: FileService,
        folders: FolderService,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self._db_session_factory = db_session_factory
        self._files = files
        self._folders = folders
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()

    # Delegating operations

    def trash_file(self, file_id: int, username: str) -> FileInfo:
        return self._files.move_file_to_trash(file_id, username)

    def restore_file(self, file_id: int, username: str) -> FileInfo:
        return self._files.restore_file_from_trash(file_id, username)

    def purge_file(self, file_id: int, username: str) -> None:
        self._files.delete_file_permanently(file_id, username)

    def delete_folder(self, folder_id: int, username: str) -> int:
        return self._folders.delete_folder_permanently(folder_id, username)

    def list_trash(self, username: str) -> List[FileInfo]:
        return self._files.list_trash(username)

    # Bulk purges

    def empty_trash(self, username: str) -> int:
        """Permanently delete every file in the caller's trash."""
        trashed = self._files.list_trash(username)
        for info in trashed:
            self._files.delete_file_permanently(info.id, username)
        if trashed:
            logger.info(f"Emptied trash of '{username}' ({len(trashed)} file(s))")
        return len(trashed)

    def purge_expired(self, retention_days: int, now: Optional[datetime] = None) -> int:
        """
        Permanently delete files trashed more than ``retention_days`` ago.
        Runs with system authority (no permission check).

        Returns:
            Number of files purged.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=retention_days)

        with session_scope(self._db_session_factory) as session:
            candidates = [
                (f.id, f.deleted_at)
                for f in session.query(FileEntity).filter(FileEntity.is_deleted.is_(True)).all()
            ]

        purged = 0
        for file_id, deleted_at in candidates:
            if deleted_at is None:
                continue
            if deleted_at.tzinfo is None:
                deleted_at = deleted_at.replace(tzinfo=timezone.utc)
            if deleted_at > cutoff:
                continue
            with self._locks.hold([file_key(file_id)]):
                with session_scope(self._db_session_factory) as session:
                    file = session.get(FileEntity, file_id)
                    # restored or purged since the scan
                    if file is None or not file.is_deleted:
                        continue
                    addresses = self._files.purge(session, file)
            removed = self._files.release_blobs(addresses)
            purged += 1
            self._audit.record(log_file_event("expired_purged", file_id, None, blobs_removed=removed))

        self._audit.record(
            log_system_event(
                "trash_purge",
                details={"retention_days": retention_days, "purged": purged},
            )
        )
        logger.info(f"Purged {purged} expired file(s) from trash (retention {retention_days}d)")
        return purged

    def trash_size(self, username: str) -> int:
        """Total bytes held by the caller's trashed files."""
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            return sum(
                f.size
                for f in session.query(FileEntity)
                .filter(FileEntity.owner_id == user.id, FileEntity.is_deleted.is_(True))
                .all()
            )
