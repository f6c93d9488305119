"""
TeamVault File & Version Store — upload, versioning, restore, copy, trash, search.

Every file has an append-only list of versions and a mutable pointer to
the active one.  Content lives in the BlobStore:

    originals/<uuid>   the upload (FileEntity.stored_name, also the
                       stored_path of the initial version)
    versions/<uuid>    every later version

Ordering rules:
    - blob write happens before any row is added; if the transaction then
      fails the new blob is removed again
    - a purge deletes rows and commits; only then are the blobs deleted
    - blob addresses are never reused
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from teamvault.db.lookups import (
    find_personal_roots,
    find_team_root,
    load_file,
    load_folder,
    load_team,
    load_user,
    load_version,
)
from teamvault.db.models import FileEntity, FileVersion, ShareLink
from teamvault.db.session import session_scope
from teamvault.documents.folders import folder_path, iter_subtree, resolve_destination
from teamvault.documents.keys import ItemKind, parse_item_keys
from teamvault.documents.models import FileDownload, FileInfo, SearchResult, VersionInfo
from teamvault.documents.signatures import SignatureStore
from teamvault.engine.errors import InvalidStateError, IOFailure, NotFoundError, ValidationError
from teamvault.engine.locks import LockRegistry, file_key, folder_key, team_key
from teamvault.engine.logging import AuditTrail, log_file_event
from teamvault.security.permissions import Capability, PermissionEvaluator
from teamvault.storage.blobs import ORIGINALS, VERSIONS, BlobStore

logger = logging.getLogger("teamvault.documents.service")

Content = Union[bytes, str]


def _as_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def resolve_active_version(file: FileEntity) -> Optional[FileVersion]:
    """The active version, else the earliest version, else None."""
    if file.active_version is not None:
        return file.active_version
    if file.versions:
        return min(file.versions, key=lambda v: v.version_id)
    return None


class FileService:
    """File and version operations."""

    def __init__(
        self,
        db_session_factory: sessionmaker,
        blobs: BlobStore,
        evaluator: PermissionEvaluator,
        signatures: SignatureStore,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self._db_session_factory = db_session_factory
        self._blobs = blobs
        self._evaluator = evaluator
        self._signatures = signatures
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()

    def release_blobs(self, addresses: Iterable[str]) -> int:
        """
        Delete blobs no committed row points at: those of a committed purge,
        or those written by a transaction that rolled back.  A blob that
        cannot be removed stays behind as an orphan; the failure is logged
        and the remaining addresses are still tried.

        Returns:
            Number of blobs removed.
        """
        removed = 0
        for address in dict.fromkeys(addresses):
            try:
                if self._blobs.delete(address):
                    removed += 1
            except IOFailure as e:
                logger.error(f"Could not remove orphaned blob {address}: {e}")
        return removed

    # -------------------------------------------------------------------
    # Upload / new version
    # -------------------------------------------------------------------

    def upload_file(
        self,
        username: str,
        filename: str,
        content: Content,
        folder_id: Optional[int] = None,
        team_id: Optional[int] = None,
    ) -> FileInfo:
        """
        Store a new file with its initial version.

        Raises:
            ValidationError: no/ambiguous destination or empty name.
            AuthorizationError: no EDIT on the destination.
            IOFailure: the blob could not be written.
        """
        filename = (filename or "").strip()
        if not filename:
            raise ValidationError("File name is required", field="filename")
        data = _as_bytes(content)

        keys = []
        if folder_id is not None:
            keys.append(folder_key(folder_id))
        if team_id is not None:
            keys.append(team_key(team_id))

        written: List[str] = []
        try:
            with self._locks.hold(keys):
                with session_scope(self._db_session_factory) as session:
                    user = load_user(session, username)
                    folder = resolve_destination(session, folder_id, team_id)
                    self._evaluator.require(user, folder, Capability.EDIT)

                    address = self._blobs.write(ORIGINALS, data)
                    written.append(address)
                    info = self._create_file(session, user, folder, filename, address, len(data))
        except Exception:
            self.release_blobs(written)
            raise

        logger.info(f"Uploaded file {info.id} '{filename}' ({info.size} bytes) to folder {info.folder_id}")
        self._audit.record(
            log_file_event("uploaded", info.id, username, folder_id=info.folder_id, size=info.size)
        )
        return info

    @staticmethod
    def _create_file(session: Session, owner, folder, name: str, address: str, size: int) -> FileInfo:
        file = FileEntity(
            owner=owner,
            folder=folder,
            original_name=name,
            stored_name=address,
            size=size,
        )
        session.add(file)
        session.flush()
        version = FileVersion(file=file, stored_path=address, editor=owner)
        session.add(version)
        session.flush()
        file.active_version = version
        session.flush()
        return FileInfo.model_validate(file)

    def save_new_version(self, file_id: int, username: str, content: Content) -> VersionInfo:
        """Append a version holding ``content`` and make it active."""
        data = _as_bytes(content)
        written: List[str] = []
        try:
            with self._locks.hold([file_key(file_id)]):
                with session_scope(self._db_session_factory) as session:
                    user = load_user(session, username)
                    file = load_file(session, file_id, lock=True)
                    self._evaluator.require(user, file, Capability.EDIT)
                    self._require_not_trashed(file)

                    address = self._blobs.write(VERSIONS, data)
                    written.append(address)

                    self._signatures.invalidate(session, file)
                    version = FileVersion(file=file, stored_path=address, editor=user)
                    session.add(version)
                    session.flush()
                    file.active_version = version
                    file.size = len(data)
                    session.flush()
                    info = VersionInfo(
                        version_id=version.version_id,
                        file_id=file.id,
                        editor=user.username,
                        created_at=version.created_at,
                        is_active=True,
                    )
        except Exception:
            self.release_blobs(written)
            raise

        logger.info(f"Saved version {info.version_id} of file {file_id}")
        self._audit.record(
            log_file_event("version_saved", file_id, username, version_id=info.version_id, size=len(data))
        )
        return info

    @staticmethod
    def _require_not_trashed(file: FileEntity) -> None:
        if file.is_deleted:
            raise InvalidStateError(f"File {file.id} is in the trash", object_ref=f"file:{file.id}")

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    def _read_resolved(self, file: FileEntity) -> bytes:
        version = resolve_active_version(file)
        if version is None:
            return b""
        return self._blobs.read(version.stored_path)

    def get_active_content(self, file_id: int, username: str) -> str:
        """
        Text of the active version.  Falls back to the earliest version when
        no pointer is set, and to ``""`` when the file has no versions.

        Binary content is never altered to fit: use ``read_active_bytes``.

        Raises:
            InvalidStateError: the content is not valid UTF-8.
        """
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            file = load_file(session, file_id)
            self._evaluator.require(user, file, Capability.READ)
            data = self._read_resolved(file)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidStateError(
                f"File {file_id} is not UTF-8 text; read it as bytes instead",
                object_ref=f"file:{file_id}",
            ) from e

    def read_active_bytes(self, file_id: int, username: str) -> FileDownload:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            file = load_file(session, file_id)
            self._evaluator.require(user, file, Capability.READ)
            return FileDownload(file_id=file.id, name=file.original_name, content=self._read_resolved(file))

    def get_file(self, file_id: int, username: str) -> FileInfo:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            file = load_file(session, file_id)
            self._evaluator.require(user, file, Capability.READ)
            return FileInfo.model_validate(file)

    # -------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------

    def restore_version(self, file_id: int, version_id: int, username: str) -> FileInfo:
        """
        Point the file at an existing version.  No version row is added and
        signatures are dropped only if the pointer actually moves.
        """
        with self._locks.hold([file_key(file_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                file = load_file(session, file_id, lock=True)
                self._evaluator.require(user, file, Capability.EDIT)
                self._require_not_trashed(file)

                version = load_version(session, version_id)
                if version.file_id != file.id:
                    raise NotFoundError(
                        f"Version {version_id} does not belong to file {file_id}",
                        object_ref=f"file:{file_id}",
                        version_id=version_id,
                    )

                size = self._blobs.size(version.stored_path)
                changed = file.active_version_id != version.version_id
                if changed:
                    self._signatures.invalidate(session, file)
                    file.active_version = version
                file.size = size
                session.flush()
                info = FileInfo.model_validate(file)

        if changed:
            logger.info(f"Restored file {file_id} to version {version_id}")
            self._audit.record(log_file_event("version_restored", file_id, username, version_id=version_id))
        return info

    def get_version_history(self, file_id: int, username: str) -> List[VersionInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            file = load_file(session, file_id)
            self._evaluator.require(user, file, Capability.READ)
            signed = self._signatures.by_version(session, file)
            return [
                VersionInfo(
                    version_id=v.version_id,
                    file_id=file.id,
                    editor=v.editor.username,
                    created_at=v.created_at,
                    is_active=v.version_id == file.active_version_id,
                    signatures=signed.get(v.version_id, []),
                )
                for v in sorted(file.versions, key=lambda v: v.version_id)
            ]

    # -------------------------------------------------------------------
    # Rename / copy
    # -------------------------------------------------------------------

    def rename_file(self, file_id: int, username: str, new_name: str) -> FileInfo:
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValidationError("File name is required", field="new_name")

        with self._locks.hold([file_key(file_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                file = load_file(session, file_id, lock=True)
                self._evaluator.require(user, file, Capability.EDIT)
                old_name = file.original_name
                file.original_name = new_name
                session.flush()
                info = FileInfo.model_validate(file)

        self._audit.record(log_file_event("renamed", file_id, username, old_name=old_name, new_name=new_name))
        return info

    def copy_items(self, username: str, item_keys: List[str], destination_folder_id: int) -> List[FileInfo]:
        """
        Copy files into ``destination_folder_id``.  Each copy belongs to the
        caller and starts with one version holding the source's active
        content.  Folder copy is not supported.
        """
        keys = parse_item_keys(item_keys)
        for key in keys:
            if key.kind is ItemKind.FOLDER:
                raise ValidationError(
                    f"Folder copy is not supported ({key})",
                    object_ref=f"folder:{key.id}",
                    field="item_keys",
                )

        written: List[str] = []
        copies: List[FileInfo] = []
        try:
            with self._locks.hold([folder_key(destination_folder_id)] + [file_key(k.id) for k in keys]):
                with session_scope(self._db_session_factory) as session:
                    user = load_user(session, username)
                    destination = load_folder(session, destination_folder_id, lock=True)
                    self._evaluator.require(user, destination, Capability.EDIT)

                    for key in keys:
                        source = load_file(session, key.id)
                        self._evaluator.require(user, source, Capability.READ)
                        data = self._read_resolved(source)
                        address = self._blobs.write(ORIGINALS, data)
                        written.append(address)
                        copies.append(
                            self._create_file(session, user, destination, source.original_name, address, len(data))
                        )
        except Exception:
            self.release_blobs(written)
            raise

        for info in copies:
            self._audit.record(log_file_event("copied", info.id, username, folder_id=destination_folder_id))
        return copies

    # -------------------------------------------------------------------
    # Trash
    # -------------------------------------------------------------------

    def move_file_to_trash(self, file_id: int, username: str) -> FileInfo:
        with self._locks.hold([file_key(file_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                file = load_file(session, file_id, lock=True)
                self._evaluator.require(user, file, Capability.DELETE)
                self._require_not_trashed(file)
                file.move_to_trash(user.id)
                session.flush()
                info = FileInfo.model_validate(file)

        self._audit.record(log_file_event("trashed", file_id, username))
        return info

    def restore_file_from_trash(self, file_id: int, username: str) -> FileInfo:
        with self._locks.hold([file_key(file_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                file = load_file(session, file_id, lock=True)
                self._evaluator.require(user, file, Capability.RESTORE)
                if not file.is_deleted:
                    raise InvalidStateError(f"File {file_id} is not in the trash", object_ref=f"file:{file_id}")
                file.restore_from_trash()
                session.flush()
                info = FileInfo.model_validate(file)

        self._audit.record(log_file_event("restored_from_trash", file_id, username))
        return info

    def list_trash(self, username: str) -> List[FileInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            rows = (
                session.query(FileEntity)
                .filter(FileEntity.owner_id == user.id, FileEntity.is_deleted.is_(True))
                .order_by(FileEntity.deleted_at, FileEntity.id)
                .all()
            )
            return [FileInfo.model_validate(f) for f in rows]

    def delete_file_permanently(self, file_id: int, username: str) -> None:
        """Remove a file, its versions and all of their blobs."""
        with self._locks.hold([file_key(file_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                file = load_file(session, file_id, lock=True)
                self._evaluator.require(user, file, Capability.FILE_PURGE)
                addresses = self.purge(session, file)
        removed = self.release_blobs(addresses)

        logger.info(f"Permanently deleted file {file_id} ({removed} blob(s))")
        self._audit.record(log_file_event("purged", file_id, username, blobs_removed=removed))

    def purge(self, session: Session, file: FileEntity) -> List[str]:
        """
        Delete ``file``'s rows inside the caller's transaction: share links,
        signatures, versions and the file row.

        Blobs are left in place.  The caller hands the returned addresses to
        ``release_blobs`` once the transaction has committed.

        Returns:
            Blob addresses the file referenced.
        """
        addresses = [v.stored_path for v in file.versions] + [file.stored_name]

        session.query(ShareLink).filter(ShareLink.file_id == file.id).delete(synchronize_session="fetch")
        self._signatures.invalidate(session, file)
        file.active_version = None
        session.flush()
        session.delete(file)
        session.flush()

        return addresses

    # -------------------------------------------------------------------
    # Share links
    # -------------------------------------------------------------------

    def create_share_link(self, file_id: int, username: str, expires_in_days: Optional[int] = None) -> str:
        """Create a public link token for a file the caller can read."""
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            file = load_file(session, file_id)
            self._evaluator.require(user, file, Capability.READ)
            self._require_not_trashed(file)
            expires_at = None
            if expires_in_days is not None:
                expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)
            link = ShareLink(
                file_id=file.id,
                token=secrets.token_urlsafe(32),
                created_by=user.id,
                expires_at=expires_at,
            )
            session.add(link)
            session.flush()
            token = link.token

        self._audit.record(log_file_event("share_link_created", file_id, username))
        return token

    def open_share_link(self, token: str) -> FileDownload:
        """Download through a share link, no user required."""
        with session_scope(self._db_session_factory) as session:
            link = session.query(ShareLink).filter_by(token=token).first()
            if link is None:
                raise NotFoundError("Share link not found", object_ref="share_link")
            if link.expires_at is not None:
                expires_at = link.expires_at
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=timezone.utc)
                if expires_at < datetime.now(timezone.utc):
                    raise InvalidStateError("Share link has expired", object_ref=f"file:{link.file_id}")
            file = load_file(session, link.file_id)
            if file.is_deleted:
                raise NotFoundError("Share link not found", object_ref=f"file:{file.id}")
            return FileDownload(file_id=file.id, name=file.original_name, content=self._read_resolved(file))

    # -------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------

    def search_files(self, username: str, query: str, team_id: Optional[int] = None) -> List[SearchResult]:
        """
        Case-insensitive name search over the caller's personal tree or a
        team tree.  Trashed files are skipped.
        """
        needle = (query or "").lower()
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            if team_id is not None:
                team = load_team(session, team_id)
                self._evaluator.require(user, team, Capability.READ)
                root = find_team_root(session, team)
                roots = [root] if root is not None else []
            else:
                roots = find_personal_roots(session, user)

            results: List[SearchResult] = []
            for root in roots:
                for folder in iter_subtree(root):
                    path = folder_path(folder)
                    for file in folder.files:
                        if file.is_deleted or needle not in file.original_name.lower():
                            continue
                        results.append(
                            SearchResult(
                                id=file.id,
                                name=file.original_name,
                                path=path,
                                folder_id=folder.id,
                                size=file.size,
                                owner=file.owner.username,
                            )
                        )
            return results
