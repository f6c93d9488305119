"""
TeamVault Folder Tree Manager — create, move, rename, delete and list folders.

Folders form a forest: each user has one personal root (team_id NULL) and
each team has one root (team_id set, parent NULL).  Personal and team trees
never mix; a folder moved across scopes drags its whole subtree along with
the new team tag.

Folders have no trash: ``delete_folder_permanently`` removes the subtree,
every file inside it and their blobs.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session, sessionmaker

from teamvault.db.lookups import (
    find_personal_roots,
    find_team_root,
    load_file,
    load_folder,
    load_team,
    load_user,
)
from teamvault.db.models import FileEntity, Folder, Team, User
from teamvault.db.session import session_scope
from teamvault.documents.keys import ItemKind, file_item, folder_item, parse_item_keys
from teamvault.documents.models import (
    Breadcrumb,
    DashboardItem,
    FolderContents,
    FolderInfo,
    FolderNode,
)
from teamvault.engine.errors import NotFoundError, ValidationError
from teamvault.engine.locks import LockRegistry, file_key, folder_key, team_key
from teamvault.engine.logging import AuditTrail, log_folder_event
from teamvault.security.permissions import Capability, PermissionEvaluator

logger = logging.getLogger("teamvault.documents.folders")


# ---------------------------------------------------------------------------
# Tree helpers (used by the file store too)
# ---------------------------------------------------------------------------

def resolve_destination(
    session: Session,
    folder_id: Optional[int] = None,
    team_id: Optional[int] = None,
) -> Folder:
    """
    Pick the single folder a new folder or file goes into.

    With ``team_id``: the given parent (which must belong to that team) or
    the team root.  Without: the given personal parent.

    Raises:
        ValidationError: no destination given, or the parent is in the
            wrong scope.
        NotFoundError: team/folder/team root missing.
    """
    if team_id is not None:
        team = load_team(session, team_id)
        if folder_id is not None:
            parent = load_folder(session, folder_id, lock=True)
            if parent.team_id != team.id:
                raise ValidationError(
                    f"Folder {folder_id} does not belong to team {team_id}",
                    object_ref=f"folder:{folder_id}",
                    field="folder_id",
                )
            return parent
        root = find_team_root(session, team)
        if root is None:
            raise NotFoundError(f"Team {team_id} has no root folder", object_ref=f"team:{team_id}")
        return root

    if folder_id is not None:
        parent = load_folder(session, folder_id, lock=True)
        if parent.team_id is not None:
            raise ValidationError(
                f"Folder {folder_id} is not a personal folder",
                object_ref=f"folder:{folder_id}",
                field="folder_id",
            )
        return parent

    raise ValidationError("A parent folder or a team must be given", field="folder_id")


def iter_subtree(root: Folder) -> Iterator[Folder]:
    """Breadth-first walk of ``root`` and its descendants, each folder once."""
    visited = set()
    worklist = [root]
    while worklist:
        folder = worklist.pop(0)
        if folder.id in visited:
            continue
        visited.add(folder.id)
        yield folder
        worklist.extend(folder.children)


def ancestors(folder: Folder) -> List[Folder]:
    """``folder`` and its ancestors, innermost first, stopping on a cycle."""
    chain = []
    seen = set()
    current = folder
    while current is not None and current.id not in seen:
        seen.add(current.id)
        chain.append(current)
        current = current.parent
    return chain


def folder_path(folder: Folder) -> str:
    """``/<root>/<sub>/...`` path of a folder."""
    return "/" + "/".join(f.name for f in reversed(ancestors(folder)))


def folder_dashboard_item(folder: Folder) -> DashboardItem:
    return DashboardItem(
        key=folder_item(folder.id),
        id=folder.id,
        name=folder.name,
        type=ItemKind.FOLDER.value,
        owner=folder.owner.username if folder.owner else None,
        created_at=folder.created_at,
    )


def file_dashboard_item(file: FileEntity) -> DashboardItem:
    return DashboardItem(
        key=file_item(file.id),
        id=file.id,
        name=file.original_name,
        type=ItemKind.FILE.value,
        extension=file.extension,
        size=file.size,
        owner=file.owner.username if file.owner else None,
        created_at=file.created_at,
    )


class FolderService:
    """
    Folder operations.  ``file_store`` is the FileService whose purge path
    removes files (rows and blobs) during a folder delete.
    """

    def __init__(
        self,
        db_session_factory: sessionmaker,
        evaluator: PermissionEvaluator,
        file_store,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self._db_session_factory = db_session_factory
        self._evaluator = evaluator
        self._file_store = file_store
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()

    # -------------------------------------------------------------------
    # Roots
    # -------------------------------------------------------------------

    def create_root_folder(self, session: Session, user: User) -> Folder:
        """Create the personal root of ``user`` (idempotent)."""
        existing = find_personal_roots(session, user)
        if existing:
            return existing[0]
        root = Folder(name=user.username, owner=user, team_id=None, parent_id=None)
        session.add(root)
        session.flush()
        logger.info(f"Created personal root folder {root.id} for '{user.username}'")
        return root

    def create_team_root(self, session: Session, team: Team, owner: User) -> Folder:
        """Create the root folder of a new team inside the caller's transaction."""
        root = Folder(name=team.name, owner=owner, team=team, parent_id=None)
        session.add(root)
        session.flush()
        return root

    # -------------------------------------------------------------------
    # Create / rename / move
    # -------------------------------------------------------------------

    def create_folder(
        self,
        username: str,
        name: str,
        parent_id: Optional[int] = None,
        team_id: Optional[int] = None,
    ) -> FolderInfo:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name is required", field="name")

        keys = []
        if parent_id is not None:
            keys.append(folder_key(parent_id))
        if team_id is not None:
            keys.append(team_key(team_id))

        with self._locks.hold(keys):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                parent = resolve_destination(session, parent_id, team_id)
                self._evaluator.require(user, parent, Capability.EDIT)
                folder = Folder(name=name, owner=user, team_id=parent.team_id, parent=parent)
                session.add(folder)
                session.flush()
                info = FolderInfo.model_validate(folder)

        logger.info(f"Created folder {info.id} '{name}' under {info.parent_id}")
        self._audit.record(
            log_folder_event("created", info.id, username, parent_id=info.parent_id, team_id=info.team_id)
        )
        return info

    def rename_folder(self, folder_id: int, username: str, new_name: str) -> FolderInfo:
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValidationError("Folder name is required", field="new_name")

        with self._locks.hold([folder_key(folder_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                folder = load_folder(session, folder_id, lock=True)
                self._evaluator.require(user, folder, Capability.FOLDER_DELETE)
                old_name = folder.name
                folder.name = new_name
                session.flush()
                info = FolderInfo.model_validate(folder)

        self._audit.record(
            log_folder_event("renamed", folder_id, username, old_name=old_name, new_name=new_name)
        )
        return info

    def move_items(
        self,
        username: str,
        item_keys: List[str],
        destination_folder_id: int,
    ) -> int:
        """
        Move files and folders into ``destination_folder_id`` in one transaction.

        Only EDIT on the destination is required.  A folder cannot be moved
        into itself or into its own subtree, and roots cannot be moved.

        Returns:
            Number of items moved.
        """
        keys = parse_item_keys(item_keys)
        lock_keys = [folder_key(destination_folder_id)]
        for key in keys:
            lock_keys.append(folder_key(key.id) if key.kind is ItemKind.FOLDER else file_key(key.id))

        with self._locks.hold(lock_keys):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                destination = load_folder(session, destination_folder_id, lock=True)
                self._evaluator.require(user, destination, Capability.EDIT)

                for key in keys:
                    if key.kind is ItemKind.FOLDER:
                        self._move_folder(session, load_folder(session, key.id, lock=True), destination)
                    else:
                        load_file(session, key.id, lock=True).folder = destination
                session.flush()

        logger.info(f"Moved {len(keys)} item(s) into folder {destination_folder_id}")
        self._audit.record(
            log_folder_event(
                "items_moved",
                destination_folder_id,
                username,
                items=[str(k) for k in keys],
            )
        )
        return len(keys)

    @staticmethod
    def _move_folder(session: Session, folder: Folder, destination: Folder) -> None:
        if folder.id == destination.id:
            raise ValidationError(
                f"Folder {folder.id} cannot be moved into itself",
                object_ref=f"folder:{folder.id}",
                field="destination_folder_id",
            )
        if folder.parent_id is None:
            raise ValidationError(
                f"Root folder {folder.id} cannot be moved",
                object_ref=f"folder:{folder.id}",
            )
        if any(f.id == folder.id for f in ancestors(destination)):
            raise ValidationError(
                f"Folder {folder.id} cannot be moved into its own subtree",
                object_ref=f"folder:{folder.id}",
                field="destination_folder_id",
            )

        if folder.team_id != destination.team_id:
            for node in iter_subtree(folder):
                node.team_id = destination.team_id
        folder.parent = destination

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------

    def delete_folder_permanently(self, folder_id: int, username: str) -> int:
        """
        Remove a folder, its subtree and every file inside (rows and blobs).

        Root folders cannot be deleted; a team root goes away with its team.

        Returns:
            Number of folders removed.

        Raises:
            ValidationError: ``folder_id`` is a personal or team root.
        """
        with self._locks.hold([folder_key(folder_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                folder = load_folder(session, folder_id, lock=True)
                self._evaluator.require(user, folder, Capability.FOLDER_DELETE)
                if folder.parent_id is None:
                    raise ValidationError(
                        f"Root folder {folder.id} cannot be deleted",
                        object_ref=f"folder:{folder.id}",
                    )
                removed, addresses = self.purge_subtree(session, folder)
        blobs_removed = self.release_blobs(addresses)

        logger.info(f"Deleted folder {folder_id} and {removed - 1} descendant(s)")
        self._audit.record(
            log_folder_event(
                "deleted", folder_id, username, folders_removed=removed, blobs_removed=blobs_removed
            )
        )
        return removed

    def purge_subtree(self, session: Session, folder: Folder) -> Tuple[int, List[str]]:
        """
        Delete ``folder``'s subtree deepest-first inside the caller's
        transaction.  Blobs stay until ``release_blobs`` runs after commit.

        Returns:
            Number of folders removed and the blob addresses their files held.
        """
        subtree = list(iter_subtree(folder))
        addresses: List[str] = []
        for node in reversed(subtree):
            for file in list(node.files):
                addresses.extend(self._file_store.purge(session, file))
            # reload from the DB so the delete sees no stale child rows
            session.expire(node, ["children", "files"])
            session.delete(node)
            session.flush()
        return len(subtree), addresses

    def release_blobs(self, addresses: List[str]) -> int:
        return self._file_store.release_blobs(addresses)

    # -------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------

    def get_folder_tree(self, username: str, team_id: Optional[int] = None) -> List[FolderNode]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            if team_id is not None:
                team = load_team(session, team_id)
                self._evaluator.require(user, team, Capability.READ)
                root = find_team_root(session, team)
                roots = [root] if root is not None else []
            else:
                roots = find_personal_roots(session, user)
            return [self._build_tree(root) for root in roots]

    @staticmethod
    def _build_tree(root: Folder) -> FolderNode:
        nodes = {}
        top = None
        for folder in iter_subtree(root):
            node = FolderNode(id=folder.id, name=folder.name, team_id=folder.team_id)
            nodes[folder.id] = node
            if top is None:
                top = node
            else:
                nodes[folder.parent_id].children.append(node)
        return top

    def get_folder_contents(self, folder_id: int, username: str) -> FolderContents:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            folder = load_folder(session, folder_id)
            self._evaluator.require(user, folder, Capability.READ)
            return self._contents(folder)

    @staticmethod
    def _contents(folder: Folder) -> FolderContents:
        items = [folder_dashboard_item(child) for child in folder.children]
        items.extend(file_dashboard_item(f) for f in folder.files if not f.is_deleted)

        crumbs = [
            Breadcrumb(id=f.id, name=f.name)
            for f in reversed(ancestors(folder))
            if f.parent_id is not None or f.team_id is None
        ]
        if folder.team is not None:
            crumbs.insert(0, Breadcrumb(id=folder.team.id, name=folder.team.name, kind="team"))

        return FolderContents(
            folder_id=folder.id,
            folder_name=folder.name,
            team_id=folder.team_id,
            items=items,
            breadcrumbs=crumbs,
        )

    def get_team_root_contents(self, team_id: int, username: str) -> FolderContents:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            team = load_team(session, team_id)
            self._evaluator.require(user, team, Capability.READ)
            root = find_team_root(session, team)
            if root is None:
                return FolderContents(
                    folder_id=0,
                    folder_name=team.name,
                    team_id=team.id,
                    breadcrumbs=[Breadcrumb(id=team.id, name=team.name, kind="team")],
                )
            return self._contents(root)

    def get_root_items(self, username: str) -> List[DashboardItem]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            return [folder_dashboard_item(f) for f in find_personal_roots(session, user)]
