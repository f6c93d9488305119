"""
TeamVault Signatures — users sign a file's active version.

A signature vouches for specific content, so every operation that changes
which content is active (new version, restore to another version) calls
``invalidate`` inside its own transaction.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from teamvault.db.lookups import load_file, load_user
from teamvault.db.models import FileEntity, Signature
from teamvault.db.session import session_scope
from teamvault.documents.models import SignatureInfo
from teamvault.engine.errors import InvalidStateError, NotFoundError
from teamvault.engine.locks import LockRegistry, file_key
from teamvault.engine.logging import AuditTrail, log_file_event
from teamvault.security.permissions import Capability, PermissionEvaluator

logger = logging.getLogger("teamvault.documents.signatures")


def _info(signature: Signature) -> SignatureInfo:
    return SignatureInfo(
        id=signature.id,
        file_id=signature.file_id,
        version_id=signature.version_id,
        signer=signature.signer.username,
        signed_at=signature.signed_at,
    )


class SignatureStore:
    def __init__(
        self,
        db_session_factory: sessionmaker,
        evaluator: PermissionEvaluator,
        locks: Optional[LockRegistry] = None,
        audit: Optional[AuditTrail] = None,
    ):
        self._db_session_factory = db_session_factory
        self._evaluator = evaluator
        self._locks = locks or LockRegistry()
        self._audit = audit or AuditTrail()

    def invalidate(self, session: Session, file: FileEntity) -> int:
        """Delete every signature on ``file``; returns how many were removed."""
        removed = (
            session.query(Signature)
            .filter(Signature.file_id == file.id)
            .delete(synchronize_session="fetch")
        )
        if removed:
            logger.info(f"Invalidated {removed} signature(s) on file {file.id}")
        return removed

    def by_version(self, session: Session, file: FileEntity) -> Dict[int, List[SignatureInfo]]:
        grouped: Dict[int, List[SignatureInfo]] = defaultdict(list)
        rows = (
            session.query(Signature)
            .filter(Signature.file_id == file.id)
            .order_by(Signature.signed_at, Signature.id)
            .all()
        )
        for row in rows:
            grouped[row.version_id].append(_info(row))
        return grouped

    def sign_active_version(self, file_id: int, username: str) -> SignatureInfo:
        """
        Sign the file's active version.  Signing twice returns the existing
        signature.

        Raises:
            InvalidStateError: the file is trashed or has no active version.
        """
        with self._locks.hold([file_key(file_id)]):
            with session_scope(self._db_session_factory) as session:
                user = load_user(session, username)
                file = load_file(session, file_id, lock=True)
                self._evaluator.require(user, file, Capability.READ)
                if file.is_deleted:
                    raise InvalidStateError(f"File {file_id} is in the trash", object_ref=f"file:{file_id}")
                if file.active_version_id is None:
                    raise InvalidStateError(
                        f"File {file_id} has no active version to sign",
                        object_ref=f"file:{file_id}",
                    )

                existing = (
                    session.query(Signature)
                    .filter_by(version_id=file.active_version_id, signer_id=user.id)
                    .first()
                )
                if existing is not None:
                    return _info(existing)

                signature = Signature(file_id=file.id, version_id=file.active_version_id, signer=user)
                session.add(signature)
                session.flush()
                info = _info(signature)

        self._audit.record(log_file_event("signed", file_id, username, version_id=info.version_id))
        return info

    def list_signatures(self, file_id: int, username: str) -> List[SignatureInfo]:
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            file = load_file(session, file_id)
            self._evaluator.require(user, file, Capability.READ)
            rows = (
                session.query(Signature)
                .filter(Signature.file_id == file.id)
                .order_by(Signature.signed_at, Signature.id)
                .all()
            )
            return [_info(r) for r in rows]

    def revoke(self, signature_id: int, username: str) -> None:
        """Withdraw one's own signature."""
        with session_scope(self._db_session_factory) as session:
            user = load_user(session, username)
            signature = session.get(Signature, signature_id)
            if signature is None or signature.signer_id != user.id:
                raise NotFoundError(
                    f"Signature {signature_id} not found for '{username}'",
                    object_ref=f"signature:{signature_id}",
                )
            file_id = signature.file_id
            session.delete(signature)
        self._audit.record(log_file_event("signature_revoked", file_id, username))
