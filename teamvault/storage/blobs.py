"""
TeamVault Blob Store — Physical content storage with two namespaces.

Layout:
    {root}/{originals_dir}/{uuid}   original uploads (FileEntity.stored_name)
    {root}/{versions_dir}/{uuid}    subsequent versions

Addresses handed back to callers are opaque ``<namespace>/<uuid>`` strings.
User-supplied file names never reach the filesystem.  Blobs are immutable:
a write goes to a temporary file in the namespace directory and is moved
into place with ``os.replace`` so readers never observe a partial blob.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Dict, List

from teamvault.engine.errors import IOFailure

logger = logging.getLogger("teamvault.storage.blobs")

ORIGINALS = "originals"
VERSIONS = "versions"


class BlobStore:
    """Filesystem blob store keyed by opaque addresses."""

    def __init__(
        self,
        root: str,
        originals_dir: str = "originals",
        versions_dir: str = "versions",
    ):
        self._root = Path(root)
        self._namespaces: Dict[str, str] = {
            ORIGINALS: originals_dir,
            VERSIONS: versions_dir,
        }

    def ensure_directories(self) -> List[Path]:
        """Create the namespace directories (startup / ``teamvault init``)."""
        paths = []
        for directory in self._namespaces.values():
            path = self._root / directory
            path.mkdir(parents=True, exist_ok=True)
            paths.append(path)
        return paths

    # -------------------------------------------------------------------
    # Address handling
    # -------------------------------------------------------------------

    def _resolve(self, address: str) -> Path:
        namespace, sep, name = address.partition("/")
        if not sep or namespace not in self._namespaces or not name:
            raise IOFailure(f"Malformed blob address '{address}'", address=address)
        # Opaque names are generated here; anything else is rejected
        if name != os.path.basename(name) or name.startswith("."):
            raise IOFailure(f"Malformed blob address '{address}'", address=address)
        return self._root / self._namespaces[namespace] / name

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------

    def write(self, namespace: str, data: bytes) -> str:
        """
        Store ``data`` under a freshly generated name in ``namespace``.

        Returns:
            The blob address.

        Raises:
            IOFailure: the namespace is unknown or the write failed.
        """
        if namespace not in self._namespaces:
            raise IOFailure(f"Unknown blob namespace '{namespace}'", address=namespace)

        address = f"{namespace}/{uuid.uuid4().hex}"
        target = self._resolve(address)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise IOFailure(f"Could not write blob {address}: {e}", address=address) from e

        logger.info(
            f"Stored blob {address} ({len(data)} bytes, "
            f"sha256={hashlib.sha256(data).hexdigest()[:12]})"
        )
        return address

    def read(self, address: str) -> bytes:
        path = self._resolve(address)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise IOFailure(f"Blob {address} is missing", address=address) from e
        except OSError as e:
            raise IOFailure(f"Could not read blob {address}: {e}", address=address) from e

    def copy(self, address: str, namespace: str) -> str:
        """Copy an existing blob into a new blob in ``namespace``."""
        return self.write(namespace, self.read(address))

    def delete(self, address: str) -> bool:
        """
        Remove a blob. Deleting an already absent blob is not an error.

        Returns:
            True if a blob was removed, False if it was already gone.
        """
        path = self._resolve(address)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"Blob {address} already absent")
            return False
        except OSError as e:
            raise IOFailure(f"Could not delete blob {address}: {e}", address=address) from e
        logger.info(f"Deleted blob {address}")
        return True

    def size(self, address: str) -> int:
        path = self._resolve(address)
        try:
            return path.stat().st_size
        except FileNotFoundError as e:
            raise IOFailure(f"Blob {address} is missing", address=address) from e
        except OSError as e:
            raise IOFailure(f"Could not stat blob {address}: {e}", address=address) from e

    def exists(self, address: str) -> bool:
        return self._resolve(address).is_file()

    @property
    def root(self) -> Path:
        return self._root

    def __repr__(self) -> str:
        return f"<BlobStore root='{self._root}'>"
