"""
TeamVault Documents — folders, files, versions, signatures and trash.

Physical storage: {storage.root}/{originals|versions}/{uuid}
"""

from teamvault.documents.folders import FolderService
from teamvault.documents.lifecycle import TrashManager
from teamvault.documents.service import FileService
from teamvault.documents.signatures import SignatureStore

__all__ = [
    "FolderService",
    "FileService",
    "SignatureStore",
    "TrashManager",
]
