"""Physical blob storage."""

from teamvault.storage.blobs import BlobStore

__all__ = ["BlobStore"]
