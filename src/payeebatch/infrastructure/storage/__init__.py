"""Blob storage and local cache adapters."""

from payeebatch.infrastructure.storage.file_local_cache import FileLocalCache
from payeebatch.infrastructure.storage.filesystem_blob_store import FilesystemBlobStore

__all__ = ["FileLocalCache", "FilesystemBlobStore"]
