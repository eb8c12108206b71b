"""Remote hierarchical object storage (folders and files) behind one interface."""
from .base import FOLDER_MIME_TYPE, FolderNode, ObjectStorage, StoredFile
from .drive import DriveStorage
from .memory import InMemoryStorage

__all__ = [
    "FOLDER_MIME_TYPE",
    "FolderNode",
    "ObjectStorage",
    "StoredFile",
    "DriveStorage",
    "InMemoryStorage",
]
