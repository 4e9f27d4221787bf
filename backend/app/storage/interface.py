"""
Storage Interface - Abstract base class for all storage implementations.
Conversation and user documents are stored as whole JSON files, so every
implementation must make `save` an all-or-nothing replace.
"""

from abc import ABC, abstractmethod
from typing import Optional, List


class StorageInterface(ABC):
    """
    Abstract storage interface that defines the contract for all storage implementations.
    Future implementations can include S3Storage, a document database, etc.
    """

    @abstractmethod
    async def save(self, path: str, content: bytes | str) -> bool:
        """
        Atomically save content to the specified path.

        Readers observe either the previous content or the new content,
        never a partially written file.

        Args:
            path: Relative path (e.g., "conversations/<user_id>/<id>.json")
            content: Content to save (bytes or str)

        Returns:
            bool: True if save was successful, False otherwise
        """
        pass

    @abstractmethod
    async def load(self, path: str) -> Optional[bytes]:
        """
        Load content from the specified path.

        Args:
            path: Relative path to load from

        Returns:
            Optional[bytes]: File content as bytes, or None if file doesn't exist
        """
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if a file exists at the specified path."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Delete file at the specified path.

        Returns:
            bool: True if a file was removed, False if it did not exist or removal failed
        """
        pass

    @abstractmethod
    async def list(self, path: str, pattern: Optional[str] = None) -> List[str]:
        """
        List files in the specified directory.

        Args:
            path: Directory path to list
            pattern: Optional glob pattern to filter files (e.g., "*.json")

        Returns:
            List[str]: Sorted relative file paths
        """
        pass
