"""
User Storage - Persistent storage for user accounts using StorageInterface.
"""

import asyncio
import json
import logging
from typing import Optional, Dict
from datetime import datetime, timezone
from .interface import StorageInterface

logger = logging.getLogger(__name__)

# Guards the read-modify-write of the username index
_index_lock = asyncio.Lock()


class UsernameTakenError(Exception):
    """Raised when registering a username that already exists."""


class UserStorage:
    """
    Manages persistent storage of user data.
    Uses JSON files for each user stored in data/users/ directory.
    """

    def __init__(self, storage: StorageInterface):
        """
        Initialize user storage.

        Args:
            storage: StorageInterface implementation (typically LocalStorage)
        """
        self.storage = storage
        self.users_dir = "users"
        self._username_index_path = f"{self.users_dir}/username_index.json"

    async def _load_username_index(self) -> Dict[str, str]:
        """Load username to user_id index mapping."""
        content = await self.storage.load(self._username_index_path)
        if content is None:
            return {}
        try:
            return json.loads(content.decode('utf-8'))
        except json.JSONDecodeError:
            logger.error("Username index is corrupted, treating as empty")
            return {}

    async def get_user(self, user_id: str) -> Optional[Dict]:
        """
        Get user by user_id.

        Args:
            user_id: User ID

        Returns:
            Optional[Dict]: User data or None if not found
        """
        content = await self.storage.load(f"{self.users_dir}/{user_id}.json")
        if content is None:
            return None

        try:
            user_data = json.loads(content.decode('utf-8'))
        except json.JSONDecodeError as e:
            logger.error(f"Error loading user {user_id}: {e}")
            return None

        # Convert datetime strings back to datetime objects
        for key in ('created_at', 'updated_at'):
            if key in user_data:
                user_data[key] = datetime.fromisoformat(user_data[key])
        return user_data

    async def get_user_by_username(self, username: str) -> Optional[Dict]:
        """Get user by username."""
        index = await self._load_username_index()
        user_id = index.get(username)
        if user_id is None:
            return None
        return await self.get_user(user_id)

    async def create_user(
        self,
        user_id: str,
        username: str,
        hashed_password: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> Dict:
        """
        Create a new user.

        Returns:
            Dict: Created user data

        Raises:
            UsernameTakenError: If the username is already registered
        """
        now = datetime.now(timezone.utc)
        user_data = {
            "user_id": user_id,
            "username": username,
            "email": email,
            "full_name": full_name,
            "hashed_password": hashed_password,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
            "is_active": True,
        }

        async with _index_lock:
            index = await self._load_username_index()
            if username in index:
                raise UsernameTakenError(username)

            content = json.dumps(user_data, indent=2, ensure_ascii=False)
            if not await self.storage.save(f"{self.users_dir}/{user_id}.json", content):
                raise IOError(f"Failed to save user {username}")

            index[username] = user_id
            await self.storage.save(self._username_index_path, json.dumps(index, indent=2))

        user_data['created_at'] = now
        user_data['updated_at'] = now
        return user_data
