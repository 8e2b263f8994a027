import logging
from typing import List, Optional

from chatstore.database.store import join_path
from chatstore.errors import FetchFailed, MalformedRecord, StoreTimeout, WriteFailed
from chatstore.repositories.base import BaseRepository, upsert_by_id
from chatstore.schemas.user import DirectoryEntry, UserRecord
from chatstore.services.identity_service import safe_email


logger = logging.getLogger(__name__)

USERS_PATH = "users"


def profile_path(uid: str) -> str:
    return join_path(uid)


class UserRepository(BaseRepository):

    async def user_exists(self, uid: str) -> bool:
        value = await self._get(profile_path(uid))
        return isinstance(value, dict)

    async def get_profile(self, uid: str) -> Optional[UserRecord]:
        value = await self._get(profile_path(uid))
        if value is None:
            return None
        try:
            return UserRecord.from_document(uid, value)
        except MalformedRecord as exc:
            logger.debug("Ignoring malformed profile %s: %s", uid, exc)
            return None

    async def register_user(self, user: UserRecord) -> bool:
        """
        Store the profile, then add the user to the shared directory.

        The two writes are independent: if the profile write fails nothing
        else is touched, if the directory write fails the profile stays.
        """
        try:
            await self._update(profile_path(user.uid), dict(user.to_document()))
        except (WriteFailed, FetchFailed, StoreTimeout) as exc:
            logger.warning("Failed to write profile for %s: %s", user.uid, exc)
            return False

        entry = user.to_directory_entry().to_document()
        try:
            await self._modify_list(USERS_PATH, lambda items: upsert_by_id(items, dict(entry), key="uid"))
        except (WriteFailed, FetchFailed, StoreTimeout) as exc:
            logger.warning("Profile %s stored but directory update failed: %s", user.uid, exc)
            return False

        logger.info("Registered user %s", user.uid)
        return True

    async def list_all_users(self) -> List[DirectoryEntry]:
        value = await self._get(USERS_PATH)
        return self._decode_list(USERS_PATH, value, DirectoryEntry.from_document)

    async def find_user_by_email(self, email: str) -> Optional[DirectoryEntry]:
        wanted = safe_email(email.strip().lower())
        for entry in await self.list_all_users():
            if safe_email(entry.email.lower()) == wanted:
                return entry
        return None
