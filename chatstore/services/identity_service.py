import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from chatstore.schemas.user import Identity, Principal

if TYPE_CHECKING:
    from chatstore.repositories.user_repository import UserRepository


logger = logging.getLogger(__name__)

_RESERVED_EMAIL_CHARACTERS = (".", "@")


def safe_email(email: str) -> str:
    """Turn an e-mail address into a token usable as a store path segment."""

    for character in _RESERVED_EMAIL_CHARACTERS:
        email = email.replace(character, "-")
    return email


class IdentityProvider(ABC):

    @abstractmethod
    def current_principal(self) -> Optional[Principal]:
        pass


class StaticIdentityProvider(IdentityProvider):
    """Holds whoever the host application signed in."""

    def __init__(self, principal: Optional[Principal] = None) -> None:
        self._principal = principal

    def sign_in(self, principal: Principal) -> None:
        self._principal = principal

    def sign_out(self) -> None:
        self._principal = None

    def current_principal(self) -> Optional[Principal]:
        return self._principal


class IdentityService:

    def __init__(self, provider: IdentityProvider, user_repo: "UserRepository") -> None:
        self._provider = provider
        self._user_repo = user_repo

    async def current_identity(self) -> Optional[Identity]:
        """
        Resolve the signed-in user, or None when there is nobody to act as.

        The display name comes from the provider when it has one, otherwise
        from the stored profile.
        """
        principal = self._provider.current_principal()
        if principal is None:
            return None

        display_name = principal.display_name
        if not display_name:
            profile = await self._user_repo.get_profile(principal.uid)
            if profile is None:
                logger.debug("No display name resolvable for %s", principal.uid)
                return None
            display_name = profile.name

        return Identity(uid=principal.uid, email=principal.email, display_name=display_name)
