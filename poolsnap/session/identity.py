"""Identity provider contract.

Token acquisition lives outside this package; the session only needs a
subject id and, on demand, a bearer token. Either may be temporarily
unavailable.
"""

import os
from abc import ABC, abstractmethod


class IdentityError(Exception):
    """The provider could not produce a subject or token right now."""
    pass


class IdentityProvider(ABC):

    @abstractmethod
    def subject(self) -> str | None:
        """Stable opaque subject id, or None if not signed in."""

    def display_name(self) -> str | None:
        return None

    @abstractmethod
    async def get_token(self) -> str | None:
        """Raw ID token, or None. May raise IdentityError."""


class EnvIdentityProvider(IdentityProvider):
    """Reads identity from POOLSNAP_SUB / POOLSNAP_ID_TOKEN / POOLSNAP_USER_NAME."""

    def subject(self) -> str | None:
        return os.environ.get("POOLSNAP_SUB") or None

    def display_name(self) -> str | None:
        return os.environ.get("POOLSNAP_USER_NAME") or None

    async def get_token(self) -> str | None:
        return os.environ.get("POOLSNAP_ID_TOKEN") or None


class IdentityUnavailableError(IdentityError):
    """A session needed a subject or token and none could be obtained."""
    pass
