"""Per-user session context.

Holds everything that lives between sign-in and sign-out: the identity, the
conversation store, the image allocator, the synced profile and the
"assistant is composing" indicator. Created on identity resolution, torn down
on sign-out.
"""

import asyncio
from dataclasses import dataclass, field

import structlog

from poolsnap.api.account_client import AccountClient, AccountError
from poolsnap.api.schemas import PoolSettings, ProfileUpdate
from poolsnap.core.images import LocalImageAllocator
from poolsnap.core.message_store import ConversationStore
from poolsnap.session.identity import IdentityError, IdentityProvider, IdentityUnavailableError

logger = structlog.get_logger(__name__)

DEFAULT_NICKNAME = "User"
UNKNOWN_AGENT = "Unknown"


def format_name(name: str | None) -> str | None:
    """Capitalize the first letter of every space-separated word."""
    if name is None:
        return None
    return " ".join(w[:1].upper() + w[1:] for w in name.split(" "))


@dataclass
class SessionContext:
    """State shared by every upload session of one signed-in user.

    Attributes:
        identity: Source of subject id and bearer tokens.
        store: Conversation log rendered by the UI.
        allocator: Creates local copies of uploaded photos.
        nickname: Display name after sync, None before.
        agent_id: Assistant id assigned by the backend, None before sync.
        pool_settings: Pool settings stored server-side, if any.
        synced: Whether ``initialize`` has completed.
    """
    identity: IdentityProvider
    store: ConversationStore = field(default_factory=ConversationStore)
    allocator: LocalImageAllocator = field(default_factory=LocalImageAllocator)
    nickname: str | None = None
    agent_id: str | None = None
    pool_settings: PoolSettings | None = None
    synced: bool = False
    _composing: set[str] = field(default_factory=set, repr=False)

    @property
    def composing(self) -> bool:
        """True while at least one upload session awaits its reply."""
        return bool(self._composing)

    def begin_composing(self, placeholder_id: str) -> None:
        self._composing.add(placeholder_id)

    def end_composing(self, placeholder_id: str) -> None:
        self._composing.discard(placeholder_id)

    async def initialize(self, account: AccountClient) -> None:
        """Sync the signed-in user with the backend.

        A missing token is tolerated; a failed sync falls back to the
        identity's display name so the app stays usable.

        Raises:
            IdentityUnavailableError: If no subject id is available yet.
        """
        sub = self._require_subject()

        token = None
        try:
            token = await self.identity.get_token()
        except IdentityError as e:
            logger.warning("context.token_not_ready", error=str(e))

        try:
            # requests is blocking; keep the event loop free for in-flight uploads
            profile = await asyncio.to_thread(account.sync_user, sub, token)
        except AccountError as e:
            logger.error("context.sync_failed", error=str(e))
            self.nickname = self.identity.display_name() or DEFAULT_NICKNAME
            self.agent_id = None
            self.synced = True
            return

        self.nickname = format_name(profile.nickname or self.identity.display_name() or DEFAULT_NICKNAME)
        self.agent_id = profile.agent_id or UNKNOWN_AGENT
        self.pool_settings = profile.initial_pool_settings()
        self.synced = True
        logger.info("context.synced", has_pool_settings=self.pool_settings is not None)

    def _require_subject(self) -> str:
        sub = self.identity.subject()
        if not sub:
            raise IdentityUnavailableError("User sub not available")
        return sub

    async def save_pool_settings(self, account: AccountClient, settings: PoolSettings) -> None:
        """Persist pool settings and make them the current ones.

        Raises:
            IdentityUnavailableError: If no subject id is available.
            AccountError: If the webhook call fails. Current settings are kept.
        """
        sub = self._require_subject()
        await asyncio.to_thread(account.update_pool, sub, settings)
        self.pool_settings = settings
        logger.info("context.pool_saved", pool_type=settings.pool_type)

    async def save_profile(self, account: AccountClient, update: ProfileUpdate) -> None:
        """Persist a nickname change and show it immediately."""
        sub = self._require_subject()
        await asyncio.to_thread(account.update_profile, sub, update)
        self.nickname = update.nickname
        logger.info("context.profile_saved")

    def teardown(self) -> None:
        """Sign-out boundary: drop the conversation and forget the profile."""
        self.store.clear()
        self._composing.clear()
        self.nickname = None
        self.agent_id = None
        self.pool_settings = None
        self.synced = False
        logger.info("context.teardown")
