"""Upload session: one photo in, one or more assistant replies out.

State machine::

    IDLE -> SENDING -> RECONCILING -> DONE
               |                      ^
               +------> FAILED -------+

The user entry and a "Typing..." placeholder are appended before the request
is sent. The reply then overwrites that placeholder in place and any extra
segments are appended after it. Every path that reached SENDING ends with the
placeholder resolved, the file released and the composing indicator lowered.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

import structlog

from poolsnap.api.analysis_client import DECLINE_MARKER, AnalysisClient, EmptyReplyError
from poolsnap.core.images import SelectedImage
from poolsnap.core.message_store import (
    PLACEHOLDER_TEXT,
    ConversationEntry,
    EntryNotFoundError,
    Role,
)
from poolsnap.core.reply_decoder import decode
from poolsnap.session.context import SessionContext
from poolsnap.session.identity import IdentityError, IdentityUnavailableError

logger = structlog.get_logger(__name__)

USER_IMAGE_TEXT = "Image sent"
CONFUSED_PREFIX = "[THINKING]"
FAILED_PREFIX = "[ERROR]"


class UploadState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    RECONCILING = "reconciling"
    FAILED = "failed"
    DONE = "done"


@dataclass
class UploadResult:
    """Outcome of ``UploadSession.send``.

    Attributes:
        status: "ok", "failed", "skipped" (no file) or "busy" (already sending).
        segments: Decoded reply segments on success.
        error: User-facing error text on failure.
    """
    status: Literal["ok", "failed", "skipped", "busy"]
    segments: list[str] = field(default_factory=list)
    error: str | None = None


def describe_failure(message: str) -> str:
    """User-facing text for a failed exchange."""
    if DECLINE_MARKER in message:
        return f"{CONFUSED_PREFIX} {message}"
    return f"{FAILED_PREFIX} {message}. Please try again."


class UploadSession:
    """Drives one photo exchange against a shared ``SessionContext``."""

    def __init__(self, context: SessionContext, client: AnalysisClient, file: SelectedImage | None):
        self.context = context
        self.client = client
        self.file = file
        self.placeholder_id: str | None = None
        self.in_flight = False
        self.state = UploadState.IDLE

    async def _resolve_identity(self) -> tuple[str, str]:
        try:
            token = await self.context.identity.get_token()
        except IdentityError as e:
            logger.error("upload.token_failed", error=str(e))
            token = None
        if not token:
            raise IdentityUnavailableError("ID token not available for image upload")

        sub = self.context.identity.subject()
        if not sub:
            raise IdentityUnavailableError("User sub not available for image upload")
        return sub, token

    async def send(self) -> UploadResult:
        """Run the exchange to completion.

        Transport and content failures are turned into an error entry in the
        conversation and reported as ``status="failed"``; they never raise.

        Raises:
            IdentityUnavailableError: If no subject or token could be obtained.
                Nothing has been added to the store in that case and the file
                is kept for a retry.
        """
        if self.file is None:
            return UploadResult(status="skipped")
        if self.in_flight:
            logger.warning("upload.already_in_flight", placeholder_id=self.placeholder_id)
            return UploadResult(status="busy")

        file = self.file
        store = self.context.store

        self.in_flight = True
        try:
            sub, token = await self._resolve_identity()
            image_ref = self.context.allocator.allocate(file)
        except BaseException:
            self.in_flight = False
            raise

        user_entry = store.append(ConversationEntry(
            role=Role.USER,
            text=USER_IMAGE_TEXT,
            image_ref=image_ref,
        ))
        placeholder = store.append(ConversationEntry(role=Role.ASSISTANT, text=PLACEHOLDER_TEXT))
        self.placeholder_id = placeholder.id
        self.context.begin_composing(placeholder.id)
        self.state = UploadState.SENDING
        logger.info("upload.dispatch", user_entry_id=user_entry.id, placeholder_id=placeholder.id)

        try:
            raw = await self.client.analyze(file, sub, token)
            if not raw or not raw.strip():
                raise EmptyReplyError("AI did not respond")

            segments = decode(raw)
            self.state = UploadState.RECONCILING
            self._reconcile(segments)
            logger.info("upload.complete", placeholder_id=placeholder.id, segments=len(segments))
            return UploadResult(status="ok", segments=segments)

        except Exception as e:
            self.state = UploadState.FAILED
            logger.error("upload.failed", placeholder_id=placeholder.id,
                         error_type=type(e).__name__, error=str(e))
            error_text = describe_failure(str(e))
            self._fail(error_text)
            return UploadResult(status="failed", error=error_text)

        finally:
            self.file = None
            self.in_flight = False
            self.context.end_composing(placeholder.id)
            self.state = UploadState.DONE

    def _reconcile(self, segments: list[str]) -> None:
        """Put the first segment into the placeholder and append the rest."""
        store = self.context.store
        try:
            store.update_by_id(self.placeholder_id, lambda _: segments[0])
        except EntryNotFoundError:
            logger.error("upload.placeholder_missing", placeholder_id=self.placeholder_id,
                         phase="reconcile", dropped_segments=len(segments))
            return

        for segment in segments[1:]:
            store.append(ConversationEntry(role=Role.ASSISTANT, text=segment))

    def _fail(self, error_text: str) -> None:
        """Show the error where the placeholder was, or append it if the placeholder is gone."""
        store = self.context.store
        try:
            store.update_by_id(self.placeholder_id, lambda _: error_text)
        except EntryNotFoundError:
            logger.error("upload.placeholder_missing", placeholder_id=self.placeholder_id, phase="fail")
            store.append(ConversationEntry(role=Role.ASSISTANT, text=error_text))
