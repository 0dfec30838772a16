"""In-memory conversation log.

The store is the single owner of conversation truth: entries are appended in
order and only their text is ever changed afterwards.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Iterator
from uuid import uuid4

import structlog

from poolsnap.core.images import LocalImage

logger = structlog.get_logger(__name__)

PLACEHOLDER_TEXT = "Typing..."


class EntryNotFoundError(LookupError):
    """No entry with the requested id exists in the store."""
    pass


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def new_entry_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class ConversationEntry:
    """Single message in the conversation thread.

    Attributes:
        role: Author of the entry. Never changes.
        text: Display text, ``PLACEHOLDER_TEXT`` while a reply is pending.
        id: Client-generated identifier, unique for the store's lifetime.
        image_ref: Uploaded photo for user entries, None otherwise.
    """
    role: Role
    text: str
    id: str = field(default_factory=new_entry_id)
    image_ref: LocalImage | None = None

    @property
    def is_pending(self) -> bool:
        return self.role is Role.ASSISTANT and self.text == PLACEHOLDER_TEXT


class ConversationStore:
    """Ordered, append-only log with in-place text updates."""

    def __init__(self):
        self._entries: list[ConversationEntry] = []
        self._seen_ids: set[str] = set()

    def append(self, entry: ConversationEntry) -> ConversationEntry:
        """Add an entry at the end. The store now owns its image.

        Raises:
            ValueError: If the id was used before. Ids come from
                ``new_entry_id``, so this only guards against programming errors.
        """
        if entry.id in self._seen_ids:
            raise ValueError(f"Entry id {entry.id} was already used")
        self._seen_ids.add(entry.id)
        self._entries.append(entry)
        return entry

    def _index_of(self, entry_id: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        raise EntryNotFoundError(entry_id)

    def find(self, entry_id: str) -> ConversationEntry | None:
        try:
            return self._entries[self._index_of(entry_id)]
        except EntryNotFoundError:
            return None

    def update_by_id(self, entry_id: str, mutator: Callable[[str], str]) -> ConversationEntry:
        """Replace the text of one entry, keeping its id, role, image and position.

        Args:
            entry_id: Id of the entry to change.
            mutator: Receives the current text and returns the new text.

        Returns:
            The updated entry.

        Raises:
            EntryNotFoundError: If no entry has this id.
        """
        index = self._index_of(entry_id)
        current = self._entries[index]
        updated = replace(current, text=mutator(current.text))
        self._entries[index] = updated
        return updated

    def discard(self, entry_id: str) -> ConversationEntry:
        """Remove a single entry and release its image."""
        entry = self._entries.pop(self._index_of(entry_id))
        if entry.image_ref is not None:
            entry.image_ref.release()
        return entry

    def clear(self) -> None:
        """Drop every entry and release every image the store owns."""
        entries, self._entries = self._entries, []
        released = 0
        for entry in entries:
            if entry.image_ref is not None and entry.image_ref.release():
                released += 1
        logger.info("store.cleared", entries=len(entries), images_released=released)

    def snapshot(self) -> tuple[ConversationEntry, ...]:
        """Current entries in display order. Read-only."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ConversationEntry]:
        return iter(self.snapshot())
