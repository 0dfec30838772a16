"""Unit tests for the in-memory conversation store."""

import pytest

from poolsnap.core.message_store import (
    PLACEHOLDER_TEXT,
    ConversationEntry,
    ConversationStore,
    EntryNotFoundError,
    Role,
)


@pytest.fixture
def photo_ref(allocator, pool_photo):
    return allocator.allocate(pool_photo)


class TestAppend:

    def test_keeps_insertion_order(self, store):
        a = store.append(ConversationEntry(role=Role.USER, text="a"))
        b = store.append(ConversationEntry(role=Role.ASSISTANT, text="b"))
        assert [e.id for e in store.snapshot()] == [a.id, b.id]

    def test_ids_are_unique(self, store):
        ids = {store.append(ConversationEntry(role=Role.USER, text=str(i))).id for i in range(50)}
        assert len(ids) == 50

    def test_reused_id_rejected(self, store):
        entry = store.append(ConversationEntry(role=Role.USER, text="a"))
        with pytest.raises(ValueError):
            store.append(ConversationEntry(role=Role.USER, text="b", id=entry.id))

    def test_id_not_reused_after_clear(self, store):
        entry = store.append(ConversationEntry(role=Role.USER, text="a"))
        store.clear()
        with pytest.raises(ValueError):
            store.append(ConversationEntry(role=Role.USER, text="again", id=entry.id))


class TestUpdateById:

    def test_replaces_only_text(self, store, photo_ref):
        first = store.append(ConversationEntry(role=Role.USER, text="Image sent", image_ref=photo_ref))
        store.append(ConversationEntry(role=Role.ASSISTANT, text="after"))

        updated = store.update_by_id(first.id, lambda old: old + "!")

        assert updated.id == first.id
        assert updated.role is Role.USER
        assert updated.image_ref is photo_ref
        assert store.snapshot()[0].text == "Image sent!"
        assert store.snapshot()[1].text == "after"

    def test_missing_id_raises(self, store):
        store.append(ConversationEntry(role=Role.USER, text="a"))
        with pytest.raises(EntryNotFoundError):
            store.update_by_id("nope", lambda _: "x")

    def test_missing_id_is_lookup_error(self):
        assert issubclass(EntryNotFoundError, LookupError)

    def test_snapshot_taken_before_update_is_unchanged(self, store):
        entry = store.append(ConversationEntry(role=Role.ASSISTANT, text=PLACEHOLDER_TEXT))
        before = store.snapshot()
        store.update_by_id(entry.id, lambda _: "done")
        assert before[0].text == PLACEHOLDER_TEXT
        assert store.snapshot()[0].text == "done"


class TestPending:

    def test_assistant_placeholder_is_pending(self):
        assert ConversationEntry(role=Role.ASSISTANT, text=PLACEHOLDER_TEXT).is_pending

    def test_user_entry_never_pending(self):
        assert not ConversationEntry(role=Role.USER, text=PLACEHOLDER_TEXT).is_pending


class TestReleaseImages:

    def test_clear_releases_each_image_once(self, store, allocator, pool_photo):
        refs = [allocator.allocate(pool_photo) for _ in range(3)]
        for ref in refs:
            store.append(ConversationEntry(role=Role.USER, text="Image sent", image_ref=ref))
        store.append(ConversationEntry(role=Role.ASSISTANT, text="reply"))

        store.clear()

        assert len(store) == 0
        assert all(ref.released for ref in refs)
        assert not any(ref.path.exists() for ref in refs)

    def test_second_clear_does_not_release_again(self, store, photo_ref, mocker):
        store.append(ConversationEntry(role=Role.USER, text="Image sent", image_ref=photo_ref))
        spy = mocker.spy(photo_ref, "release")
        store.clear()
        store.clear()
        assert spy.call_count == 1

    def test_discard_releases_single_image(self, store, photo_ref):
        entry = store.append(ConversationEntry(role=Role.USER, text="Image sent", image_ref=photo_ref))
        other = store.append(ConversationEntry(role=Role.ASSISTANT, text="reply"))

        store.discard(entry.id)

        assert photo_ref.released
        assert [e.id for e in store.snapshot()] == [other.id]

    def test_discard_missing_raises(self, store):
        with pytest.raises(EntryNotFoundError):
            store.discard("nope")


class TestReadHelpers:

    def test_find(self, store):
        entry = store.append(ConversationEntry(role=Role.USER, text="a"))
        assert store.find(entry.id) == entry
        assert store.find("missing") is None

    def test_snapshot_is_tuple(self, store):
        store.append(ConversationEntry(role=Role.USER, text="a"))
        assert isinstance(store.snapshot(), tuple)

    def test_iterates_in_order(self, store):
        store.append(ConversationEntry(role=Role.USER, text="a"))
        store.append(ConversationEntry(role=Role.ASSISTANT, text="b"))
        assert [e.text for e in store] == ["a", "b"]
