"""Tests for MessageService on an in-memory store."""
import asyncio

import pytest

from parley.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from parley.messages.service import MessageService
from parley.rooms.service import RoomService
from parley.store.schemas import MessageStatus, Room

from fakes import add_user


@pytest.fixture
def rooms(store):
    return RoomService(store)


@pytest.fixture
def messages(store, rooms):
    return MessageService(store, rooms, max_content_length=50, default_page_size=2, max_page_size=5)


@pytest.fixture
def alice(store):
    return add_user(store, "alice")


@pytest.fixture
def bob(store):
    return add_user(store, "bob")


@pytest.fixture
def general(store):
    return store.create_room(Room(name="general"))


class TestSend:
    @pytest.mark.asyncio
    async def test_send_and_list_round_trip(self, messages, alice, general):
        sent = await messages.send_message(alice.id, "general", "  hello  ")
        listed, meta = await messages.list_messages(general.id)
        assert len(listed) == 1
        assert listed[0].id == sent.id
        assert (listed[0].content, listed[0].sender_id, listed[0].room_id) == (
            "hello", alice.id, general.id,
        )
        assert listed[0].status == MessageStatus.SENT
        assert meta == {"page": 1, "page_size": 2, "total": 1}

    @pytest.mark.asyncio
    async def test_mentions_resolved_in_order_without_duplicates(self, messages, store, alice, bob, general):
        carol = add_user(store, "carol")
        msg = await messages.send_message(alice.id, general.id, "@carol hi @bob and @ghost, @carol")
        assert msg.mentions == [carol.id, bob.id]

    @pytest.mark.asyncio
    async def test_mention_scenario(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, "general", "hello @bob")
        assert msg.mentions == [bob.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", "x" * 51])
    async def test_invalid_content(self, messages, alice, general, content):
        with pytest.raises(ValidationError):
            await messages.send_message(alice.id, general.id, content)

    @pytest.mark.asyncio
    async def test_unknown_room(self, messages, alice):
        with pytest.raises(NotFoundError):
            await messages.send_message(alice.id, "nowhere", "hi")

    @pytest.mark.asyncio
    async def test_reply_sets_thread_root(self, messages, alice, bob, general):
        root = await messages.send_message(alice.id, general.id, "root")
        reply = await messages.send_message(bob.id, general.id, "reply", reply_to=root.id)
        nested = await messages.send_message(alice.id, general.id, "nested", reply_to=reply.id)
        assert reply.thread_id == root.id
        assert nested.reply_to == reply.id
        assert nested.thread_id == root.id

    @pytest.mark.asyncio
    async def test_reply_across_rooms_rejected(self, messages, store, alice, general):
        other = store.create_room(Room(name="other"))
        parent = await messages.send_message(alice.id, other.id, "elsewhere")
        with pytest.raises(ValidationError):
            await messages.send_message(alice.id, general.id, "reply", reply_to=parent.id)

    @pytest.mark.asyncio
    async def test_reply_to_missing_message(self, messages, alice, general):
        with pytest.raises(NotFoundError):
            await messages.send_message(alice.id, general.id, "reply", reply_to="missing")

    @pytest.mark.asyncio
    async def test_unknown_file_rejected(self, messages, alice, general):
        with pytest.raises(NotFoundError):
            await messages.send_message(alice.id, general.id, "see file", file_id="missing")


class TestTransitions:
    @pytest.mark.asyncio
    async def test_edit_by_sender_rescans_mentions(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        edited = await messages.edit_message(msg.id, alice.id, "hello @bob")
        assert edited.content == "hello @bob"
        assert edited.mentions == [bob.id]
        assert edited.edited_at is not None
        assert edited.status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_edit_by_other_user_leaves_message_unchanged(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        with pytest.raises(AuthorizationError):
            await messages.edit_message(msg.id, bob.id, "hacked")
        stored = await messages.get_message(msg.id)
        assert stored.content == "hello"
        assert stored.edited_at is None

    @pytest.mark.asyncio
    async def test_delete_by_other_user_rejected(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        with pytest.raises(AuthorizationError):
            await messages.delete_message(msg.id, bob.id)
        assert (await messages.get_message(msg.id)).deleted_at is None

    @pytest.mark.asyncio
    async def test_moderator_delete(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        deleted = await messages.delete_message(msg.id, bob.id, is_moderator=True)
        assert deleted.deleted_by == bob.id

    @pytest.mark.asyncio
    async def test_deleted_hidden_from_list_but_direct_lookup_works(self, messages, alice, general):
        msg = await messages.send_message(alice.id, general.id, "bye")
        await messages.delete_message(msg.id, alice.id)

        listed, meta = await messages.list_messages(general.id)
        assert listed == [] and meta["total"] == 0

        found = await messages.get_message(msg.id)
        assert found.deleted_at is not None

    @pytest.mark.asyncio
    async def test_edit_after_delete_is_not_found(self, messages, alice, general):
        msg = await messages.send_message(alice.id, general.id, "bye")
        await messages.delete_message(msg.id, alice.id)
        with pytest.raises(NotFoundError):
            await messages.edit_message(msg.id, alice.id, "again")
        with pytest.raises(NotFoundError):
            await messages.add_reaction(msg.id, alice.id, "👍")

    @pytest.mark.asyncio
    async def test_duplicate_reaction_yields_one_record(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        await messages.add_reaction(msg.id, bob.id, "👍")
        with pytest.raises(ConflictError):
            await messages.add_reaction(msg.id, bob.id, "👍")
        stored = await messages.get_message(msg.id)
        assert [(r.user_id, r.emoji) for r in stored.reactions] == [(bob.id, "👍")]

    @pytest.mark.asyncio
    async def test_invalid_emoji(self, messages, alice, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        with pytest.raises(ValidationError):
            await messages.add_reaction(msg.id, alice.id, "  ")

    @pytest.mark.asyncio
    async def test_remove_reaction(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        await messages.add_reaction(msg.id, bob.id, "👍")
        updated = await messages.remove_reaction(msg.id, bob.id, "👍")
        assert updated.reactions == []
        with pytest.raises(NotFoundError):
            await messages.remove_reaction(msg.id, bob.id, "👍")

    @pytest.mark.asyncio
    async def test_concurrent_reactions_are_all_kept(self, messages, store, alice, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        users = [add_user(store, f"user{i}") for i in range(5)]
        await asyncio.gather(*[messages.add_reaction(msg.id, u.id, "👍") for u in users])
        stored = await messages.get_message(msg.id)
        assert sorted(r.user_id for r in stored.reactions) == sorted(u.id for u in users)

    @pytest.mark.asyncio
    async def test_mark_read_is_idempotent(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        read, changed = await messages.mark_as_read(msg.id, bob.id)
        assert changed is True
        assert read.status == MessageStatus.READ
        again, changed = await messages.mark_as_read(msg.id, bob.id)
        assert changed is False
        assert len(again.read_by) == 1

    @pytest.mark.asyncio
    async def test_delivery_after_read_is_rejected(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        await messages.mark_as_read(msg.id, bob.id)
        with pytest.raises(InvalidTransitionError):
            await messages.mark_delivered(msg.id)
        assert (await messages.get_message(msg.id)).status == MessageStatus.READ

    @pytest.mark.asyncio
    async def test_delivery_then_read(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        delivered, changed = await messages.mark_delivered(msg.id)
        assert changed and delivered.status == MessageStatus.DELIVERED
        read, _ = await messages.mark_as_read(msg.id, bob.id)
        assert read.status == MessageStatus.READ

    @pytest.mark.asyncio
    async def test_pin_toggles_three_times(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "hello")
        flags = [(await messages.pin_message(msg.id, bob.id)).pinned for _ in range(3)]
        assert flags == [True, False, True]

    @pytest.mark.asyncio
    async def test_unknown_message(self, messages, alice):
        with pytest.raises(NotFoundError):
            await messages.get_message("missing")
        with pytest.raises(NotFoundError):
            await messages.pin_message("missing", alice.id)


class TestListing:
    @pytest.mark.asyncio
    async def test_pinned_first_then_newest(self, messages, alice, general):
        first = await messages.send_message(alice.id, general.id, "first")
        await messages.send_message(alice.id, general.id, "second")
        await messages.send_message(alice.id, general.id, "third")
        await messages.pin_message(first.id, alice.id)

        listed, meta = await messages.list_messages("general", page=1, page_size=5)
        assert [m.content for m in listed] == ["first", "third", "second"]
        assert meta["total"] == 3

    @pytest.mark.asyncio
    async def test_pages(self, messages, alice, general):
        for i in range(3):
            await messages.send_message(alice.id, general.id, f"m{i}")
        page2, meta = await messages.list_messages(general.id, page=2)
        assert [m.content for m in page2] == ["m0"]
        assert meta == {"page": 2, "page_size": 2, "total": 3}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page,page_size", [(0, 2), (1, 6), (1, 0), (-1, None)])
    async def test_bad_pagination(self, messages, general, page, page_size):
        with pytest.raises(ValidationError):
            await messages.list_messages(general.id, page=page, page_size=page_size)

    @pytest.mark.asyncio
    async def test_search(self, messages, alice, general):
        await messages.send_message(alice.id, general.id, "Deploy today")
        await messages.send_message(alice.id, general.id, "lunch?")
        gone = await messages.send_message(alice.id, general.id, "deploy failed")
        await messages.delete_message(gone.id, alice.id)

        found, meta = await messages.search_messages(general.id, "DEPLOY")
        assert [m.content for m in found] == ["Deploy today"]
        assert meta["total"] == 1

    @pytest.mark.asyncio
    async def test_blank_search_rejected(self, messages, general):
        with pytest.raises(ValidationError):
            await messages.search_messages(general.id, "  ")


class TestFavorites:
    @pytest.mark.asyncio
    async def test_favorite_lifecycle(self, messages, alice, bob, general):
        msg = await messages.send_message(alice.id, general.id, "keep this")
        await messages.add_favorite(bob.id, msg.id)
        with pytest.raises(ConflictError):
            await messages.add_favorite(bob.id, msg.id)

        items, meta = await messages.list_favorites(bob.id)
        assert meta["total"] == 1
        assert items[0][1].content == "keep this"

        await messages.remove_favorite(bob.id, msg.id)
        with pytest.raises(NotFoundError):
            await messages.remove_favorite(bob.id, msg.id)

    @pytest.mark.asyncio
    async def test_cannot_favorite_deleted_message(self, messages, alice, general):
        msg = await messages.send_message(alice.id, general.id, "bye")
        await messages.delete_message(msg.id, alice.id)
        with pytest.raises(NotFoundError):
            await messages.add_favorite(alice.id, msg.id)
