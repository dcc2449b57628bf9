"""Tests for the DuckDB ChatStore."""
import pytest

from parley.errors import ConflictError, InfrastructureError, NotFoundError
from parley.messages import state
from parley.store.schemas import Favorite, Message, Room, User

from fakes import add_user


def insert(store, room_id="room-1", content="hi", created_at=1.0, **fields) -> Message:
    return store.insert_message(
        Message(room_id=room_id, sender_id="alice", content=content, created_at=created_at, **fields)
    )


class TestUsers:
    def test_create_and_find(self, store):
        user = add_user(store, "alice")
        assert store.get_user(user.id).username == "alice"
        assert store.get_user_by_username("alice").id == user.id
        assert store.get_user_by_email("alice@example.com").id == user.id
        assert store.get_user("missing") is None

    def test_duplicate_username_conflicts(self, store):
        add_user(store, "alice")
        with pytest.raises(ConflictError):
            store.create_user(User(username="alice", email="other@example.com", password_hash="x"))

    def test_resolve_usernames_skips_unknown(self, store):
        alice = add_user(store, "alice")
        bob = add_user(store, "bob")
        resolved = store.resolve_usernames(["bob", "ghost", "alice"])
        assert resolved == {"alice": alice.id, "bob": bob.id}
        assert store.get_usernames([alice.id]) == {alice.id: "alice"}


class TestRooms:
    def test_create_and_lookup(self, store):
        room = store.create_room(Room(name="general", members=["u1"]))
        assert store.get_room(room.id).members == ["u1"]
        assert store.get_room_by_name("general").id == room.id

    def test_duplicate_name_conflicts(self, store):
        store.create_room(Room(name="general"))
        with pytest.raises(ConflictError):
            store.create_room(Room(name="general"))

    def test_list_oldest_first(self, store):
        store.create_room(Room(name="b", created_at=2.0))
        store.create_room(Room(name="a", created_at=1.0))
        assert [r.name for r in store.list_rooms()] == ["a", "b"]


class TestMessages:
    def test_listing_is_pinned_first_then_newest(self, store):
        old = insert(store, content="old", created_at=1.0)
        insert(store, content="mid", created_at=2.0)
        insert(store, content="new", created_at=3.0)
        store.update_message(old.id, lambda m: state.toggle_pin(m, "bob"))

        messages, total = store.list_messages("room-1", limit=10, offset=0)
        assert [m.content for m in messages] == ["old", "new", "mid"]
        assert total == 3

    def test_same_timestamp_falls_back_to_insert_order(self, store):
        insert(store, content="first", created_at=5.0)
        insert(store, content="second", created_at=5.0)
        messages, _ = store.list_messages("room-1", limit=10, offset=0)
        assert [m.content for m in messages] == ["second", "first"]

    def test_deleted_excluded_from_listing_but_found_by_id(self, store):
        msg = insert(store)
        store.update_message(msg.id, lambda m: state.soft_delete(m, "alice", now=9.0))

        messages, total = store.list_messages("room-1", limit=10, offset=0)
        assert messages == [] and total == 0

        found = store.get_message(msg.id)
        assert found.deleted_at == 9.0

        messages, total = store.list_messages("room-1", 10, 0, include_deleted=True)
        assert [m.id for m in messages] == [msg.id] and total == 1

    def test_pagination_window(self, store):
        for i in range(5):
            insert(store, content=f"m{i}", created_at=float(i))
        page, total = store.list_messages("room-1", limit=2, offset=2)
        assert [m.content for m in page] == ["m2", "m1"]
        assert total == 5

    def test_update_round_trips_nested_fields(self, store):
        msg = insert(store, mentions=["bob"])
        store.update_message(msg.id, lambda m: state.add_reaction(m, "bob", "👍", now=3.0))
        store.update_message(msg.id, lambda m: state.mark_read(m, "bob", now=4.0))
        found = store.get_message(msg.id)
        assert found.mentions == ["bob"]
        assert [(r.user_id, r.emoji, r.ts) for r in found.reactions] == [("bob", "👍", 3.0)]
        assert [(r.user_id, r.read_at) for r in found.read_by] == [("bob", 4.0)]
        assert found.status.value == "read"

    def test_update_unknown_message(self, store):
        with pytest.raises(NotFoundError):
            store.update_message("missing", lambda m: True)

    def test_unchanged_mutation_is_not_written(self, store):
        msg = insert(store)

        def sneaky(m):
            m.content = "not saved"
            return False

        _, changed = store.update_message(msg.id, sneaky)
        assert changed is False
        assert store.get_message(msg.id).content == "hi"

    def test_failed_mutation_is_not_written(self, store):
        msg = insert(store)

        def boom(m):
            m.content = "not saved"
            raise ConflictError("nope")

        with pytest.raises(ConflictError):
            store.update_message(msg.id, boom)
        assert store.get_message(msg.id).content == "hi"

    def test_search_is_case_insensitive_and_skips_deleted(self, store):
        insert(store, content="Hello World", created_at=1.0)
        insert(store, content="say hello", created_at=2.0)
        gone = insert(store, content="hello again", created_at=3.0)
        insert(store, content="unrelated", created_at=4.0)
        insert(store, room_id="room-2", content="hello elsewhere", created_at=5.0)
        store.update_message(gone.id, lambda m: state.soft_delete(m, "alice"))

        messages, total = store.search_messages("room-1", "HELLO", limit=10, offset=0)
        assert [m.content for m in messages] == ["say hello", "Hello World"]
        assert total == 2


class TestFavorites:
    def test_add_list_remove(self, store):
        msg = insert(store)
        store.add_favorite(Favorite(user_id="bob", message_id=msg.id))
        items, total = store.list_favorites("bob", limit=10, offset=0)
        assert total == 1
        favorite, message = items[0]
        assert favorite.message_id == msg.id
        assert message.id == msg.id

        assert store.remove_favorite("bob", msg.id) is True
        assert store.remove_favorite("bob", msg.id) is False

    def test_duplicate_favorite_conflicts(self, store):
        msg = insert(store)
        store.add_favorite(Favorite(user_id="bob", message_id=msg.id))
        with pytest.raises(ConflictError):
            store.add_favorite(Favorite(user_id="bob", message_id=msg.id))


class TestLifecycle:
    def test_closed_store_raises_infrastructure_error(self):
        from parley.store.service import ChatStore

        store = ChatStore(":memory:")
        store.close()
        store.close()
        with pytest.raises(InfrastructureError):
            store.get_user("x")

    @pytest.mark.asyncio
    async def test_call_runs_in_executor(self, store):
        user = await store.call(add_user, store, "alice")
        assert await store.call(store.get_user, user.id) == user
