"""Tests for the message lifecycle rules in parley.messages.state."""
import pytest

from parley.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from parley.messages import state
from parley.store.schemas import Message, MessageStatus


def make_message(**overrides) -> Message:
    fields = {"room_id": "room-1", "sender_id": "alice", "content": "hello"}
    fields.update(overrides)
    return Message(**fields)


class TestStatus:
    def test_new_message_is_sent(self):
        assert make_message().status == MessageStatus.SENT

    def test_deliver_moves_sent_to_delivered(self):
        msg = make_message()
        assert state.deliver(msg) is True
        assert msg.status == MessageStatus.DELIVERED

    def test_deliver_twice_is_noop(self):
        msg = make_message()
        state.deliver(msg)
        assert state.deliver(msg) is False
        assert msg.status == MessageStatus.DELIVERED

    def test_read_directly_from_sent_is_tolerated(self):
        msg = make_message()
        assert state.mark_read(msg, "bob") is True
        assert msg.status == MessageStatus.READ

    def test_deliver_after_read_is_rejected(self):
        msg = make_message()
        state.mark_read(msg, "bob")
        with pytest.raises(InvalidTransitionError):
            state.deliver(msg)
        assert msg.status == MessageStatus.READ

    def test_advance_backwards_is_rejected(self):
        msg = make_message(status=MessageStatus.DELIVERED)
        with pytest.raises(InvalidTransitionError):
            state.advance_status(msg, MessageStatus.SENT)
        assert msg.status == MessageStatus.DELIVERED


class TestReadReceipts:
    def test_one_receipt_per_user(self):
        msg = make_message()
        assert state.mark_read(msg, "bob", now=10.0) is True
        assert state.mark_read(msg, "bob", now=20.0) is False
        assert len(msg.read_by) == 1
        assert msg.read_by[0].read_at == 10.0

    def test_receipts_keep_reader_order(self):
        msg = make_message()
        state.mark_read(msg, "bob")
        state.mark_read(msg, "carol")
        assert [r.user_id for r in msg.read_by] == ["bob", "carol"]


class TestEditAndDelete:
    def test_sender_can_edit(self):
        msg = make_message(status=MessageStatus.DELIVERED)
        state.edit(msg, "alice", "changed", ["bob"], now=5.0)
        assert msg.content == "changed"
        assert msg.mentions == ["bob"]
        assert msg.edited_at == 5.0
        assert msg.status == MessageStatus.DELIVERED

    def test_other_user_cannot_edit(self):
        msg = make_message()
        with pytest.raises(AuthorizationError):
            state.edit(msg, "mallory", "changed", [])
        assert msg.content == "hello"
        assert msg.edited_at is None

    def test_sender_can_delete(self):
        msg = make_message()
        state.soft_delete(msg, "alice", now=7.0)
        assert msg.is_deleted
        assert msg.deleted_at == 7.0
        assert msg.deleted_by == "alice"

    def test_other_user_cannot_delete(self):
        msg = make_message()
        with pytest.raises(AuthorizationError):
            state.soft_delete(msg, "mallory")
        assert not msg.is_deleted

    def test_moderator_can_delete(self):
        msg = make_message()
        state.soft_delete(msg, "mod", is_moderator=True)
        assert msg.deleted_by == "mod"

    @pytest.mark.parametrize("transition", [
        lambda m: state.edit(m, "alice", "x", []),
        lambda m: state.soft_delete(m, "alice"),
        lambda m: state.add_reaction(m, "bob", "👍"),
        lambda m: state.remove_reaction(m, "bob", "👍"),
        lambda m: state.toggle_pin(m, "bob"),
        lambda m: state.mark_read(m, "bob"),
        state.deliver,
    ])
    def test_deleted_message_rejects_every_transition(self, transition):
        msg = make_message()
        state.soft_delete(msg, "alice")
        with pytest.raises(NotFoundError):
            transition(msg)


class TestReactions:
    def test_duplicate_pair_is_a_conflict(self):
        msg = make_message()
        state.add_reaction(msg, "bob", "👍")
        with pytest.raises(ConflictError):
            state.add_reaction(msg, "bob", "👍")
        assert len(msg.reactions) == 1

    def test_same_emoji_from_different_users(self):
        msg = make_message()
        state.add_reaction(msg, "bob", "👍")
        state.add_reaction(msg, "carol", "👍")
        assert [(r.user_id, r.emoji) for r in msg.reactions] == [("bob", "👍"), ("carol", "👍")]

    def test_remove_reaction(self):
        msg = make_message()
        state.add_reaction(msg, "bob", "👍")
        state.add_reaction(msg, "bob", "🎉")
        state.remove_reaction(msg, "bob", "👍")
        assert [r.emoji for r in msg.reactions] == ["🎉"]

    def test_remove_missing_reaction(self):
        with pytest.raises(NotFoundError):
            state.remove_reaction(make_message(), "bob", "👍")


class TestPin:
    def test_pin_toggles(self):
        msg = make_message()
        flags = []
        for _ in range(3):
            state.toggle_pin(msg, "bob", now=1.0)
            flags.append(msg.pinned)
        assert flags == [True, False, True]
        assert msg.pinned_by == "bob"
        assert msg.pinned_at == 1.0

    def test_unpin_clears_pinner(self):
        msg = make_message()
        state.toggle_pin(msg, "bob")
        state.toggle_pin(msg, "carol")
        assert msg.pinned is False
        assert msg.pinned_by is None
        assert msg.pinned_at is None
