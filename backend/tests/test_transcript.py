"""
Tests for the observable transcript.
"""

import dataclasses

import pytest

from routers.chat_orchestration.session import ChatMessage, Role, Transcript, new_message_id


class TestChatMessage:
    """Test the immutable message record."""

    def test_ids_are_unique(self):
        """Generated ids never repeat."""
        ids = {new_message_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(i.startswith("msg_") for i in ids)

    def test_token_estimate(self):
        """Token estimate is computed from content."""
        assert ChatMessage(Role.USER, "mở báo cáo giường").token_estimate > 0
        assert ChatMessage(Role.ASSISTANT, "").token_estimate == 0

    def test_frozen(self):
        """Messages cannot be mutated in place."""
        msg = ChatMessage(Role.USER, "hi")
        with pytest.raises(dataclasses.FrozenInstanceError):
            msg.content = "changed"

    def test_to_dict(self):
        """Serialized role is the plain value."""
        d = ChatMessage(Role.TOOL, "{}", tool_name="nav").to_dict()
        assert d["role"] == "tool"
        assert d["tool_name"] == "nav"
        assert d["is_streaming"] is False


class TestTranscript:
    """Test snapshot replacement and notifications."""

    def setup_method(self):
        self.transcript = Transcript()
        self.snapshots = []
        self.unsubscribe = self.transcript.subscribe(self.snapshots.append)

    def test_append_notifies_with_new_snapshot(self):
        """Every append publishes a new tuple."""
        first = self.transcript.append(ChatMessage(Role.USER, "a"))
        self.transcript.append(ChatMessage(Role.ASSISTANT, "b"))
        assert len(self.snapshots) == 2
        assert self.snapshots[0] == (first,)
        assert len(self.snapshots[1]) == 2
        assert self.snapshots[0] is not self.snapshots[1]

    def test_update_replaces_message(self):
        """update() swaps in a copy and keeps the old snapshot intact."""
        msg = self.transcript.append(ChatMessage(Role.ASSISTANT, "", is_streaming=True))
        before = self.transcript.snapshot()
        updated = self.transcript.update(msg.id, content="Xin chào", is_streaming=False)
        assert updated.id == msg.id
        assert updated.content == "Xin chào"
        assert updated.token_estimate > 0
        assert before[0].is_streaming
        assert not self.transcript.get(msg.id).is_streaming

    def test_update_unknown_id(self):
        """Unknown ids are ignored without notification."""
        assert self.transcript.update("missing", content="x") is None
        assert self.snapshots == []

    def test_remove_and_clear(self):
        """remove() and clear() publish snapshots."""
        msg = self.transcript.append(ChatMessage(Role.USER, "a"))
        assert self.transcript.remove(msg.id)
        assert not self.transcript.remove(msg.id)
        self.transcript.append(ChatMessage(Role.USER, "b"))
        self.transcript.clear()
        assert len(self.transcript) == 0
        assert self.snapshots[-1] == ()

    def test_streaming_messages(self):
        """Streaming placeholders can be listed."""
        self.transcript.append(ChatMessage(Role.USER, "a"))
        placeholder = self.transcript.append(ChatMessage(Role.ASSISTANT, "", is_streaming=True))
        assert self.transcript.streaming_messages() == [placeholder]

    def test_unsubscribe(self):
        """Unsubscribed listeners are not called."""
        self.unsubscribe()
        self.transcript.append(ChatMessage(Role.USER, "a"))
        assert self.snapshots == []

    def test_failing_listener_does_not_break_commit(self):
        """A raising listener is logged and skipped."""

        def broken(_messages):
            raise RuntimeError("render failed")

        self.transcript.subscribe(broken)
        self.transcript.append(ChatMessage(Role.USER, "a"))
        assert len(self.transcript) == 1
        assert len(self.snapshots) == 1

    def test_total_tokens(self):
        """Token totals sum the estimates."""
        a = self.transcript.append(ChatMessage(Role.USER, "xin chào"))
        b = self.transcript.append(ChatMessage(Role.ASSISTANT, "Chào bạn"))
        assert self.transcript.total_tokens() == a.token_estimate + b.token_estimate
