"""
CareNav Transcript - Conversation state for one assistant widget.

ChatMessage is immutable; the Transcript holds a tuple snapshot and every
mutation replaces the whole tuple, then notifies observers with the new
snapshot. Observers therefore never see a half-applied change.
"""

import itertools
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from routers.chat_prompts import estimate_tokens

logger = logging.getLogger(__name__)

_id_counter = itertools.count(1)


def new_message_id() -> str:
    """Unique message id: msg_<epoch-ms>_<counter>."""
    return f"msg_{int(time.time() * 1000)}_{next(_id_counter)}"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class ChatMessage:
    """One transcript entry.

    Attributes:
        id: Unique message id
        role: Author role
        content: Display text
        timestamp: Creation time (epoch seconds)
        is_streaming: True only for the open placeholder of a model turn
        is_error: True for apology/failure replies
        tool_name: Tool that produced a tool-role message
        token_estimate: Rough token count of content
    """

    role: Role
    content: str = ""
    id: str = field(default_factory=new_message_id)
    timestamp: float = field(default_factory=time.time)
    is_streaming: bool = False
    is_error: bool = False
    tool_name: Optional[str] = None
    token_estimate: int = 0

    def __post_init__(self):
        if not self.token_estimate and self.content:
            object.__setattr__(self, "token_estimate", estimate_tokens(self.content))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
            "is_streaming": self.is_streaming,
            "is_error": self.is_error,
            "tool_name": self.tool_name,
            "token_estimate": self.token_estimate,
        }


Listener = Callable[[Tuple[ChatMessage, ...]], None]


class Transcript:
    """Ordered, observable message list.

    Usage:
        transcript = Transcript()
        unsubscribe = transcript.subscribe(lambda msgs: render(msgs))
        msg = transcript.append(ChatMessage(Role.USER, "xin chào"))
        transcript.update(msg.id, content="Xin chào")
    """

    def __init__(self):
        self._messages: Tuple[ChatMessage, ...] = ()
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self._messages)

    def snapshot(self) -> Tuple[ChatMessage, ...]:
        return self._messages

    def get(self, message_id: str) -> Optional[ChatMessage]:
        for msg in self._messages:
            if msg.id == message_id:
                return msg
        return None

    def streaming_messages(self) -> List[ChatMessage]:
        return [m for m in self._messages if m.is_streaming]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an observer. Returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, messages: Tuple[ChatMessage, ...]) -> None:
        self._messages = messages
        for listener in list(self._listeners):
            try:
                listener(messages)
            except Exception as e:
                logger.error(f"Transcript listener failed: {e}", exc_info=True)

    def append(self, message: ChatMessage) -> ChatMessage:
        self._commit(self._messages + (message,))
        return message

    def update(self, message_id: str, **changes) -> Optional[ChatMessage]:
        """Replace one message with a copy carrying the given changes.

        Returns:
            The new message, or None if the id is unknown
        """
        updated: Optional[ChatMessage] = None
        messages = []
        for msg in self._messages:
            if msg.id == message_id:
                if "content" in changes and "token_estimate" not in changes:
                    changes["token_estimate"] = estimate_tokens(changes["content"] or "")
                updated = replace(msg, **changes)
                messages.append(updated)
            else:
                messages.append(msg)
        if updated is None:
            logger.debug(f"Transcript update for unknown message {message_id}")
            return None
        self._commit(tuple(messages))
        return updated

    def remove(self, message_id: str) -> bool:
        messages = tuple(m for m in self._messages if m.id != message_id)
        if len(messages) == len(self._messages):
            return False
        self._commit(messages)
        return True

    def clear(self) -> None:
        self._commit(())

    def total_tokens(self) -> int:
        return sum(m.token_estimate for m in self._messages)
