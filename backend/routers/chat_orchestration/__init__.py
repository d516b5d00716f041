"""
CareNav Chat Orchestration - Embedded assistant engine.

Components:
- ChatOrchestrator: Turn state machine (classify -> reply or stream -> finalize)
- Transcript / ChatMessage: Observable, replace-whole-snapshot message list
- Classifier: Priority-ordered rule chain with security gate (handlers/)
- RouteCatalog: Permission-filtered, memoized screen list
- StreamProcessor: NDJSON stream reader with coalesced UI updates
- tool_dispatch: Normalizes tool-call wire shapes into ToolCall

Flow:
    sanitize -> rate limit -> classify
        direct/blocked -> typed reply
        nav with several matching screens -> numbered list
        otherwise -> placeholder -> model stream (retry) -> tools -> finalize
"""

from .handlers import Classifier, ClassifyResult, Intent, ResultType
from .orchestrator import ChatOrchestrator
from .route_catalog import RouteCatalog, RouteInfo
from .session import ChatMessage, Role, Transcript
from .stream_processor import StreamProcessor, StreamResult, UpdateCoalescer
from .tool_dispatch import ToolCall, extract_inline_tool_call, normalize_tool_calls

__all__ = [
    "ChatOrchestrator",
    "ChatMessage",
    "Role",
    "Transcript",
    "Classifier",
    "ClassifyResult",
    "Intent",
    "ResultType",
    "RouteCatalog",
    "RouteInfo",
    "StreamProcessor",
    "StreamResult",
    "UpdateCoalescer",
    "ToolCall",
    "extract_inline_tool_call",
    "normalize_tool_calls",
]
