"""
Base types for the input classifier.

Each classifier rule knows how to:
1. Inspect the normalized input (evaluate)
2. Either claim it, returning a ClassifyResult, or pass (return None)

Rules are checked in priority order (lowest first); the first rule that
returns a result wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..tool_dispatch import ToolCall


class ResultType(str, Enum):
    DIRECT = "direct"
    LLM = "llm"
    BLOCKED = "blocked"


class Intent(str, Enum):
    NAV = "nav"
    THEME = "theme"
    IT_SUPPORT = "it_support"
    FEATURE_HELP = "feature_help"


@dataclass
class ClassifyResult:
    """Outcome of classifying one user input. Transient, never stored."""

    type: ResultType
    language: str = "vi"
    response: Optional[str] = None
    intent: Optional[Intent] = None
    extracted_command: Optional[str] = None
    reason: Optional[str] = None
    tool_call: Optional[ToolCall] = None

    @property
    def needs_llm(self) -> bool:
        return self.type == ResultType.LLM


@dataclass
class ClassifyContext:
    """Input passed through the rule chain."""

    text: str
    normalized: str
    words: List[str]
    language: str
    hotline: str


@dataclass
class WhitelistEntry:
    """Fast-path entry: a literal answer (responses) or an intent tag."""

    name: str
    patterns: List[str]
    responses: Dict[str, List[str]] = field(default_factory=dict)
    intent: Optional[Intent] = None
    max_words: Optional[int] = None


class ClassifierRule(ABC):
    """
    Abstract base class for classifier rules.

    Lower priority value = checked earlier.
    """

    priority: int = 100
    name: str = "base"

    @abstractmethod
    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        """Return a result to claim the input, or None to pass it on."""
        pass
