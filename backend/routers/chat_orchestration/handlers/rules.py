"""
Classifier rules, in priority order.

    10   - BlocklistRule: injection, harmful and off-topic patterns
    20   - ForgotPasswordRule: escalate to the helpdesk, never navigate
    30   - AccountLockedRule: explain the lockout threshold, escalate
    40   - ChangePasswordRule: navigate to settings locally, no model call
    50   - WhitelistRule: canned replies and intent tags (+ security gate)
    1000 - FallbackRule: not understood / capability summary
"""

import logging
import random
import re
from typing import List, Optional

from routers.chat_prompts import get_message

from ..tool_dispatch import NAV, ToolCall
from .base import ClassifierRule, ClassifyContext, ClassifyResult, Intent, ResultType, WhitelistEntry
from .patterns import (
    ACCOUNT_LOCKED_PATTERNS,
    BLOCKLIST,
    BLOCKLIST_MESSAGES,
    CHANGE_PASSWORD_PATTERNS,
    CHANGE_PASSWORD_ROUTE_KEY,
    FORGOT_PASSWORD_PATTERNS,
)
from .security_gate import SecurityGate

logger = logging.getLogger(__name__)


def _any_match(patterns: List[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


class BlocklistRule(ClassifierRule):
    """Reject injection, harmful and off-topic input before anything else."""

    priority = 10
    name = "blocklist"

    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        for family, patterns in BLOCKLIST.items():
            if _any_match(patterns, ctx.normalized):
                return ClassifyResult(
                    type=ResultType.BLOCKED,
                    language=ctx.language,
                    response=get_message(BLOCKLIST_MESSAGES[family], ctx.language, hotline=ctx.hotline),
                    reason=family,
                )
        return None


class ForgotPasswordRule(ClassifierRule):
    priority = 20
    name = "forgot_password"

    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        if not _any_match(FORGOT_PASSWORD_PATTERNS, ctx.normalized):
            return None
        return ClassifyResult(
            type=ResultType.DIRECT,
            language=ctx.language,
            response=get_message("forgot_password", ctx.language, hotline=ctx.hotline),
            intent=Intent.IT_SUPPORT,
        )


class AccountLockedRule(ClassifierRule):
    priority = 30
    name = "account_locked"

    def __init__(self, lockout_attempts: int = 5):
        self.lockout_attempts = lockout_attempts

    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        if not _any_match(ACCOUNT_LOCKED_PATTERNS, ctx.normalized):
            return None
        return ClassifyResult(
            type=ResultType.DIRECT,
            language=ctx.language,
            response=get_message(
                "account_locked", ctx.language, hotline=ctx.hotline, attempts=self.lockout_attempts
            ),
            intent=Intent.IT_SUPPORT,
        )


class ChangePasswordRule(ClassifierRule):
    """Change-password requests open the settings screen without the model."""

    priority = 40
    name = "change_password"

    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        if not _any_match(CHANGE_PASSWORD_PATTERNS, ctx.normalized):
            return None
        return ClassifyResult(
            type=ResultType.DIRECT,
            language=ctx.language,
            intent=Intent.NAV,
            extracted_command=ctx.normalized,
            tool_call=ToolCall(NAV, {"key": CHANGE_PASSWORD_ROUTE_KEY}),
        )


class WhitelistRule(ClassifierRule):
    """
    Ordered whitelist. Patterns of 3 characters or less must match a whole
    word; longer ones match anywhere in the normalized text.
    """

    priority = 50
    name = "whitelist"

    def __init__(self, entries: List[WhitelistEntry], gate: SecurityGate, rng: Optional[random.Random] = None):
        self.entries = entries
        self.gate = gate
        self._rng = rng or random.Random()

    @staticmethod
    def entry_matches(entry: WhitelistEntry, normalized: str, words: List[str]) -> bool:
        if entry.max_words is not None and len(words) > entry.max_words:
            return False
        for pattern in entry.patterns:
            if len(pattern) <= 3:
                if pattern in words:
                    return True
            elif pattern in normalized:
                return True
        return False

    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        for entry in self.entries:
            if not self.entry_matches(entry, ctx.normalized, ctx.words):
                continue

            if entry.intent is None:
                variants = entry.responses.get(ctx.language) or entry.responses.get("vi") or [""]
                return ClassifyResult(
                    type=ResultType.DIRECT,
                    language=ctx.language,
                    response=self._rng.choice(variants),
                )

            gate = self.gate.validate(ctx.normalized, ctx.words, entry.intent)
            if not gate.safe:
                return ClassifyResult(
                    type=ResultType.BLOCKED,
                    language=ctx.language,
                    response=get_message("blocked_security", ctx.language),
                    intent=entry.intent,
                    reason="security",
                )
            return ClassifyResult(
                type=ResultType.LLM,
                language=ctx.language,
                intent=entry.intent,
                extracted_command=gate.clean_command,
            )
        return None


class FallbackRule(ClassifierRule):
    """Always matches. Short input is "not understood", longer input is out of scope."""

    priority = 1000
    name = "fallback"

    def __init__(self, min_length: int = 4):
        self.min_length = min_length

    def evaluate(self, ctx: ClassifyContext) -> Optional[ClassifyResult]:
        if len(ctx.normalized) < self.min_length:
            return ClassifyResult(
                type=ResultType.BLOCKED,
                language=ctx.language,
                response=get_message("not_understood", ctx.language),
                reason="not_understood",
            )
        return ClassifyResult(
            type=ResultType.BLOCKED,
            language=ctx.language,
            response=get_message("out_of_scope", ctx.language, hotline=ctx.hotline),
            reason="out_of_scope",
        )
