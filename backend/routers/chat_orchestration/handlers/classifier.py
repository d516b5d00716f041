"""
Input Classifier - Decides how one user message is answered.

Iterates rules by priority (lowest first), returns the first result.
The outcome is one of:
- direct: answered locally (canned reply, password escalation, local tool call)
- llm: forwarded to the model with an intent tag
- blocked: rejected with a localized explanation
"""

import logging
import random
from typing import Iterable, List, Optional

from config import RuntimeConfig, runtime_config
from logging_config import log_blocked

from .base import ClassifierRule, ClassifyContext, ClassifyResult, Intent, ResultType
from .normalizer import detect_language, normalize, tokenize
from .patterns import WHITELIST, intent_vocabulary
from .rules import (
    AccountLockedRule,
    BlocklistRule,
    ChangePasswordRule,
    FallbackRule,
    ForgotPasswordRule,
    WhitelistRule,
)
from .security_gate import SecurityGate

logger = logging.getLogger(__name__)


class Classifier:
    """
    Classifies user input through the rule chain.

    Usage:
        classifier = Classifier(config)
        classifier.extend_vocabulary(Intent.NAV, catalog.vocabulary())
        result = classifier.classify("mở báo cáo giường")
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        hotline: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        config = config or runtime_config
        self.hotline = hotline or config.hotline
        self.gate = SecurityGate(
            intent_vocabulary(),
            max_length=config.security_max_length,
            min_density=config.keyword_density_min,
            min_words=config.density_min_words,
        )
        self._rules: List[ClassifierRule] = []
        self._sorted = False
        for rule in (
            BlocklistRule(),
            ForgotPasswordRule(),
            AccountLockedRule(config.lockout_attempts),
            ChangePasswordRule(),
            WhitelistRule(WHITELIST, self.gate, rng),
            FallbackRule(config.fallback_min_length),
        ):
            self.register(rule)

    def register(self, rule: ClassifierRule) -> None:
        """Register a rule."""
        self._rules.append(rule)
        self._sorted = False
        logger.debug(f"Registered classifier rule: {rule.name} (priority {rule.priority})")

    def _ensure_sorted(self) -> None:
        if not self._sorted:
            self._rules.sort(key=lambda r: r.priority)
            self._sorted = True

    def extend_vocabulary(self, intent: Intent, words: Iterable[str]) -> None:
        """Add route titles/keywords to an intent's density vocabulary."""
        self.gate.extend(intent, words)

    def classify(self, text: str) -> ClassifyResult:
        """
        Classify one (already sanitized) user input.

        Args:
            text: User input

        Returns:
            ClassifyResult; never raises
        """
        self._ensure_sorted()
        normalized = normalize(text)
        ctx = ClassifyContext(
            text=text,
            normalized=normalized,
            words=tokenize(normalized),
            language=detect_language(text),
            hotline=self.hotline,
        )

        for rule in self._rules:
            result = rule.evaluate(ctx)
            if result is None:
                continue
            if result.type == ResultType.BLOCKED:
                log_blocked(logger, result.reason or rule.name, text)
            else:
                logger.info(
                    f"Input classified by {rule.name}: {result.type.value}"
                    + (f" intent={result.intent.value}" if result.intent else "")
                )
            return result

        # FallbackRule always matches; kept for rule sets without it
        return ClassifyResult(type=ResultType.BLOCKED, language=ctx.language, reason="unmatched")
