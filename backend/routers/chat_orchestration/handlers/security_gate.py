"""
Security Gate - Second check for inputs that matched an intent pattern.

A single matched keyword must not carry an arbitrarily long or unrelated
payload into the model path. The gate rejects:
- inputs longer than max_length after normalization
- inputs of more than min_words words whose keyword density (share of words
  found in the intent's vocabulary) is below min_density
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from .normalizer import normalize

logger = logging.getLogger(__name__)


@dataclass
class GateResult:
    safe: bool
    reason: Optional[str] = None
    clean_command: Optional[str] = None
    density: Optional[float] = None


class SecurityGate:
    """
    Validates intent matches against length and keyword-density thresholds.

    Usage:
        gate = SecurityGate(vocabulary={Intent.NAV: ["mo", "bao cao", ...]})
        result = gate.validate(normalized, words, Intent.NAV)
        if not result.safe:
            ...
    """

    def __init__(
        self,
        vocabulary: Dict[str, Iterable[str]],
        max_length: int = 200,
        min_density: float = 0.2,
        min_words: int = 5,
    ):
        self.max_length = max_length
        self.min_density = min_density
        self.min_words = min_words
        self._entries: Dict[str, Set[str]] = {}
        self._tokens: Dict[str, Set[str]] = {}
        for intent, words in vocabulary.items():
            self.extend(intent, words)

    def extend(self, intent: str, words: Iterable[str]) -> None:
        """Register more vocabulary for an intent (route titles, keywords)."""
        entries = self._entries.setdefault(intent, set())
        tokens = self._tokens.setdefault(intent, set())
        for word in words:
            form = normalize(word)
            if form:
                entries.add(form)
                tokens.update(form.split(" "))

    def _matches(self, word: str, intent: str) -> bool:
        if word in self._tokens.get(intent, ()):
            return True
        if len(word) <= 3:
            return False
        return any(
            len(entry) > 3 and (word in entry or entry in word)
            for entry in self._entries.get(intent, ())
        )

    def keyword_density(self, words: List[str], intent: str) -> float:
        candidates = [w for w in words if len(w) >= 2]
        if not candidates:
            return 0.0
        hits = sum(1 for w in candidates if self._matches(w, intent))
        return hits / len(candidates)

    def validate(self, normalized: str, words: List[str], intent: str) -> GateResult:
        """Check one classified input.

        Args:
            normalized: Normalized input text
            words: Word tokens of the normalized text
            intent: Intent the whitelist matched

        Returns:
            GateResult with safe=True and clean_command on success
        """
        stripped = normalized.strip()
        if len(stripped) > self.max_length:
            logger.info(f"Security gate: too long ({len(stripped)} > {self.max_length})")
            return GateResult(safe=False, reason="too_long")

        if len(words) > self.min_words:
            density = self.keyword_density(words, intent)
            if density < self.min_density:
                logger.info(f"Security gate: low keyword density {density:.2f} for {intent}")
                return GateResult(safe=False, reason="low_density", density=density)
            return GateResult(safe=True, clean_command=stripped, density=density)

        return GateResult(safe=True, clean_command=stripped)
