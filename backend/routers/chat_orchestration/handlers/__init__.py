"""
Input classification - Decides how each user message is answered.

Architecture:
    Classifier iterates ClassifierRules by priority, first result wins.
    SecurityGate re-checks intent matches for length and keyword density.
    normalize() produces the matching form every pattern is written against.

Rule Priority (lower = checked first):
    10   - BlocklistRule
    20   - ForgotPasswordRule
    30   - AccountLockedRule
    40   - ChangePasswordRule
    50   - WhitelistRule
    1000 - FallbackRule
"""

from .base import ClassifierRule, ClassifyContext, ClassifyResult, Intent, ResultType, WhitelistEntry
from .classifier import Classifier
from .normalizer import detect_language, normalize, tokenize
from .security_gate import GateResult, SecurityGate

__all__ = [
    "ClassifierRule",
    "ClassifyContext",
    "ClassifyResult",
    "Intent",
    "ResultType",
    "WhitelistEntry",
    "Classifier",
    "detect_language",
    "normalize",
    "tokenize",
    "GateResult",
    "SecurityGate",
]
