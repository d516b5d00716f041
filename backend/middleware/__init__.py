"""
CareNav Middleware - Conversation throttling.

- rate_limit: Sliding-window message limit and idle-session timer
"""

from .rate_limit import RateLimitDecision, RateLimiter, SessionTimer

__all__ = ["RateLimitDecision", "RateLimiter", "SessionTimer"]
