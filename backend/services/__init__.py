"""
CareNav Services - Shared infrastructure services.

- llm_client: Streaming client for the model proxy and its health check
- portal: Host portal contracts (auth, theme, router) with in-memory fakes
- json_repair: Tolerant parsing of model-produced tool arguments
"""

from .llm_client import LLMClient
from .portal import InMemoryAuthService, InMemoryRouter, InMemoryThemeService, User

__all__ = ["LLMClient", "InMemoryAuthService", "InMemoryRouter", "InMemoryThemeService", "User"]
