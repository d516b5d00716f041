"""
Runtime Configuration for the CareNav assistant.

Provides a singleton RuntimeConfig class holding every tunable of the
assistant engine (endpoint, sampling, timeouts, rate limits, security
thresholds). Values default from CARENAV_* environment variables.

Usage:
    from config import runtime_config
    timeout = runtime_config.request_timeout_s
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict


def _env(key: str, default: str) -> str:
    """Read a CARENAV_* environment variable, falling back to default."""
    value = os.environ.get(f"CARENAV_{key}", "").strip()
    return value or default


def _env_int(key: str, default: int) -> int:
    return int(_env(key, str(default)))


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


@dataclass
class RuntimeConfig:
    """
    Tunable parameters for the assistant.

    All values default from environment variables. Tests construct their
    own instances instead of mutating the singleton.
    """

    # Model endpoint
    llm_url: str = field(default_factory=lambda: _env("LLM_URL", "http://localhost:8000/api/llm"))
    model_name: str = field(default_factory=lambda: _env("MODEL", "qwen3-vl:4b-instruct"))
    hotline: str = field(default_factory=lambda: _env("HOTLINE", "1108/1109"))

    # Sampling
    temperature: float = field(default_factory=lambda: _env_float("TEMPERATURE", 0.3))
    top_p: float = field(default_factory=lambda: _env_float("TOP_P", 0.85))
    top_k: int = field(default_factory=lambda: _env_int("TOP_K", 20))
    repeat_penalty: float = field(default_factory=lambda: _env_float("REPEAT_PENALTY", 1.15))

    # Token budget
    num_ctx: int = field(default_factory=lambda: _env_int("NUM_CTX", 8192))
    max_output_tokens: int = field(default_factory=lambda: _env_int("MAX_OUTPUT_TOKENS", 2048))

    # Network
    request_timeout_s: float = field(default_factory=lambda: _env_float("REQUEST_TIMEOUT_S", 30.0))
    health_timeout_s: float = field(default_factory=lambda: _env_float("HEALTH_TIMEOUT_S", 5.0))
    max_retries: int = field(default_factory=lambda: _env_int("MAX_RETRIES", 2))
    retry_delay_s: float = field(default_factory=lambda: _env_float("RETRY_DELAY_S", 0.8))

    # UI pacing
    ui_debounce_ms: int = field(default_factory=lambda: _env_int("UI_DEBOUNCE_MS", 30))
    typing_delay_per_char_ms: float = field(default_factory=lambda: _env_float("TYPING_PER_CHAR_MS", 8.0))
    typing_delay_min_ms: int = field(default_factory=lambda: _env_int("TYPING_MIN_MS", 300))
    typing_delay_max_ms: int = field(default_factory=lambda: _env_int("TYPING_MAX_MS", 1200))

    # Session
    session_timeout_s: float = field(default_factory=lambda: _env_float("SESSION_TIMEOUT_S", 900.0))
    route_cache_ttl_s: float = field(default_factory=lambda: _env_float("ROUTE_CACHE_TTL_S", 300.0))
    max_history_messages: int = field(default_factory=lambda: _env_int("MAX_HISTORY", 4))
    history_user_chars: int = field(default_factory=lambda: _env_int("HISTORY_USER_CHARS", 200))
    history_assistant_chars: int = field(default_factory=lambda: _env_int("HISTORY_ASSISTANT_CHARS", 150))

    # Input / output limits
    max_input_length: int = field(default_factory=lambda: _env_int("MAX_INPUT_LENGTH", 500))
    max_output_length: int = field(default_factory=lambda: _env_int("MAX_OUTPUT_LENGTH", 2000))
    max_tool_args_length: int = field(default_factory=lambda: _env_int("MAX_TOOL_ARGS_LENGTH", 200))
    max_tool_calls: int = field(default_factory=lambda: _env_int("MAX_TOOL_CALLS", 2))

    # Rate limiting
    rate_limit_max_messages: int = field(default_factory=lambda: _env_int("RATE_LIMIT_MAX", 15))
    rate_limit_window_s: float = field(default_factory=lambda: _env_float("RATE_LIMIT_WINDOW_S", 60.0))
    rate_limit_cooldown_s: float = field(default_factory=lambda: _env_float("RATE_LIMIT_COOLDOWN_S", 10.0))

    # Security gate
    security_max_length: int = field(default_factory=lambda: _env_int("SECURITY_MAX_LENGTH", 200))
    keyword_density_min: float = field(default_factory=lambda: _env_float("KEYWORD_DENSITY_MIN", 0.2))
    density_min_words: int = field(default_factory=lambda: _env_int("DENSITY_MIN_WORDS", 5))
    fallback_min_length: int = field(default_factory=lambda: _env_int("FALLBACK_MIN_LENGTH", 4))

    # Tool side effects
    nav_debounce_s: float = field(default_factory=lambda: _env_float("NAV_DEBOUNCE_S", 0.8))
    nav_settle_s: float = field(default_factory=lambda: _env_float("NAV_SETTLE_S", 0.5))
    theme_cooldown_s: float = field(default_factory=lambda: _env_float("THEME_COOLDOWN_S", 1.0))

    # Account policy, quoted in the locked-account reply
    lockout_attempts: int = field(default_factory=lambda: _env_int("LOCKOUT_ATTEMPTS", 5))

    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    @property
    def health_url(self) -> str:
        """Health endpoint served next to the model proxy."""
        if self.llm_url.endswith("/api/llm"):
            return self.llm_url[: -len("/api/llm")] + "/health"
        return self.llm_url.rstrip("/") + "/health"

    def get_llm_options(self, num_predict: int) -> Dict[str, Any]:
        """Sampling options block sent with every model request."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "repeat_penalty": self.repeat_penalty,
            "num_predict": num_predict,
            "num_ctx": self.num_ctx,
        }


# Singleton instance
runtime_config = RuntimeConfig()
