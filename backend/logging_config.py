"""
CareNav Logging Configuration - Color-Coded Console Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_message_out, log_blocked, log_tool, log_llm
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_tool
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "mở báo cáo giường", intent="nav")
"""

import logging
import sys
from typing import Union

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    # Event colors
    "MSG_IN": "\033[96m",  # Cyan - incoming message
    "MSG_OUT": "\033[92m",  # Green - outgoing response
    "BLOCKED": "\033[95m",  # Magenta - rejected input
    "TOOL": "\033[93m",  # Yellow - tool calls
    "LLM": "\033[94m",  # Blue - model requests
    "ERROR": "\033[91m",  # Red - errors
    "WARN": "\033[33m",  # Orange/Yellow - warnings
    "DEBUG": "\033[90m",  # Gray - debug info
}


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["DEBUG"],
        logging.INFO: COLORS["RESET"],
        logging.WARNING: COLORS["WARN"],
        logging.ERROR: COLORS["ERROR"],
        logging.CRITICAL: COLORS["ERROR"] + COLORS["BOLD"],
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, COLORS["RESET"])

        # timestamp [LEVEL] logger: message
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]
        name = record.name.rsplit(".", 1)[-1]

        formatted = (
            f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
            f"[{color}{level}{COLORS['RESET']}] "
            f"{COLORS['DIM']}{name}:{COLORS['RESET']} "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure colored logging for the application."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================


def _preview(text: str, limit: int = 80) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log incoming user message.

    Args:
        logger: Logger instance
        message: User message text
        **context: Additional context (intent, language, etc.)
    """
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    logger.info(f"{COLORS['MSG_IN']}>>> MESSAGE{COLORS['RESET']} {_preview(message)} [{ctx}]")


def log_message_out(logger: logging.Logger, kind: str, tools_used: list = None, chars: int = 0) -> None:
    """Log outgoing assistant turn.

    Args:
        logger: Logger instance
        kind: How the turn was produced (direct, stream, disambiguation, ...)
        tools_used: List of tool names executed in the turn
        chars: Length of the final content
    """
    tools = ", ".join(tools_used) if tools_used else "none"
    logger.info(f"{COLORS['MSG_OUT']}<<< RESPONSE{COLORS['RESET']} {kind} tools=[{tools}] chars={chars}")


def log_blocked(logger: logging.Logger, reason: str, message: str) -> None:
    """Log a rejected input. Rejections are expected traffic, not errors."""
    logger.info(f"{COLORS['BLOCKED']}--- BLOCKED{COLORS['RESET']} reason={reason} {_preview(message, 60)}")


def log_tool(
    logger: logging.Logger,
    tool_name: str,
    state: str,
    **context,
) -> None:
    """Log tool execution.

    Args:
        logger: Logger instance
        tool_name: Name of the tool
        state: 'start' or 'end'
        **context: Additional context (arguments, success, etc.)
    """
    ctx = " ".join(f"{k}={v}" for k, v in context.items()) if context else ""
    if state == "start":
        logger.info(f"{COLORS['TOOL']}>>> TOOL{COLORS['RESET']} {tool_name} {ctx}")
    else:
        logger.info(f"{COLORS['TOOL']}<<< TOOL{COLORS['RESET']} {tool_name} {ctx}")


def log_llm(
    logger: logging.Logger,
    state: str,
    model: str = "",
    duration: float = 0,
    attempt: int = 1,
) -> None:
    """Log model request.

    Args:
        logger: Logger instance
        state: 'start' or 'end'
        model: Model name
        duration: Call duration in seconds (for end state)
        attempt: Attempt number within the retry loop
    """
    if state == "start":
        logger.info(f"{COLORS['LLM']}>>> LLM{COLORS['RESET']} calling {model} (attempt {attempt})")
    else:
        logger.info(f"{COLORS['LLM']}<<< LLM{COLORS['RESET']} {model} completed in {duration:.1f}s")
