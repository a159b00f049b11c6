"""
Querypilot Logging Configuration - Color-Coded Console Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_plan, log_tool, log_llm, log_stream_out
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_plan
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "Show me the slowest queries", turn="0192...")
"""

import logging
import sys

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    # Event colors
    "MSG_IN": "\033[96m",  # Cyan - incoming turn
    "MSG_OUT": "\033[92m",  # Green - finished turn
    "PLAN": "\033[95m",  # Magenta - intent planning
    "TOOL": "\033[93m",  # Yellow - tool calls
    "LLM": "\033[94m",  # Blue - LLM operations
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

        # Format: timestamp [LEVEL] message (no module name for compactness)
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]

        formatted = (
            f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
            f"[{color}{level}{COLORS['RESET']}] "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure colored logging for the application."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    # Configure root logger
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================


def _ctx(context: dict) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items())


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log an incoming turn.

    Args:
        logger: Logger instance
        message: Latest user message text
        **context: Additional context (turn, continuation, messages, etc.)
    """
    preview = message[:80] + "..." if len(message) > 80 else message
    logger.info(f"{COLORS['MSG_IN']}>>> TURN{COLORS['RESET']} {preview} [{_ctx(context)}]")


def log_plan(logger: logging.Logger, intent: str, stage: str, **context) -> None:
    """Log the outcome of intent planning.

    Args:
        logger: Logger instance
        intent: Resolved intent id
        stage: Which cascade stage decided (keyword, heuristic, model, fallback, continuation)
    """
    logger.info(f"{COLORS['PLAN']}... PLAN{COLORS['RESET']} {intent} via {stage} {_ctx(context)}".rstrip())


def log_stream_out(logger: logging.Logger, outcome: str, **context) -> None:
    """Log how a turn stream ended.

    Args:
        logger: Logger instance
        outcome: 'finish', 'error' or 'disconnected'
        **context: Additional context (usage, title, etc.)
    """
    color = COLORS["MSG_OUT"] if outcome == "finish" else COLORS["WARN"]
    logger.info(f"{color}<<< STREAM{COLORS['RESET']} {outcome} {_ctx(context)}".rstrip())


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
        **context: Additional context (call id, success, etc.)
    """
    ctx = _ctx(context) if context else ""
    if state == "start":
        logger.info(f"{COLORS['TOOL']}>>> TOOL{COLORS['RESET']} {tool_name} {ctx}")
    else:
        logger.info(f"{COLORS['TOOL']}<<< TOOL{COLORS['RESET']} {tool_name} {ctx}")


def log_llm(
    logger: logging.Logger,
    state: str,
    model: str = "",
    duration: float = 0,
) -> None:
    """Log LLM call.

    Args:
        logger: Logger instance
        state: 'start' or 'end'
        model: Model name
        duration: Call duration in seconds (for end state)
    """
    if state == "start":
        logger.info(f"{COLORS['LLM']}>>> LLM{COLORS['RESET']} calling {model}")
    else:
        logger.info(f"{COLORS['LLM']}<<< LLM{COLORS['RESET']} " f"{model} completed in {duration:.1f}s")
