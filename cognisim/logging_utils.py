"""Logging utilities for cognisim runtimes.

Provides color-coded output to distinguish deterministic systems from oracle
(LLM) calls, plus warnings for scheduler backpressure.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic systems (rooms, perception, attention)
    YELLOW = "\033[93m"    # Oracle calls (reasoning, meta-cognition)
    RED = "\033[91m"       # Errors and retries
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata
    MAGENTA = "\033[95m"   # Warnings (tick overrun, dropped events)

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if COGNISIM_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("COGNISIM_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def is_verbose() -> bool:
    """True when COGNISIM_VERBOSE is set to a truthy value."""
    return os.getenv("COGNISIM_VERBOSE", "").lower() in ("1", "true", "yes")


def debug_enabled(flag: str) -> bool:
    """Check a DEBUG_* style environment flag."""
    return os.getenv(flag, "").lower() in ("1", "true", "yes")


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue)."""
    print(colored(message, Color.BLUE))


def log_llm(message: str) -> None:
    """Log an oracle operation (yellow)."""
    print(colored(message, Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or retry (red)."""
    print(colored(message, Color.RED))


def log_warning(message: str) -> None:
    """Log a non-fatal warning (magenta)."""
    print(colored(message, Color.MAGENTA))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(message, Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(message, Color.CYAN))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_LLM = "[AI]"           # Oracle call
LOG_TAG_ERROR = "[!]"          # Error/retry
LOG_TAG_WARNING = "[~]"        # Backpressure / degraded result
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information
