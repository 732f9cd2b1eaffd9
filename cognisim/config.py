"""
Cognisim Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-5-nano")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local LLM Configuration (Ollama REST API)
    OLLAMA_BASE_URL: str | None = os.getenv("OLLAMA_BASE_URL")

    # Oracle retry budget (validation + transient transport failures)
    ORACLE_MAX_ATTEMPTS: int = int(os.getenv("ORACLE_MAX_ATTEMPTS", "3"))

    # Scheduler
    TICK_INTERVAL_MS: int = int(os.getenv("TICK_INTERVAL_MS", "5000"))

    # Event distribution
    BATCH_WINDOW_MS: int = int(os.getenv("BATCH_WINDOW_MS", "100"))
    BATCH_MAX_EVENTS: int = int(os.getenv("BATCH_MAX_EVENTS", "10"))

    # Cognition bounds
    ATTENTION_CAPACITY: int = int(os.getenv("ATTENTION_CAPACITY", "5"))
    WORKING_MEMORY_CAPACITY: int = int(os.getenv("WORKING_MEMORY_CAPACITY", "20"))
    EXPERIENCE_LOG_LIMIT: int = int(os.getenv("EXPERIENCE_LOG_LIMIT", "50"))

    # Report sink (JSONL); unset keeps events in memory only
    REPORT_PATH: str | None = os.getenv("REPORT_PATH")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.TICK_INTERVAL_MS <= 0:
            raise ValueError("TICK_INTERVAL_MS must be a positive number of milliseconds")

        if cls.BATCH_MAX_EVENTS <= 0:
            raise ValueError("BATCH_MAX_EVENTS must be at least 1")

        if cls.ORACLE_MAX_ATTEMPTS <= 0:
            raise ValueError("ORACLE_MAX_ATTEMPTS must be at least 1")

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For local models, set LLM_PROVIDER=ollama instead."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Cognisim Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Tick Interval: {cls.TICK_INTERVAL_MS}ms",
            f"  Batch Window: {cls.BATCH_WINDOW_MS}ms (max {cls.BATCH_MAX_EVENTS} events)",
            f"  Attention Capacity: {cls.ATTENTION_CAPACITY}",
            f"  Working Memory: {cls.WORKING_MEMORY_CAPACITY} items",
            f"  Report Path: {cls.REPORT_PATH or '(in-memory)'}",
        ]
        return "\n".join(lines)
