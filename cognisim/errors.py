"""Error taxonomy for cognisim.

``ValidationError`` and ``NotFoundError`` are returned as values by the
operations that can produce them (stimulus creation, action lookup). They are
exceptions so that callers who prefer raising can ``raise`` them directly, but
no system raises them across a tick boundary.

``OracleError`` is raised by cognition oracle adapters and retried before the
pipeline degrades. ``SchedulerFault`` is fatal and stops the tick loop.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class CognisimError(Exception):
    """Base class for all cognisim errors."""


class ValidationError(CognisimError):
    """A stimulus or action payload failed validation; nothing was mutated."""

    def __init__(self, message: str, issues: Optional[Sequence[str]] = None) -> None:
        self.issues: List[str] = list(issues or [])
        self.message = message
        text = message
        if self.issues:
            text += "\n" + "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(text)


class NotFoundError(CognisimError):
    """An entity, relation, room, or action name does not exist."""

    def __init__(self, kind: str, key: Any) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"Unknown {kind}: {key}")


class OracleError(CognisimError):
    """Network or parse failure from the cognition oracle.

    ``retryable`` is False for failures that another attempt will not fix
    (missing credentials, output that stayed malformed after correction
    attempts). ``raw_output`` carries the model's last raw text, when known,
    so callers can degrade it into a plain-text thought.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        raw_output: Optional[str] = None,
    ) -> None:
        self.retryable = retryable
        self.raw_output = raw_output
        super().__init__(message)


class SchedulerFault(CognisimError):
    """Raised when a system lets an exception escape during a tick.

    The scheduler stops on the first fault; it is never retried.
    """

    def __init__(self, *, tick: int, system: str, underlying: BaseException) -> None:
        self.tick = tick
        self.system = system
        self.underlying = underlying
        message = (
            f"System '{system}' failed at tick {tick}: "
            f"{type(underlying).__name__}: {underlying}\n\n"
            "The scheduler has been stopped.\n"
            "Remediation tips:\n"
            "  - Per-agent work should be issued through fan_out() so one agent cannot halt the tick\n"
            "  - COGNISIM_VERBOSE=true to see per-system progress\n"
            "  - DEBUG_LLM=true to inspect oracle prompts/responses"
        )
        super().__init__(message)


def is_error(value: Any) -> bool:
    """True when ``value`` is an error result rather than a success value."""

    return isinstance(value, CognisimError)


__all__ = [
    "CognisimError",
    "ValidationError",
    "NotFoundError",
    "OracleError",
    "SchedulerFault",
    "is_error",
]
