"""
Working memory and experience log operations.

Working memory is a bounded, importance-ranked list of recent insights and
observations per agent. When it overflows, the lowest-ranked items are
forgotten (importance first, then age). The experience log is a plain bounded
FIFO of action outcomes so that failures feed back into later reasoning.

Both structures live as components on the agent entity; the functions here
are the only code that mutates them.
"""

from typing import Iterable, List, Optional

from .world import ExperienceEntry, ExperienceLog, MemoryItem, WorkingMemory


def remember(memory: WorkingMemory, item: MemoryItem) -> None:
    """Add one item and trim to capacity."""
    remember_many(memory, [item])


def remember_many(memory: WorkingMemory, items: Iterable[MemoryItem]) -> None:
    """Add items, drop exact duplicates of existing content, and trim.

    A duplicate refreshes the stored item's timestamp and keeps the higher
    importance rather than inserting a second copy.
    """
    by_content = {existing.content: existing for existing in memory.items}
    for item in items:
        existing = by_content.get(item.content)
        if existing is not None:
            existing.importance = max(existing.importance, item.importance)
            existing.timestamp = max(existing.timestamp, item.timestamp)
            continue
        memory.items.append(item)
        by_content[item.content] = item

    # Rank by importance, newest first among equals, then forget the tail.
    memory.items.sort(key=lambda entry: (entry.importance, entry.timestamp), reverse=True)
    del memory.items[memory.capacity:]


def recent_contents(memory: Optional[WorkingMemory], limit: int = 10) -> List[str]:
    """Most recent item contents, newest first."""
    if memory is None:
        return []
    ordered = sorted(memory.items, key=lambda entry: entry.timestamp, reverse=True)
    return [entry.content for entry in ordered[:limit]]


def relevant_items(
    memory: Optional[WorkingMemory],
    query: str,
    limit: int = 5,
) -> List[MemoryItem]:
    """Importance-ranked items boosted by keyword overlap with ``query``.

    Falls back to plain importance order when nothing matches.
    """
    if memory is None or not memory.items:
        return []

    terms = [term for term in query.lower().replace(",", " ").split() if len(term) > 3]
    scored = []
    for entry in memory.items:
        text = entry.content.lower()
        keyword_score = sum(1.5 for term in terms if term in text)
        if terms and keyword_score <= 0.0:
            continue
        scored.append((entry.importance + keyword_score, entry.timestamp, entry))

    if not scored:
        scored = [(entry.importance, entry.timestamp, entry) for entry in memory.items]

    scored.sort(key=lambda triple: (triple[0], triple[1]), reverse=True)
    return [entry for _, _, entry in scored[:limit]]


def record_experience(log: ExperienceLog, entry: ExperienceEntry) -> None:
    """Append an action outcome, dropping the oldest beyond the limit."""
    log.entries.append(entry)
    overflow = len(log.entries) - log.limit
    if overflow > 0:
        del log.entries[:overflow]


def recent_experiences(log: Optional[ExperienceLog], limit: int = 5) -> List[ExperienceEntry]:
    if log is None:
        return []
    return log.entries[-limit:]
