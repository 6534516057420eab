"""Ordering rules for a bucket's waiting entries.

Two orders exist side by side: the FIFO *position* shown to patients, and
the *cascade rank* used to pick who is offered a freed slot. Priority tier
dominates the cascade rank, so an urgent late joiner outranks a normal early
one even though its position number is larger.
"""
from typing import Dict, Iterable, Optional, Tuple

from ..ports.waitlist_repo import PRIORITIES, WAITING, WaitlistEntryDto

PRIORITY_WEIGHTS: Dict[str, int] = {name: weight for weight, name in enumerate(PRIORITIES)}


def cascade_rank(priority: str, join_sequence: int) -> Tuple[int, int]:
    """Sort key for offer selection: highest tier first, then earliest joiner."""
    try:
        weight = PRIORITY_WEIGHTS[priority]
    except KeyError:
        raise ValueError(f"Unknown priority tier: {priority!r}")
    return (-weight, join_sequence)


def select_next(entries: Iterable[WaitlistEntryDto]) -> Optional[WaitlistEntryDto]:
    waiting = [e for e in entries if e.status == WAITING]
    return min(waiting, key=lambda e: cascade_rank(e.priority, e.join_sequence), default=None)


def queue_positions(entries: Iterable[WaitlistEntryDto]) -> Dict[str, int]:
    """Map entry id -> 1-based FIFO position among the waiting entries given."""
    waiting = sorted((e for e in entries if e.status == WAITING), key=lambda e: e.join_sequence)
    return {e.id: index for index, e in enumerate(waiting, start=1)}
