"""Lexicographic rank keys for manual task ordering.

Pure functions - no I/O.

A rank is an ordinary string compared with plain string ordering. Moving,
pinning or unpinning a task only ever rewrites that task's rank: a new key is
always found strictly between two neighbours, extending the string when the
neighbours are adjacent.
"""

from datetime import datetime, timezone
from typing import Iterable, Protocol

# Generated ranks use printable ASCII "!".."~" as digits.
MIN_DIGIT = ord("!")
MAX_DIGIT = ord("~")


class Rankable(Protocol):
    """Anything that takes part in rank ordering."""

    id: str
    rank: str
    is_pinned: bool
    is_done: bool


def initial_rank(created_at: datetime) -> str:
    """Rank for a freshly created task: its creation time as UTC ISO-8601."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    utc = created_at.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compare(a: str, b: str) -> int:
    """Three-way plain string comparison (-1, 0, 1)."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def new_rank(after: str | None = None, before: str | None = None) -> str:
    """
    Return a rank sorting strictly after `after` and strictly before `before`.

    A missing bound is open-ended. Bounds given in the wrong order are swapped;
    equal bounds leave no gap, so the result sorts just after them instead.
    The result never ends on the lowest digit, which keeps room below it.
    """
    lo = after or ""
    hi = before
    if hi is not None:
        if hi == lo:
            hi = None
        elif hi < lo:
            lo, hi = hi, lo

    out: list[str] = []
    while True:
        if hi is not None and lo and lo[0] == hi[0]:
            out.append(lo[0])
            lo, hi = lo[1:], hi[1:]
            continue

        floor = ord(lo[0]) if lo else MIN_DIGIT - 1
        ceil = ord(hi[0]) if hi is not None else MAX_DIGIT + 1
        pick_lo = max(floor + 1, MIN_DIGIT)
        pick_hi = min(ceil - 1, MAX_DIGIT)

        if pick_lo <= pick_hi:
            mid = (pick_lo + pick_hi + 1) // 2
            out.append(chr(mid))
            if mid > MIN_DIGIT:
                return "".join(out)
            # Ended on the lowest digit; anything may follow it.
            lo, hi = "", None
            continue

        if lo:
            # No free digit here: keep the lower bound's digit and go one level
            # deeper, where the upper bound no longer constrains us.
            out.append(lo[0])
            lo, hi = lo[1:], None
            continue

        # Lower bound exhausted and the upper bound sits at (or under) the lowest digit.
        if len(hi) > 1:
            out.append(hi[0])
            hi = hi[1:]
            continue
        if ceil > 0:
            out.append(chr(ceil - 1))
            lo, hi = "", None
            continue
        # Nothing sorts between s and s + "\x00"; settle for the next key after it.
        return "".join(out) + hi + chr(MAX_DIGIT)


def unique_rank(rank: str, taken: Iterable[str]) -> str:
    """
    Return `rank`, or the nearest free key just after it when already taken.

    The replacement extends `rank`, so it still sorts before any rank that was
    greater than the original (a later creation time stays later).
    """
    taken = set(taken)
    if rank not in taken:
        return rank
    above = [r for r in taken if r > rank]
    return new_rank(rank, min(above + [rank + chr(MAX_DIGIT)]))


def pin_rank(task: Rankable, siblings: Iterable[Rankable]) -> str:
    """
    Rank for a task being pinned: after every pinned, non-done sibling.

    Keeps the current rank when nothing else is pinned.
    """
    pinned = [s.rank for s in siblings if s.id != task.id and s.is_pinned and not s.is_done]
    if not pinned:
        return task.rank
    return new_rank(max(pinned), None)


def unpin_rank(task: Rankable, siblings: Iterable[Rankable]) -> str:
    """
    Rank for a task being unpinned: before every unpinned, non-done sibling.

    Keeps the current rank when there are no unpinned siblings. Nothing sorts
    before an empty rank; the store backfills those on open.
    """
    normal = [s.rank for s in siblings if s.id != task.id and not s.is_pinned and not s.is_done]
    if not normal:
        return task.rank
    return new_rank(None, min(normal))
