"""
Review queue ranker.

Orders due items by tag priority:
1. Drops candidates that are not yet due or are postponed
2. Scores each one as the sum of its tag weights plus the per-day decay
   weight times the days since its last review
3. Sorts descending, equal scores keeping their input order

Ranking performs no I/O; callers gather candidates and re-rank whenever the
corpus changes.
"""

import logging
import math
from collections.abc import Collection, Iterable
from datetime import datetime

from wsr.application.utils.dates import local_date
from wsr.domain.errors import MissingMetadata
from wsr.domain.models import PriorityMapping, QueueEntry, RankCandidate

logger = logging.getLogger(__name__)


def days_since(last_review: datetime | None, now: datetime) -> int:
    """Whole local calendar days between the last review and now, never negative."""
    if last_review is None:
        return 0
    return max(0, (local_date(now) - local_date(last_review)).days)


def is_eligible(
    candidate: RankCandidate, now: datetime, postponed: Collection[str] | None = None
) -> bool:
    if postponed and candidate.item_id in postponed:
        return False
    # Never-scheduled items are due immediately
    return candidate.due is None or candidate.due <= now


def priority_of(candidate: RankCandidate, mapping: PriorityMapping | None, now: datetime) -> float:
    if mapping is None:
        return 0.0

    total = 0.0
    if candidate.tags is None:
        _warn(MissingMetadata(f"{candidate.item_id}: no tags"))
    else:
        for tag in candidate.tags:
            weight = mapping.weights.get(tag.lstrip("#"))
            if weight is None:
                continue
            if math.isnan(weight):
                _warn(MissingMetadata(f"{candidate.item_id}: weight for '{tag}' is NaN"))
                continue
            total += weight

    decay = mapping.time_decay
    if decay is not None and not math.isnan(decay):
        total += decay * days_since(candidate.last_review, now)
    return total


def score(
    candidates: Iterable[RankCandidate],
    mapping: PriorityMapping | None,
    now: datetime,
    postponed: Collection[str] | None = None,
) -> list[QueueEntry]:
    """
    Score eligible candidates and sort them by descending priority.

    Args:
        candidates: Items with their tags, due date and last review time
        mapping: Tag weights; None scores every candidate 0
        now: Reference time for eligibility and decay
        postponed: Ids excluded from the result

    Returns:
        QueueEntry list; equal priorities keep input order
    """
    if mapping is None:
        _warn(MissingMetadata("no priority mapping, every item scores 0"))

    entries = [
        QueueEntry(item=c.item, priority=priority_of(c, mapping, now))
        for c in candidates
        if is_eligible(c, now, postponed)
    ]
    # sorted() is stable, so ties stay in input order
    return sorted(entries, key=lambda e: e.priority, reverse=True)


def rank(
    candidates: Iterable[RankCandidate],
    mapping: PriorityMapping | None,
    now: datetime,
    postponed: Collection[str] | None = None,
) -> list:
    return [entry.item for entry in score(candidates, mapping, now, postponed)]


def _warn(error: MissingMetadata) -> None:
    logger.warning(f"Missing metadata: {error}")
