"""
Domain models for the review engine.

These are pure data structures with no I/O or external dependencies.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class Rating(IntEnum):
    """Button pressed for a review (1=Again, 2=Hard, 3=Good, 4=Easy)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: "str | int | Rating") -> "Rating":
        if isinstance(value, Rating):
            return value
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            return cls(int(value))
        return cls[str(value).strip().upper()]


class LearningState(IntEnum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class ReviewMode(Enum):
    """Review honours due dates and reschedules; Cram presents everything, read-only."""

    REVIEW = "review"
    CRAM = "cram"


class SessionAction(Enum):
    """Non-grading answers a host may give for the presented item."""

    POSTPONE = "postpone"
    SKIP = "skip"
    QUIT = "quit"


@dataclass(frozen=True)
class MemoryState:
    """
    Scheduling state of a single reviewable item.

    Attributes:
        due: When the item is next due.
        stability: Days until recall probability decays to the target retention.
        difficulty: Item difficulty on the 1-10 scale (0 while New).
        elapsed_days: Days between the previous two reviews.
        scheduled_days: Interval (days) assigned by the last review.
        learning_steps: Index into the (re)learning step ladder.
        reps: Total number of reviews.
        lapses: Number of Again answers.
        state: Learning phase.
        last_review: Time of the last review, None if never reviewed.
    """

    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    learning_steps: int = 0
    reps: int = 0
    lapses: int = 0
    state: LearningState = LearningState.NEW
    last_review: datetime | None = None

    @classmethod
    def new(cls, now: datetime) -> "MemoryState":
        return cls(due=now)

    def evolve(self, **changes: Any) -> "MemoryState":
        return replace(self, **changes)


@dataclass(frozen=True)
class TopicPath:
    """Hierarchical label sequence placing an item in the deck tree."""

    parts: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: "str | TopicPath | tuple[str, ...] | list[str] | None") -> "TopicPath":
        if raw is None:
            return cls()
        if isinstance(raw, TopicPath):
            return raw
        if isinstance(raw, (tuple, list)):
            return cls(tuple(str(p).strip() for p in raw if str(p).strip()))
        text = str(raw).strip().lstrip("#")
        return cls(tuple(p.strip() for p in text.split("/") if p.strip()))

    @property
    def is_empty(self) -> bool:
        return not self.parts

    def __str__(self) -> str:
        return "/".join(self.parts)


@dataclass
class ReviewItem:
    """A note or flashcard known to the engine."""

    id: str
    state: MemoryState
    title: str = ""
    tags: frozenset[str] = frozenset()
    topic_path: TopicPath = field(default_factory=TopicPath)
    parent_node: str | None = None
    path: Path | None = None


@dataclass(frozen=True)
class RankCandidate:
    """Input row for the review-queue ranker."""

    item: Any
    item_id: str
    tags: frozenset[str] | None
    due: datetime | None
    last_review: datetime | None = None

    @classmethod
    def from_item(cls, item: ReviewItem) -> "RankCandidate":
        return cls(
            item=item,
            item_id=item.id,
            tags=item.tags,
            due=item.state.due,
            last_review=item.state.last_review,
        )


@dataclass(frozen=True)
class QueueEntry:
    item: Any
    priority: float


@dataclass(frozen=True)
class PriorityMapping:
    """Tag weights plus the reserved per-day decay weight."""

    weights: dict[str, float] = field(default_factory=dict)
    time_decay: float | None = None

    @classmethod
    def from_metadata(cls, meta: dict[str, Any] | None, time_decay_key: str) -> "PriorityMapping":
        """
        Parse a flat key -> number dictionary.

        String numbers are accepted. Keys whose value is not a finite number
        are skipped with a warning. A leading '#' on a key is ignored.
        """
        weights: dict[str, float] = {}
        time_decay: float | None = None
        for raw_key, raw_value in (meta or {}).items():
            key = str(raw_key).strip()
            if isinstance(raw_value, bool):
                logger.warning(f"Priority '{key}' has non-numeric weight {raw_value!r}, skipped")
                continue
            try:
                value = float(raw_value)
            except (TypeError, ValueError):
                logger.warning(f"Priority '{key}' has non-numeric weight {raw_value!r}, skipped")
                continue
            if not math.isfinite(value):
                logger.warning(f"Priority '{key}' has invalid weight {raw_value!r}, skipped")
                continue
            if key == time_decay_key:
                time_decay = value
            else:
                weights[key.lstrip("#")] = value
        return cls(weights=weights, time_decay=time_decay)
