"""
Memory model: FSRS state transitions for a single review.

Pure computation, no I/O. The FSRS-6 formulas, the (re)learning step ladder
and interval fuzz come from `fsrs.Scheduler`; this module maps MemoryState to
and from `fsrs.Card` and keeps the counters the library does not track
(reps, lapses, elapsed and scheduled days).
"""

import logging
import random
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fsrs import Card, Scheduler, State
from fsrs import Rating as FsrsRating

from wsr.domain.constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_RELEARNING_STEPS,
    FSRS_DEFAULT_WEIGHTS,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
)
from wsr.domain.errors import SchedulingInconsistency
from wsr.domain.models import LearningState, MemoryState, Rating

logger = logging.getLogger(__name__)

_STEP_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd])\s*$")
_STEP_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}
_DAY = timedelta(days=1)

_TO_CARD_STATE = {
    LearningState.LEARNING: State.Learning,
    LearningState.REVIEW: State.Review,
    LearningState.RELEARNING: State.Relearning,
}
_FROM_CARD_STATE = {v: k for k, v in _TO_CARD_STATE.items()}


def parse_step(step: str) -> timedelta:
    """Parse a learning step such as '1m', '10m', '1h' or '2d'."""
    m = _STEP_RE.match(step)
    if not m:
        raise ValueError(f"Invalid learning step: {step!r}")
    return timedelta(**{_STEP_UNITS[m.group(2)]: float(m.group(1))})


@dataclass(frozen=True)
class SchedulerParameters:
    weights: tuple[float, ...] = FSRS_DEFAULT_WEIGHTS
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL
    enable_fuzz: bool = True
    fuzz_seed: int = 0
    learning_steps: tuple[str, ...] = DEFAULT_LEARNING_STEPS
    relearning_steps: tuple[str, ...] = DEFAULT_RELEARNING_STEPS


def _utc(dt: datetime) -> datetime:
    # fsrs only accepts timezone-aware UTC datetimes
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@contextmanager
def _seeded_random(seed: str):
    """Seed the global generator fsrs draws fuzz from, restoring it afterwards."""
    saved = random.getstate()
    random.seed(seed)
    try:
        yield
    finally:
        random.setstate(saved)


class MemoryModel:
    """
    FSRS scheduler producing the next MemoryState for every rating.

    Stateless between calls. Fuzz is seeded from the configured seed and the
    review inputs, so identical inputs give identical outcomes.
    """

    def __init__(self, params: SchedulerParameters | None = None):
        self.params = params or SchedulerParameters()
        if len(self.params.weights) != len(FSRS_DEFAULT_WEIGHTS):
            raise ValueError(
                f"Expected {len(FSRS_DEFAULT_WEIGHTS)} FSRS weights, "
                f"got {len(self.params.weights)}"
            )
        self.scheduler = Scheduler(
            parameters=self.params.weights,
            desired_retention=self.params.desired_retention,
            learning_steps=tuple(parse_step(s) for s in self.params.learning_steps),
            relearning_steps=tuple(parse_step(s) for s in self.params.relearning_steps),
            maximum_interval=self.params.maximum_interval,
            enable_fuzzing=self.params.enable_fuzz,
        )

    # ---------- Public API ----------

    def create_state(self, now: datetime) -> MemoryState:
        return MemoryState.new(now)

    def retrievability(self, state: MemoryState, now: datetime) -> float:
        """Current recall probability (0 for items never reviewed)."""
        if state.state == LearningState.NEW or state.last_review is None:
            return 0.0
        if state.stability <= 0:
            return 0.0
        return self.scheduler.get_card_retrievability(self._to_card(state), _utc(now))

    def compute_outcomes(self, state: MemoryState, now: datetime) -> dict[Rating, MemoryState]:
        """
        Enumerate the next state for each of the four ratings.

        Args:
            state: Current memory state.
            now: Review time.

        Returns:
            Mapping with exactly one MemoryState per Rating.
        """
        return {rating: self.apply_rating(state, now, rating) for rating in Rating}

    def apply_rating(self, state: MemoryState, now: datetime, rating: Rating) -> MemoryState:
        """
        Return the next state for the given rating.

        Raises:
            SchedulingInconsistency: if the scheduler returns an incomplete card.
        """
        review_time = _utc(now)
        card = self._to_card(state)
        with _seeded_random(self._fuzz_seed(state, review_time, rating)):
            card, _ = self.scheduler.review_card(card, FsrsRating(int(rating)), review_time)

        if card.stability is None or card.difficulty is None or card.due is None:
            raise SchedulingInconsistency(
                f"No scheduling outcome for rating {rating!r} (state={state.state.name})"
            )

        elapsed_days = 0
        if state.last_review is not None:
            elapsed_days = max(0, int((review_time - _utc(state.last_review)) / _DAY))

        result = MemoryState(
            due=card.due,
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=elapsed_days,
            scheduled_days=max(0, (card.due - review_time) // _DAY),
            learning_steps=card.step or 0,
            reps=state.reps + 1,
            lapses=state.lapses + (1 if rating == Rating.AGAIN else 0),
            state=_FROM_CARD_STATE[card.state],
            last_review=review_time,
        )
        logger.debug(
            f"{rating.name}: {state.state.name} -> {result.state.name}, "
            f"S={result.stability:.2f} D={result.difficulty:.2f} "
            f"ivl={result.scheduled_days}d"
        )
        return result

    # ---------- Card mapping ----------

    def _to_card(self, state: MemoryState) -> Card:
        if state.state == LearningState.NEW or state.stability <= 0:
            return Card(card_id=0, state=State.Learning, step=0, due=_utc(state.due))

        card_state = _TO_CARD_STATE[state.state]
        return Card(
            card_id=0,
            state=card_state,
            step=None if card_state == State.Review else max(state.learning_steps, 0),
            stability=state.stability,
            difficulty=min(max(state.difficulty, MIN_DIFFICULTY), MAX_DIFFICULTY),
            due=_utc(state.due),
            last_review=_utc(state.last_review) if state.last_review else None,
        )

    def _fuzz_seed(self, state: MemoryState, now: datetime, rating: Rating) -> str:
        return (
            f"{self.params.fuzz_seed}:{int(now.timestamp() * 1000)}:{int(rating)}:"
            f"{state.reps}:{state.stability:.6f}:{state.difficulty:.6f}"
        )
