"""
Review session state machine.

IDLE -> PRESENTING(item) -> GRADED(item, rating) -> PRESENTING(next) ... -> COMPLETE

ABORTED is reachable from any state except COMPLETE. Aborting rolls nothing
back: grades already persisted stay persisted.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from wsr.application.deck_iterator import DeckIterator
from wsr.application.postponement import PostponementSet
from wsr.application.scheduling import MemoryModel
from wsr.application.utils.dates import utc_now
from wsr.domain.deck import CardListType, DeckTree
from wsr.domain.models import MemoryState, Rating, ReviewItem, ReviewMode, SessionAction
from wsr.domain.ports import GradeProvider, ItemRepository

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    GRADED = "graded"
    COMPLETE = "complete"
    ABORTED = "aborted"


class ReviewSequencer:
    """
    Drives one review session over a full tree and a remaining tree.

    The full tree holds every item and is only used for progress counts. The
    remaining tree shrinks as items are graded or postponed.
    """

    def __init__(
        self,
        model: MemoryModel,
        repository: ItemRepository,
        iterator: DeckIterator | None = None,
        postponed: PostponementSet | None = None,
        mode: ReviewMode = ReviewMode.REVIEW,
    ):
        self.model = model
        self.repository = repository
        self.iterator = iterator or DeckIterator()
        self.postponed = postponed if postponed is not None else PostponementSet()
        self.mode = mode
        self.answered: set[str] = set()
        self.last_rating: Rating | None = None
        self._full: DeckTree | None = None
        self._remaining: DeckTree | None = None
        self._state = SessionState.IDLE
        self._current: ReviewItem | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_item(self) -> ReviewItem | None:
        return self._current

    @property
    def remaining_count(self) -> int:
        return self._remaining.card_count(CardListType.ALL) if self._remaining else 0

    @property
    def total_count(self) -> int:
        return self._full.card_count(CardListType.ALL) if self._full else 0

    def set_deck_tree(self, full: DeckTree, remaining: DeckTree) -> None:
        if self._state not in (SessionState.IDLE, SessionState.COMPLETE, SessionState.ABORTED):
            raise RuntimeError(f"Cannot replace deck trees while {self._state.value}")
        self._full = full
        self._remaining = remaining
        self._state = SessionState.IDLE
        self._current = None

    def start(self) -> ReviewItem | None:
        self._require(SessionState.IDLE)
        if self._remaining is None:
            raise RuntimeError("No deck tree set")
        self.iterator.set_deck_tree(self._remaining)
        logger.info(
            f"Starting {self.mode.value} session: "
            f"{self.remaining_count} of {self.total_count} item(s) to go"
        )
        return self._advance()

    async def grade(self, rating: Rating, now: datetime) -> MemoryState | None:
        """
        Grade the presented item and move on.

        Review mode computes and persists the new memory state; cram mode
        leaves scheduling untouched and returns None.
        """
        self._require(SessionState.PRESENTING)
        item = self._current
        if item is None:
            raise RuntimeError("No item presented")

        new_state: MemoryState | None = None
        if self.mode is ReviewMode.REVIEW:
            new_state = self.model.apply_rating(item.state, now, rating)
            await self.repository.save_state(item.id, new_state, item.parent_node)
            item.state = new_state

        self._state = SessionState.GRADED
        self.last_rating = rating
        self.answered.add(item.id)
        self._remaining.remove_item(item.id)
        logger.debug(f"Graded {item.id} as {rating.name}")
        self._advance()
        return new_state

    def postpone_current(self) -> ReviewItem | None:
        """Bury the presented item for this session without grading it."""
        self._require(SessionState.PRESENTING)
        item = self._current
        self.postponed.add(item.id)
        self._remaining.remove_item(item.id)
        logger.debug(f"Postponed {item.id}")
        return self._advance()

    def skip_current(self) -> ReviewItem | None:
        self._require(SessionState.PRESENTING)
        return self._advance()

    def abort(self) -> None:
        if self._state is SessionState.COMPLETE:
            raise RuntimeError("Session already complete")
        logger.info(f"Session aborted with {len(self.answered)} item(s) answered")
        self._state = SessionState.ABORTED
        self._current = None

    async def run(
        self, provider: GradeProvider, clock: Callable[[], datetime] = utc_now
    ) -> SessionState:
        """Present items until the session completes or the host closes it."""
        if self._state is SessionState.IDLE:
            self.start()
        while self._state is SessionState.PRESENTING:
            answer = await provider.request_grade(self._current)
            if answer is None or answer is SessionAction.QUIT:
                self.abort()
                break
            if answer is SessionAction.POSTPONE:
                self.postpone_current()
            elif answer is SessionAction.SKIP:
                self.skip_current()
            else:
                await self.grade(answer, clock())
        return self._state

    def _advance(self) -> ReviewItem | None:
        self._current = self.iterator.advance()
        if self._current is None:
            self._state = SessionState.COMPLETE
            logger.info(f"Session complete: {len(self.answered)} item(s) answered")
        else:
            self._state = SessionState.PRESENTING
        return self._current

    def _require(self, expected: SessionState) -> None:
        if self._state is not expected:
            raise RuntimeError(f"Expected session {expected.value}, got {self._state.value}")
