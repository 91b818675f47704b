"""
Review Service: application layer orchestrator.

Owns the corpus-wide sync pass (scan, deck trees, ranked queue) and the
operations that change an item's review status. Sync is mutually exclusive
with itself: a call made while a pass is running is skipped, not queued. Writes
made while a pass is running mark it stale, and the running pass rescans
before it installs its results.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime

from wsr.application.deck_iterator import DeckIterator, IteratorOrder
from wsr.application.postponement import PostponementSet
from wsr.application.queue_ranker import score
from wsr.application.review_sequencer import ReviewSequencer
from wsr.application.scheduling import MemoryModel
from wsr.application.utils.dates import local_date, utc_now
from wsr.domain.constants import DISMISS_TAG, REVIEW_TAG
from wsr.domain.deck import DeckTree, build_deck_tree, filter_remaining
from wsr.domain.errors import ItemNotFound
from wsr.domain.models import (
    MemoryState,
    PriorityMapping,
    QueueEntry,
    RankCandidate,
    Rating,
    ReviewItem,
    ReviewMode,
    TopicPath,
)
from wsr.domain.ports import ItemRepository, PostponementStore

logger = logging.getLogger(__name__)


class ReviewService:
    """
    Application service for the global review queue and deck sessions.

    Depends on the ItemRepository and PostponementStore ports, not on
    concrete adapters.
    """

    def __init__(
        self,
        repository: ItemRepository,
        postponement_store: PostponementStore,
        model: MemoryModel | None = None,
        order: IteratorOrder | None = None,
        iterator_seed: int | None = None,
        clear_postponed_on_new_day: bool = True,
        review_tag: str = REVIEW_TAG,
        dismiss_tag: str = DISMISS_TAG,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            repository: Port for reading and writing review items.
            postponement_store: Port persisting the postponed ids.
            model: Memory model; uses default FSRS parameters if not provided.
            order: Deck/card order for sessions.
            iterator_seed: Seed for random session orders.
            clear_postponed_on_new_day: Empty the postponed set on the first
                sync of a new day.
        """
        self._repo = repository
        self._store = postponement_store
        self.model = model or MemoryModel()
        self.order = order or IteratorOrder()
        self.iterator_seed = iterator_seed
        self.clear_postponed_on_new_day = clear_postponed_on_new_day
        self.review_tag = review_tag
        self.dismiss_tag = dismiss_tag
        self._clock = clock
        self._lock = asyncio.Lock()
        self._stale = False

        today = local_date(clock())
        self.postponed = PostponementSet.load(
            postponement_store, today, clear_postponed_on_new_day
        )
        self._postponed_day = today

        self.items: dict[str, ReviewItem] = {}
        self.mapping: PriorityMapping | None = None
        self.full_tree: DeckTree | None = None
        self.remaining_tree: DeckTree | None = None
        self.queue: list[QueueEntry] = []
        self.last_sync: datetime | None = None

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    # ---------- Sync ----------

    async def sync(self, now: datetime | None = None) -> bool:
        """
        Rescan the corpus and rebuild the deck trees and ranked queue.

        Returns:
            False if a sync was already running (nothing done), True otherwise.
        """
        if self._lock.locked():
            logger.debug("Sync already in progress, skipping")
            return False

        async with self._lock:
            self._stale = True
            while self._stale:
                # Writes landing mid-pass set this again and force a rescan
                self._stale = False
                await self._scan(now)
            return True

    async def _scan(self, now: datetime | None) -> None:
        self._roll_postponed(local_date(now or self._clock()))

        items = await self._repo.list_items()
        mapping = await self._repo.load_priority_mapping()
        # Items without a stored due date are due as of the scan
        now = now or self._clock()

        candidates = [RankCandidate.from_item(item) for item in items]
        full = build_deck_tree(items, now, self.postponed)
        self.items = {item.id: item for item in items}
        self.mapping = mapping
        self.full_tree = full
        self.remaining_tree = filter_remaining(full, self.postponed)
        self.queue = score(candidates, mapping, now, self.postponed)
        self.last_sync = now

        logger.info(
            f"Synced {len(items)} review item(s): {len(self.queue)} due, "
            f"{len(self.postponed)} postponed"
        )

    # ---------- Queue ----------

    def next_item(self) -> ReviewItem | None:
        return self.queue[0].item if self.queue else None

    async def get_item(self, item_id: str) -> ReviewItem:
        item = self.items.get(item_id) or await self._repo.get_item(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    async def record_review(
        self, item_id: str, rating: Rating, now: datetime | None = None
    ) -> MemoryState:
        """Apply a rating to an item, persist the new state and refresh the queue."""
        item = await self.get_item(item_id)
        new_state = self.model.apply_rating(item.state, now or self._clock(), rating)
        await self._repo.save_state(item.id, new_state, item.parent_node)
        item.state = new_state
        logger.info(f"Recorded {rating.name} for {item_id}, next due {new_state.due.isoformat()}")
        await self._refresh(now)
        return new_state

    async def dismiss(self, item_id: str) -> None:
        """Withdraw an item from scheduling by swapping its review tag for the dismiss tag."""
        item = await self.get_item(item_id)
        tags = (set(item.tags) - {self.review_tag}) | {self.dismiss_tag}
        await self._repo.set_tags(item.id, frozenset(tags))
        self._forget(item.id)
        logger.info(f"Dismissed {item_id}")
        if self.is_syncing:
            self._stale = True

    async def postpone(self, item_id: str, now: datetime | None = None) -> None:
        today = local_date(now or self._clock())
        await self.get_item(item_id)
        self.postponed.add(item_id)
        self.save_postponements(today)
        self.queue = [e for e in self.queue if e.item.id != item_id]
        if self.remaining_tree is not None:
            self.remaining_tree.remove_item(item_id)

    async def unpostpone(self, item_id: str, now: datetime | None = None) -> None:
        self.postponed.remove(item_id)
        self.save_postponements(local_date(now or self._clock()))
        await self._refresh(now)

    def save_postponements(self, today: date | None = None) -> None:
        today = today or local_date(self._clock())
        self.postponed.save(self._store, today)
        self._postponed_day = today

    # ---------- Sessions ----------

    def create_sequencer(
        self, mode: ReviewMode = ReviewMode.REVIEW, scope: str | None = None
    ) -> ReviewSequencer:
        """
        Sequencer over the synced deck trees; shares this service's postponed set.

        Args:
            mode: Review or cram.
            scope: Restrict the session to one deck (a topic path such as
                'lang/french') or to the items at or below an id prefix
                (a note or a folder). None reviews the whole corpus.

        Raises:
            RuntimeError: if the service has not synced yet.
            ValueError: if the scope matches no deck and no item.
        """
        if self.full_tree is None:
            raise RuntimeError("No deck tree yet, run sync() first")
        full = self.full_tree if scope is None else self._scoped_tree(scope)
        remaining = filter_remaining(full, self.postponed, mode=mode)
        sequencer = ReviewSequencer(
            self.model,
            self._repo,
            DeckIterator(self.order, self.iterator_seed),
            self.postponed,
            mode,
        )
        sequencer.set_deck_tree(full, remaining)
        return sequencer

    # ---------- Tags ----------

    async def add_tags(self, prefix: str, tags: frozenset[str]) -> list[str]:
        """
        Add tags to every note at or below `prefix` (a note id or a folder).

        Returns:
            Ids of the notes whose tags changed.
        """
        changed = []
        for item_id in await self._repo.list_ids(prefix):
            item = await self._repo.get_item(item_id)
            if item is None or tags <= item.tags:
                continue
            await self._repo.set_tags(item_id, item.tags | tags)
            changed.append(item_id)
        logger.info(f"Tagged {len(changed)} note(s) under '{prefix}' with {sorted(tags)}")
        if changed:
            await self._refresh()
        return changed

    # ---------- Helpers ----------

    async def _refresh(self, now: datetime | None = None) -> None:
        if not await self.sync(now):
            # The running pass may have read storage before this write
            self._stale = True

    def _scoped_tree(self, scope: str) -> DeckTree:
        deck = self.full_tree.find(TopicPath.parse(scope)) if scope.strip("/") else None
        if deck is not None:
            items = [i for d in self.full_tree.iter_preorder(deck) for i in d.all]
        else:
            prefix = scope.strip("/").removesuffix(".md")
            items = [
                i for i in self.items.values() if i.id == prefix or i.id.startswith(f"{prefix}/")
            ]
        if not items:
            raise ValueError(f"No deck or items match '{scope}'")
        return build_deck_tree(items, self.last_sync, self.postponed)

    def _roll_postponed(self, today: date) -> None:
        if not self.clear_postponed_on_new_day or today <= self._postponed_day:
            return
        if len(self.postponed):
            logger.info(f"New day, clearing {len(self.postponed)} postponed item(s)")
            self.postponed.clear()
            self.save_postponements(today)
        self._postponed_day = today

    def _forget(self, item_id: str) -> None:
        self.items.pop(item_id, None)
        self.queue = [e for e in self.queue if e.item.id != item_id]
        for tree in (self.full_tree, self.remaining_tree):
            if tree is not None:
                tree.remove_item(item_id)
