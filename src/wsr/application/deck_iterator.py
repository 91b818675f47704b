"""
Deck tree iterator.

Produces a finite, deterministic item sequence over a DeckTree:
1. Decks are visited according to the deck order
2. Within a deck, items are sorted by the card order key, ties kept in
   insertion order
3. Random orders draw from a generator seeded at construction

Item lists are snapshotted when the tree is set. Items removed from the tree
afterwards are skipped, so every remaining item is yielded exactly once.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum

from wsr.domain.deck import Deck, DeckTree
from wsr.domain.models import ReviewItem

logger = logging.getLogger(__name__)


class DeckOrder(Enum):
    SEQUENTIAL = "Sequential"
    LEVEL_ORDER = "LevelOrder"
    PREV_DECK_COMPLETE_SEQUENTIAL = "PrevDeckComplete_Sequential"
    RANDOM = "Random"


class CardOrder(Enum):
    SEQUENTIAL = "Sequential"
    DUE_FIRST_SEQUENTIAL = "DueFirstSequential"
    NEW_FIRST_SEQUENTIAL = "NewFirstSequential"
    RANDOM = "Random"
    DUE_FIRST_RANDOM = "DueFirstRandom"
    NEW_FIRST_RANDOM = "NewFirstRandom"


@dataclass(frozen=True)
class IteratorOrder:
    deck_order: DeckOrder = DeckOrder.PREV_DECK_COMPLETE_SEQUENTIAL
    card_order: CardOrder = CardOrder.DUE_FIRST_SEQUENTIAL

    @classmethod
    def parse(cls, deck_order: str | None, card_order: str | None) -> "IteratorOrder":
        """Build from setting strings, falling back to the defaults on unknown names."""
        return cls(
            deck_order=_parse_enum(DeckOrder, deck_order, cls.deck_order),
            card_order=_parse_enum(CardOrder, card_order, cls.card_order),
        )


def _parse_enum(enum_cls, raw, default):
    if raw is None:
        return default
    for member in enum_cls:
        if raw in (member.value, member.name):
            return member
    logger.warning(f"Unknown {enum_cls.__name__} '{raw}', using {default.value}")
    return default


@dataclass
class IteratorCursor:
    """Traversal position: sibling-index stack of the active deck plus item index."""

    deck_path: list[int] = field(default_factory=list)
    item_index: int = -1


@dataclass
class _Segment:
    deck: Deck | None  # None when items span decks (Sequential deck order)
    items: list[ReviewItem]


class DeckIterator:
    def __init__(self, order: IteratorOrder | None = None, seed: int | None = None):
        self.order = order or IteratorOrder()
        self.seed = seed
        self._tree: DeckTree | None = None
        self._segments: list[_Segment] = []
        self._segment_index = 0
        self._current: ReviewItem | None = None
        self.cursor = IteratorCursor()

    def set_deck_tree(self, tree: DeckTree) -> None:
        self._tree = tree
        self.reset()

    def reset(self) -> None:
        if self._tree is None:
            raise RuntimeError("No deck tree set")
        rng = random.Random(self.seed)
        self._segments = self._build_segments(self._tree, rng)
        self._segment_index = 0
        self._current = None
        self.cursor = IteratorCursor()

    @property
    def current_item(self) -> ReviewItem | None:
        return self._current

    @property
    def current_deck(self) -> Deck | None:
        if self._current is None or self._tree is None:
            return None
        return self._tree.deck_of(self._current.id)

    @property
    def has_finished(self) -> bool:
        return self._segment_index >= len(self._segments)

    def advance(self) -> ReviewItem | None:
        """Move to the next item; None once the traversal is exhausted."""
        if self._tree is None:
            raise RuntimeError("No deck tree set")
        while self._segment_index < len(self._segments):
            segment = self._segments[self._segment_index]
            nxt = self.cursor.item_index + 1
            while nxt < len(segment.items):
                item = segment.items[nxt]
                if item.id in self._tree:
                    self.cursor.item_index = nxt
                    self._current = item
                    deck = segment.deck or self._tree.deck_of(item.id)
                    if deck is not None:
                        self.cursor.deck_path = self._tree.sibling_path(deck)
                    return item
                nxt += 1
            self._segment_index += 1
            self.cursor.item_index = -1
        self._current = None
        return None

    # ---------- Ordering ----------

    def _build_segments(self, tree: DeckTree, rng: random.Random) -> list[_Segment]:
        deck_order = self.order.deck_order
        if deck_order is DeckOrder.SEQUENTIAL:
            decks = list(tree.iter_preorder())
            items = [i for d in decks for i in d.all]
            new_ids = {i.id for d in decks for i in d.new}
            due = [i for d in decks for i in d.due_now]
            return [_Segment(None, self._order_items(items, new_ids, due, rng))]

        if deck_order is DeckOrder.LEVEL_ORDER:
            decks = list(tree.iter_level_order())
        else:
            decks = list(tree.iter_preorder())
            if deck_order is DeckOrder.RANDOM:
                rng.shuffle(decks)

        return [
            _Segment(d, self._order_items(d.all, {i.id for i in d.new}, d.due_now, rng))
            for d in decks
            if d.all
        ]

    def _order_items(
        self,
        items: list[ReviewItem],
        new_ids: set[str],
        due: list[ReviewItem],
        rng: random.Random,
    ) -> list[ReviewItem]:
        card_order = self.order.card_order
        if card_order is CardOrder.SEQUENTIAL:
            return list(items)
        if card_order is CardOrder.RANDOM:
            shuffled = list(items)
            rng.shuffle(shuffled)
            return shuffled

        due_ids = {i.id for i in due}
        due_items = sorted((i for i in items if i.id in due_ids), key=lambda i: i.state.due)
        new_items = [i for i in items if i.id in new_ids]
        rest = [i for i in items if i.id not in due_ids and i.id not in new_ids]

        if card_order in (CardOrder.DUE_FIRST_RANDOM, CardOrder.NEW_FIRST_RANDOM):
            due_items = [i for i in items if i.id in due_ids]
            rng.shuffle(due_items)
            rng.shuffle(new_items)
            rng.shuffle(rest)

        if card_order in (CardOrder.DUE_FIRST_SEQUENTIAL, CardOrder.DUE_FIRST_RANDOM):
            return due_items + new_items + rest
        return new_items + due_items + rest
