"""
Deck tree model.

Decks live in an arena owned by DeckTree; a deck refers to its parent and
children by arena index, so the tree holds no reference cycles. Decks are only
ever attached to freshly created parents, which keeps the tree acyclic.
"""

from collections import deque
from collections.abc import Collection, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .models import LearningState, ReviewItem, ReviewMode, TopicPath


class CardListType(Enum):
    NEW = "new"
    DUE = "due"
    ALL = "all"


@dataclass
class Deck:
    name: str
    index: int
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    new: list[ReviewItem] = field(default_factory=list)
    due_now: list[ReviewItem] = field(default_factory=list)
    all: list[ReviewItem] = field(default_factory=list)

    def items(self, list_type: CardListType) -> list[ReviewItem]:
        if list_type is CardListType.NEW:
            return self.new
        if list_type is CardListType.DUE:
            return self.due_now
        return self.all

    @property
    def is_root(self) -> bool:
        return self.parent is None


class DeckTree:
    """Arena of decks rooted at index 0."""

    def __init__(self, root_name: str = "root"):
        self._decks: list[Deck] = [Deck(name=root_name, index=0)]
        self._item_deck: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._decks)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._item_deck

    @property
    def root(self) -> Deck:
        return self._decks[0]

    def deck(self, index: int) -> Deck:
        return self._decks[index]

    def parent(self, deck: Deck) -> Deck | None:
        return None if deck.parent is None else self._decks[deck.parent]

    def children(self, deck: Deck) -> list[Deck]:
        return [self._decks[i] for i in deck.children]

    def deck_of(self, item_id: str) -> Deck | None:
        index = self._item_deck.get(item_id)
        return None if index is None else self._decks[index]

    # ---------- Shape ----------

    def add_subdeck(self, parent: Deck, name: str) -> Deck:
        deck = Deck(name=name, index=len(self._decks), parent=parent.index)
        self._decks.append(deck)
        parent.children.append(deck.index)
        return deck

    def find(self, topic_path: TopicPath) -> Deck | None:
        deck = self.root
        for part in topic_path.parts:
            match = next((c for c in self.children(deck) if c.name == part), None)
            if match is None:
                return None
            deck = match
        return deck

    def get_or_create(self, topic_path: TopicPath) -> Deck:
        deck = self.root
        for part in topic_path.parts:
            match = next((c for c in self.children(deck) if c.name == part), None)
            deck = match if match is not None else self.add_subdeck(deck, part)
        return deck

    def topic_path_of(self, deck: Deck) -> TopicPath:
        names: list[str] = []
        current: Deck | None = deck
        while current is not None and not current.is_root:
            names.append(current.name)
            current = self.parent(current)
        return TopicPath(tuple(reversed(names)))

    def sibling_path(self, deck: Deck) -> list[int]:
        """Position of the deck as a stack of sibling indices from the root."""
        path: list[int] = []
        current = deck
        while current.parent is not None:
            parent = self._decks[current.parent]
            path.append(parent.children.index(current.index))
            current = parent
        path.reverse()
        return path

    def iter_preorder(self, start: Deck | None = None) -> Iterator[Deck]:
        stack = [start or self.root]
        while stack:
            deck = stack.pop()
            yield deck
            stack.extend(self._decks[i] for i in reversed(deck.children))

    def iter_level_order(self) -> Iterator[Deck]:
        queue = deque([self.root])
        while queue:
            deck = queue.popleft()
            yield deck
            queue.extend(self._decks[i] for i in deck.children)

    # ---------- Items ----------

    def add_item(
        self, deck: Deck, item: ReviewItem, is_new: bool = False, is_due: bool = False
    ) -> None:
        if item.id in self._item_deck:
            raise ValueError(f"Item {item.id!r} is already in deck tree")
        self._item_deck[item.id] = deck.index
        deck.all.append(item)
        if is_new:
            deck.new.append(item)
        elif is_due:
            deck.due_now.append(item)

    def remove_item(self, item_id: str) -> bool:
        index = self._item_deck.pop(item_id, None)
        if index is None:
            return False
        deck = self._decks[index]
        for items in (deck.new, deck.due_now, deck.all):
            items[:] = [i for i in items if i.id != item_id]
        return True

    def card_count(
        self,
        list_type: CardListType = CardListType.ALL,
        deck: Deck | None = None,
        include_subdecks: bool = True,
    ) -> int:
        start = deck or self.root
        if not include_subdecks:
            return len(start.items(list_type))
        return sum(len(d.items(list_type)) for d in self.iter_preorder(start))

    def item_ids(self, list_type: CardListType = CardListType.ALL) -> list[str]:
        return [i.id for d in self.iter_preorder() for i in d.items(list_type)]

    def copy_shape(self) -> "DeckTree":
        """Empty tree with the same decks at the same arena indices."""
        tree = DeckTree(self.root.name)
        for deck in self._decks[1:]:
            tree._decks.append(Deck(name=deck.name, index=deck.index, parent=deck.parent))
        for deck in self._decks:
            tree._decks[deck.index].children = list(deck.children)
        return tree


def is_due(item: ReviewItem, now: datetime) -> bool:
    return item.state.state != LearningState.NEW and item.state.due <= now


def build_deck_tree(
    items: Iterable[ReviewItem],
    now: datetime,
    postponed: Collection[str] | None = None,
    root_name: str = "root",
) -> DeckTree:
    """
    Build the deck tree for a session from a flat item list.

    Every item lands in its leaf deck's `all` list. New items also go to `new`
    and due items to `due_now`, unless the item is postponed.
    """
    postponed = postponed or ()
    tree = DeckTree(root_name)
    for item in items:
        deck = tree.get_or_create(item.topic_path)
        if item.id in postponed:
            tree.add_item(deck, item)
            continue
        tree.add_item(
            deck,
            item,
            is_new=item.state.state == LearningState.NEW,
            is_due=is_due(item, now),
        )
    return tree


def filter_remaining(
    tree: DeckTree,
    postponed: Collection[str] | None = None,
    answered: Collection[str] | None = None,
    mode: ReviewMode = ReviewMode.REVIEW,
) -> DeckTree:
    """
    Copy of the tree holding only the items still to be reviewed this session.

    Review mode keeps new and due items; cram mode keeps every item. Postponed
    and already answered items are dropped in both modes.
    """
    excluded = set(postponed or ()) | set(answered or ())
    remaining = tree.copy_shape()
    for deck in tree.iter_preorder():
        target = remaining.deck(deck.index)
        new_ids = {i.id for i in deck.new}
        due_ids = {i.id for i in deck.due_now}
        for item in deck.all:
            if item.id in excluded:
                continue
            if mode is ReviewMode.REVIEW and item.id not in new_ids and item.id not in due_ids:
                continue
            remaining.add_item(
                target, item, is_new=item.id in new_ids, is_due=item.id in due_ids
            )
    return remaining
