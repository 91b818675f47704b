# Domain Package
from .deck import CardListType, Deck, DeckTree, build_deck_tree, filter_remaining
from .models import (
    LearningState,
    MemoryState,
    PriorityMapping,
    QueueEntry,
    RankCandidate,
    Rating,
    ReviewItem,
    ReviewMode,
    TopicPath,
)
from .ports import GradeProvider, ItemRepository, PostponementStore

__all__ = [
    "CardListType",
    "Deck",
    "DeckTree",
    "build_deck_tree",
    "filter_remaining",
    "LearningState",
    "MemoryState",
    "PriorityMapping",
    "QueueEntry",
    "RankCandidate",
    "Rating",
    "ReviewItem",
    "ReviewMode",
    "TopicPath",
    "GradeProvider",
    "ItemRepository",
    "PostponementStore",
]
