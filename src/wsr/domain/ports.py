"""
Ports (interfaces) for the storage and host collaborators.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import date

from .models import MemoryState, PriorityMapping, Rating, ReviewItem, SessionAction


class ItemRepository(ABC):
    """
    Port for reading and writing review items.

    Implementations:
        - VaultItemRepository: Markdown notes with YAML frontmatter.
    """

    @abstractmethod
    async def list_items(self) -> list[ReviewItem]:
        """
        Scan the corpus and return every review item with its memory state.
        """
        pass

    @abstractmethod
    async def get_item(self, item_id: str) -> ReviewItem | None:
        pass

    @abstractmethod
    async def list_ids(self, prefix: str = "") -> list[str]:
        """
        Ids of every stored note at or below `prefix`, whether or not it is
        tagged for review. An empty prefix lists the whole corpus.
        """
        pass

    @abstractmethod
    async def save_state(
        self, item_id: str, state: MemoryState, parent_node: str | None = None
    ) -> None:
        """
        Persist a new memory state, superseding the stored one.
        """
        pass

    @abstractmethod
    async def set_tags(self, item_id: str, tags: frozenset[str]) -> None:
        pass

    @abstractmethod
    async def create_item(
        self,
        name: str,
        body: str,
        state: MemoryState,
        tags: frozenset[str],
        parent_node: str | None = None,
    ) -> ReviewItem:
        """
        Create a new item. Raises FileExistsError if the name is taken.
        """
        pass

    @abstractmethod
    async def load_priority_mapping(self) -> PriorityMapping | None:
        """
        Return the tag priority mapping, or None when it cannot be read.
        """
        pass


class PostponementStore(ABC):
    """Port persisting the postponed item ids across sessions."""

    @abstractmethod
    def load(self) -> tuple[set[str], date | None]:
        """
        Returns:
            (ids, day_written); day_written is None when nothing was stored.
        """
        pass

    @abstractmethod
    def save(self, ids: set[str], day: date) -> None:
        pass


class GradeProvider(ABC):
    """Host capability that presents an item and resolves to the user's answer."""

    @abstractmethod
    async def request_grade(self, item: ReviewItem) -> Rating | SessionAction | None:
        """
        Returns a Rating to grade the item, a SessionAction to postpone, skip
        or quit, or None when the host closes the review surface.
        """
        pass
