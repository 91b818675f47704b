"""Postponed ("buried") item ids."""

import logging
from collections.abc import Iterable, Iterator
from datetime import date

from wsr.domain.ports import PostponementStore

logger = logging.getLogger(__name__)


class PostponementSet:
    """Plain set membership; postponed items drop out of due selection only."""

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: set[str] = set(ids)

    def contains(self, item_id: str) -> bool:
        return item_id in self._ids

    def add(self, item_id: str) -> None:
        self._ids.add(item_id)

    def remove(self, item_id: str) -> None:
        self._ids.discard(item_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    # ---------- Persistence ----------

    @classmethod
    def load(
        cls, store: PostponementStore, today: date, clear_on_new_day: bool = True
    ) -> "PostponementSet":
        """
        Load the set from the store.

        With clear_on_new_day, a set written on an earlier day starts empty.
        """
        ids, written = store.load()
        if clear_on_new_day and written is not None and written < today and ids:
            logger.info(f"Clearing {len(ids)} postponed item(s) from {written.isoformat()}")
            return cls()
        return cls(ids)

    def save(self, store: PostponementStore, today: date) -> None:
        store.save(set(self._ids), today)
