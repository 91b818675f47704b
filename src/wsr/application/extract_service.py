"""Service for turning a text selection into a new review item."""

import logging
from datetime import datetime, timedelta
from enum import Enum

from ulid import ULID

from wsr.application.utils.dates import utc_now
from wsr.application.scheduling import MemoryModel
from wsr.domain.constants import (
    DISMISS_TAG,
    EXTRACT_FIRST_DUE_DAYS,
    EXTRACT_PREFIX,
    QA_PREFIX,
    REVIEW_TAG,
)
from wsr.domain.errors import ItemNotFound
from wsr.domain.models import MemoryState, Rating, ReviewItem
from wsr.domain.ports import ItemRepository

logger = logging.getLogger(__name__)


class ExtractKind(Enum):
    EXTRACT = "extract"
    QA = "qa"


def generate_item_name(kind: ExtractKind = ExtractKind.EXTRACT) -> str:
    """Generate a unique item name using ULID."""
    prefix = QA_PREFIX if kind is ExtractKind.QA else EXTRACT_PREFIX
    return f"{prefix}-{ULID()}"


def render_body(text: str, kind: ExtractKind) -> str:
    if kind is ExtractKind.QA:
        return f"## Question\n\n{text}\n\n## Answer\n\n"
    return f"{text}\n"


class ExtractService:
    def __init__(
        self,
        repository: ItemRepository,
        model: MemoryModel | None = None,
        folder: str = "extracted",
        review_tag: str = REVIEW_TAG,
        dismiss_tag: str = DISMISS_TAG,
        clock=utc_now,
    ):
        self._repo = repository
        self.model = model or MemoryModel()
        self.folder = folder.strip("/")
        self.review_tag = review_tag
        self.dismiss_tag = dismiss_tag
        self._clock = clock

    def initial_state(self, now: datetime) -> MemoryState:
        """A fresh state graded Good once, first due a day later."""
        graded = self.model.apply_rating(self.model.create_state(now), now, Rating.GOOD)
        return graded.evolve(due=now + timedelta(days=EXTRACT_FIRST_DUE_DAYS))

    async def extract(
        self,
        source_id: str,
        text: str,
        kind: ExtractKind = ExtractKind.EXTRACT,
        now: datetime | None = None,
    ) -> ReviewItem:
        """
        Create a review item from text selected in a source item.

        The new item inherits the source's tags plus the review tag and links
        back to the source through its parent node.

        Raises:
            ValueError: if the text is empty.
            ItemNotFound: if the source does not exist.
            FileExistsError: if the generated name is taken.
        """
        if not text or not text.strip():
            raise ValueError("No text selected")

        source = await self._repo.get_item(source_id)
        if source is None:
            raise ItemNotFound(source_id)

        now = now or self._clock()
        name = generate_item_name(kind)
        if self.folder:
            name = f"{self.folder}/{name}"

        tags = (set(source.tags) - {self.dismiss_tag}) | {self.review_tag}
        item = await self._repo.create_item(
            name,
            render_body(text.strip(), kind),
            self.initial_state(now),
            frozenset(tags),
            parent_node=source.title or source_id,
        )
        logger.info(f"Extracted {item.id} from {source_id}")
        return item
