"""
Vault Item Repository: infrastructure adapter for a folder of Markdown notes.

Implements ItemRepository over notes with YAML frontmatter. Scheduling state is
kept in flat `wsr-*` frontmatter keys; the tag priority mapping is read from
the frontmatter of a dedicated priority note.
"""

import asyncio
import logging
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from wsr.application.scheduling.record import (
    PARENT_NODE,
    parent_node_from_record,
    state_from_record,
    state_to_record,
)
from wsr.application.utils.dates import utc_now
from wsr.application.utils.text import (
    format_tags,
    normalize_tag,
    parse_frontmatter,
    rebuild_markdown_with_frontmatter,
    tags_from_meta,
)
from wsr.domain.constants import DISMISS_TAG, REVIEW_TAG, SCAN_BATCH_SIZE, TIME_DECAY_KEY
from wsr.domain.errors import ItemNotFound
from wsr.domain.models import MemoryState, PriorityMapping, ReviewItem, TopicPath
from wsr.domain.ports import ItemRepository

logger = logging.getLogger(__name__)

# Inline tags: '#tag' at a word boundary, nested with '/'
_INLINE_TAG_RE = re.compile(r"(?:^|\s)#([\w][\w/-]*)")


class VaultItemRepository(ItemRepository):
    """
    Review items stored as Markdown notes under `vault_root/items_folder`.

    A note is a review item when its tags (frontmatter or inline) contain the
    review tag and not the dismiss tag. The item id is the vault-relative path
    without the `.md` suffix. The topic path comes from a `topic` frontmatter
    key, falling back to the note's folder below the items folder.
    """

    def __init__(
        self,
        vault_root: Path,
        items_folder: str = "",
        priority_file: str = "priority.md",
        review_tag: str = REVIEW_TAG,
        dismiss_tag: str = DISMISS_TAG,
        clock: Callable[[], datetime] = utc_now,
        scan_batch_size: int = SCAN_BATCH_SIZE,
    ):
        self.vault_root = vault_root
        self.items_root = vault_root / items_folder
        self.priority_path = vault_root / priority_file
        self.review_tag = review_tag
        self.dismiss_tag = dismiss_tag
        self._clock = clock
        self.scan_batch_size = max(1, scan_batch_size)

    # ---------- Reads ----------

    async def list_items(self) -> list[ReviewItem]:
        if not self.items_root.is_dir():
            logger.warning(f"Items folder not found: {self.items_root}")
            return []

        now = self._clock()
        items: list[ReviewItem] = []
        for i, path in enumerate(self._iter_notes(), start=1):
            item = self._load(path, now)
            if item is not None:
                items.append(item)
            if i % self.scan_batch_size == 0:
                # Let the host run between batches of files
                await asyncio.sleep(0)
        logger.debug(f"Loaded {len(items)} review item(s) from {self.items_root}")
        return items

    async def get_item(self, item_id: str) -> ReviewItem | None:
        path = self._path_for(item_id)
        if not path.is_file():
            return None
        return self._load(path, self._clock(), require_review_tag=False)

    async def list_ids(self, prefix: str = "") -> list[str]:
        """Ids of every note at or below `prefix`, tagged for review or not."""
        prefix = prefix.strip("/").removesuffix(".md")
        ids = []
        for path in self._iter_notes():
            item_id = self._id_for(path)
            if not prefix or item_id == prefix or item_id.startswith(f"{prefix}/"):
                ids.append(item_id)
        return ids

    async def load_priority_mapping(self) -> PriorityMapping | None:
        if not self.priority_path.is_file():
            logger.warning(f"Priority file not found: {self.priority_path}")
            return None
        meta, _ = parse_frontmatter(self.priority_path.read_text(encoding="utf-8"))
        if "__yaml_error__" in meta:
            logger.warning(f"Could not parse {self.priority_path}: {meta['__yaml_error__']}")
            return None
        return PriorityMapping.from_metadata(meta, TIME_DECAY_KEY)

    # ---------- Writes ----------

    async def save_state(
        self, item_id: str, state: MemoryState, parent_node: str | None = None
    ) -> None:
        path = self._existing_path(item_id)
        meta, body = self._read(path)
        meta.update(state_to_record(state, parent_node))
        if not parent_node:
            meta.pop(PARENT_NODE, None)
        path.write_text(rebuild_markdown_with_frontmatter(meta, body), encoding="utf-8")
        logger.debug(f"Saved state for {item_id}: due {state.due.isoformat()}")

    async def set_tags(self, item_id: str, tags: frozenset[str]) -> None:
        path = self._existing_path(item_id)
        meta, body = self._read(path)
        tags = frozenset(normalize_tag(t) for t in tags)

        # Inline tags that were removed from the set are rewritten in the body
        for tag in self._inline_tags(body) - tags:
            replacement = self.dismiss_tag if self.dismiss_tag in tags else ""
            body = re.sub(
                rf"(^|\s)#{re.escape(tag)}(?![\w/-])",
                lambda m: f"{m.group(1)}#{replacement}" if replacement else m.group(1),
                body,
            )
        meta["tags"] = format_tags(tags - self._inline_tags(body))
        path.write_text(rebuild_markdown_with_frontmatter(meta, body), encoding="utf-8")
        logger.info(f"Updated tags for {item_id}: {sorted(tags)}")

    async def create_item(
        self,
        name: str,
        body: str,
        state: MemoryState,
        tags: frozenset[str],
        parent_node: str | None = None,
    ) -> ReviewItem:
        path = self.items_root / f"{name}.md"
        if path.exists():
            raise FileExistsError(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        meta: dict = {"tags": format_tags(tags)}
        meta.update(state_to_record(state, parent_node))
        path.write_text(rebuild_markdown_with_frontmatter(meta, body), encoding="utf-8")
        logger.info(f"Created {path}")

        return ReviewItem(
            id=self._id_for(path),
            state=state,
            title=path.stem,
            tags=frozenset(tags),
            topic_path=self._topic_for(path, meta),
            parent_node=parent_node,
            path=path,
        )

    # ---------- Helpers ----------

    def _iter_notes(self):
        for path in sorted(self.items_root.rglob("*.md")):
            rel = path.relative_to(self.items_root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path == self.priority_path:
                continue
            yield path

    def _load(
        self, path: Path, now: datetime, require_review_tag: bool = True
    ) -> ReviewItem | None:
        meta, body = self._read(path)
        if "__yaml_error__" in meta:
            logger.warning(f"Skipping {path}: {meta['__yaml_error__']}")
            return None

        fm_tags = tags_from_meta(meta)
        if fm_tags is None:
            logger.warning(f"{path}: unreadable tags")
            fm_tags = frozenset()
        tags = fm_tags | self._inline_tags(body)

        if require_review_tag and (self.review_tag not in tags or self.dismiss_tag in tags):
            return None

        return ReviewItem(
            id=self._id_for(path),
            state=state_from_record(meta, now),
            title=path.stem,
            tags=tags,
            topic_path=self._topic_for(path, meta),
            parent_node=parent_node_from_record(meta),
            path=path,
        )

    def _read(self, path: Path) -> tuple[dict, str]:
        return parse_frontmatter(path.read_text(encoding="utf-8"))

    def _inline_tags(self, body: str) -> frozenset[str]:
        return frozenset(m.group(1) for m in _INLINE_TAG_RE.finditer(body))

    def _topic_for(self, path: Path, meta: dict) -> TopicPath:
        if meta.get("topic"):
            return TopicPath.parse(meta["topic"])
        try:
            rel = path.parent.relative_to(self.items_root)
        except ValueError:
            return TopicPath()
        return TopicPath(rel.parts)

    def _id_for(self, path: Path) -> str:
        return path.relative_to(self.vault_root).with_suffix("").as_posix()

    def _path_for(self, item_id: str) -> Path:
        return self.vault_root / f"{item_id}.md"

    def _existing_path(self, item_id: str) -> Path:
        path = self._path_for(item_id)
        if not path.is_file():
            raise ItemNotFound(item_id)
        return path
