"""JSON file store for postponed item ids."""

import json
import logging
from datetime import date
from pathlib import Path

from wsr.domain.ports import PostponementStore

logger = logging.getLogger(__name__)


class JsonPostponementStore(PostponementStore):
    """
    Persists `{"day": "YYYY-MM-DD", "ids": [...]}` to a single file.

    A missing or unreadable file loads as an empty set.
    """

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> tuple[set[str], date | None]:
        if not self.path.is_file():
            return set(), None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            ids = {str(i) for i in data.get("ids", [])}
            day = date.fromisoformat(data["day"]) if data.get("day") else None
        except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable postponement file {self.path}: {e}")
            return set(), None
        return ids, day

    def save(self, ids: set[str], day: date) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"day": day.isoformat(), "ids": sorted(ids)}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
