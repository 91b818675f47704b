import time
from datetime import datetime, timedelta, timezone

import pytest

from wsr.domain.models import LearningState, MemoryState, ReviewItem, TopicPath

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


def make_state(
    state: LearningState = LearningState.NEW,
    due_in: timedelta = timedelta(0),
    now: datetime = NOW,
    **kwargs,
) -> MemoryState:
    """MemoryState relative to `now`; non-New states get plausible defaults."""
    if state == LearningState.NEW:
        return MemoryState(due=now + due_in, **kwargs)
    defaults = {
        "stability": 10.0,
        "difficulty": 5.0,
        "scheduled_days": 10,
        "reps": 3,
        "lapses": 0,
        "last_review": now + due_in - timedelta(days=10),
    }
    defaults.update(kwargs)
    return MemoryState(due=now + due_in, state=state, **defaults)


def make_item(
    item_id: str,
    topic: str = "",
    state: LearningState = LearningState.NEW,
    due_in: timedelta = timedelta(0),
    tags: tuple[str, ...] = ("review",),
    **state_kwargs,
) -> ReviewItem:
    return ReviewItem(
        id=item_id,
        state=make_state(state, due_in, **state_kwargs),
        title=item_id.rsplit("/", 1)[-1],
        tags=frozenset(tags),
        topic_path=TopicPath.parse(topic),
    )


def set_local_timezone(monkeypatch, name: str) -> None:
    monkeypatch.setenv("TZ", name)
    time.tzset()


@pytest.fixture(autouse=True)
def utc_local_time(monkeypatch):
    """Pin the host timezone to UTC so local day boundaries match the fixtures."""
    if not hasattr(time, "tzset"):
        yield
        return
    set_local_timezone(monkeypatch, "UTC")
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def mock_vault(tmp_path):
    """Creates a temporary directory structure mimicking a vault."""
    d = tmp_path / "MyVault"
    d.mkdir()
    return d


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    return home
