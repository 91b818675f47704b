"""Tests for the Markdown vault item repository."""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, make_state
from wsr.application.scheduling.record import DUE_TIMESTAMP, PARENT_NODE, REPS
from wsr.application.utils.text import parse_frontmatter
from wsr.domain.errors import ItemNotFound
from wsr.domain.models import LearningState, MemoryState
from wsr.infrastructure.adapters.vault_repository import VaultItemRepository


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def vault(mock_vault):
    write(
        mock_vault / "notes/math/Algebra.md",
        "---\ntags: ['#review', 'math']\nwsr-reps: 2\nwsr-state: 2\nwsr-stability: 4.5\n---\nGroups.\n",
    )
    write(mock_vault / "notes/Inline.md", "Some idea #review worth revisiting.\n")
    write(mock_vault / "notes/Dismissed.md", "---\ntags: [review, dismiss]\n---\nOld.\n")
    write(mock_vault / "notes/Plain.md", "---\ntags: [math]\n---\nNot reviewed.\n")
    write(mock_vault / "notes/Topic.md", "---\ntags: review\ntopic: cs/algorithms\n---\n")
    write(mock_vault / "notes/.trash/Gone.md", "---\ntags: [review]\n---\n")
    write(mock_vault / "notes/Broken.md", "---\ntags: [review\n---\n")
    write(mock_vault / "priority.md", "---\n'@TIME_DECAY': 0.5\nmath: 3\n'#urgent': '10'\n---\n")
    return mock_vault


@pytest.fixture
def repo(vault):
    return VaultItemRepository(vault, items_folder="notes", clock=lambda: NOW)


@pytest.mark.asyncio
async def test_list_items_filters_by_tags(repo):
    items = {i.id: i for i in await repo.list_items()}
    assert set(items) == {"notes/math/Algebra", "notes/Inline", "notes/Topic"}


@pytest.mark.asyncio
async def test_list_items_reads_state_and_topic(repo):
    items = {i.id: i for i in await repo.list_items()}

    algebra = items["notes/math/Algebra"]
    assert algebra.title == "Algebra"
    assert algebra.tags == frozenset({"review", "math"})
    assert str(algebra.topic_path) == "math"
    assert algebra.state.reps == 2
    assert algebra.state.state == LearningState.REVIEW
    assert algebra.state.stability == 4.5
    assert algebra.state.due == NOW

    assert items["notes/Inline"].state == MemoryState.new(NOW)
    assert items["notes/Inline"].topic_path.is_empty
    assert str(items["notes/Topic"].topic_path) == "cs/algorithms"


@pytest.mark.asyncio
async def test_missing_items_folder(mock_vault):
    repo = VaultItemRepository(mock_vault, items_folder="nowhere")
    assert await repo.list_items() == []


@pytest.mark.asyncio
async def test_get_item(repo):
    item = await repo.get_item("notes/Plain")
    assert item is not None
    assert item.tags == frozenset({"math"})
    assert await repo.get_item("notes/Nope") is None


@pytest.mark.asyncio
async def test_save_state_round_trip(repo, vault):
    state = make_state(LearningState.REVIEW, due_in=timedelta(days=6), reps=5)

    await repo.save_state("notes/math/Algebra", state, parent_node="Source")

    meta, body = parse_frontmatter((vault / "notes/math/Algebra.md").read_text(encoding="utf-8"))
    assert meta[REPS] == 5
    assert meta[PARENT_NODE] == "[[Source]]"
    assert isinstance(meta[DUE_TIMESTAMP], int)
    assert meta["tags"] == ["#review", "math"]
    assert body == "Groups.\n"

    item = await repo.get_item("notes/math/Algebra")
    assert item.state == state
    assert item.parent_node == "Source"


@pytest.mark.asyncio
async def test_save_state_unknown_item(repo):
    with pytest.raises(ItemNotFound):
        await repo.save_state("notes/Nope", MemoryState.new(NOW))


@pytest.mark.asyncio
async def test_set_tags_rewrites_inline_tag(repo, vault):
    await repo.set_tags("notes/Inline", frozenset({"dismiss"}))

    text = (vault / "notes/Inline.md").read_text(encoding="utf-8")
    assert "#dismiss" in text
    assert "#review" not in text
    assert "notes/Inline" not in {i.id for i in await repo.list_items()}


@pytest.mark.asyncio
async def test_set_tags_frontmatter(repo, vault):
    await repo.set_tags("notes/math/Algebra", frozenset({"math", "dismiss"}))

    meta, _ = parse_frontmatter((vault / "notes/math/Algebra.md").read_text(encoding="utf-8"))
    assert meta["tags"] == ["#dismiss", "#math"]
    assert meta[REPS] == 2


@pytest.mark.asyncio
async def test_create_item(repo, vault):
    state = make_state(LearningState.LEARNING, reps=1, last_review=NOW)

    item = await repo.create_item(
        "extracted/Extracted-1", "Quote.\n", state, frozenset({"review", "ml"}), "Paper"
    )

    assert item.id == "notes/extracted/Extracted-1"
    assert item.title == "Extracted-1"
    assert str(item.topic_path) == "extracted"
    loaded = await repo.get_item(item.id)
    assert loaded.state == state
    assert loaded.tags == frozenset({"review", "ml"})
    assert loaded.parent_node == "Paper"

    with pytest.raises(FileExistsError):
        await repo.create_item("extracted/Extracted-1", "", state, frozenset())


@pytest.mark.asyncio
async def test_load_priority_mapping(repo):
    mapping = await repo.load_priority_mapping()
    assert mapping.weights == {"math": 3.0, "urgent": 10.0}
    assert mapping.time_decay == 0.5


@pytest.mark.asyncio
async def test_missing_priority_file(mock_vault):
    repo = VaultItemRepository(mock_vault, priority_file="none.md")
    assert await repo.load_priority_mapping() is None


@pytest.mark.asyncio
async def test_scan_lets_other_tasks_run(mock_vault):
    for n in range(60):
        write(mock_vault / f"notes/Note{n:03}.md", "---\ntags: [review]\n---\nBody.\n")
    repo = VaultItemRepository(
        mock_vault, items_folder="notes", clock=lambda: NOW, scan_batch_size=10
    )
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0)

    task = asyncio.create_task(ticker())
    await asyncio.sleep(0)
    ticks = 0
    items = await repo.list_items()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(items) == 60
    assert ticks >= 5


@pytest.mark.asyncio
async def test_list_ids_under_prefix(repo):
    assert await repo.list_ids("notes/math") == ["notes/math/Algebra"]
    assert await repo.list_ids("notes/Plain.md") == ["notes/Plain"]
    assert await repo.list_ids("notes/Pl") == []

    every = set(await repo.list_ids())
    assert {"notes/Plain", "notes/Dismissed", "notes/Inline"} <= every
    assert "notes/.trash/Gone" not in every
