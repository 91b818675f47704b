"""
Field record codec for MemoryState.

A MemoryState is stored by the storage collaborator as flat `wsr-*` keys, one
field per key. Timestamps are epoch milliseconds; the `-date` keys are a
human-readable copy and are only read when the timestamp is missing.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any

from wsr.consts import FIELD_PREFIX
from wsr.domain.errors import MalformedItemState
from wsr.domain.models import LearningState, MemoryState

logger = logging.getLogger(__name__)

DUE_DATE = f"{FIELD_PREFIX}due-date"
DUE_TIMESTAMP = f"{FIELD_PREFIX}due-timestamp"
STABILITY = f"{FIELD_PREFIX}stability"
DIFFICULTY = f"{FIELD_PREFIX}difficulty"
ELAPSED_DAYS = f"{FIELD_PREFIX}elapsed-days"
SCHEDULED_DAYS = f"{FIELD_PREFIX}scheduled-days"
LEARNING_STEPS = f"{FIELD_PREFIX}learning-steps"
REPS = f"{FIELD_PREFIX}reps"
LAPSES = f"{FIELD_PREFIX}lapses"
STATE = f"{FIELD_PREFIX}state"
LAST_REVIEW_DATE = f"{FIELD_PREFIX}last-review-date"
LAST_REVIEW_TIMESTAMP = f"{FIELD_PREFIX}last-review-timestamp"
PARENT_NODE = f"{FIELD_PREFIX}parent-node"

RECORD_KEYS = (
    DUE_DATE,
    DUE_TIMESTAMP,
    STABILITY,
    DIFFICULTY,
    ELAPSED_DAYS,
    SCHEDULED_DAYS,
    LEARNING_STEPS,
    REPS,
    LAPSES,
    STATE,
    LAST_REVIEW_DATE,
    LAST_REVIEW_TIMESTAMP,
)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLI = timedelta(milliseconds=1)


def to_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // _MILLI


def from_millis(ms: float) -> datetime:
    return _EPOCH + int(ms) * _MILLI


def state_to_record(state: MemoryState, parent_node: str | None = None) -> dict[str, Any]:
    record: dict[str, Any] = {
        DUE_DATE: state.due.date().isoformat(),
        DUE_TIMESTAMP: to_millis(state.due),
        STABILITY: state.stability,
        DIFFICULTY: state.difficulty,
        ELAPSED_DAYS: state.elapsed_days,
        SCHEDULED_DAYS: state.scheduled_days,
        LEARNING_STEPS: state.learning_steps,
        REPS: state.reps,
        LAPSES: state.lapses,
        STATE: int(state.state),
        LAST_REVIEW_DATE: state.last_review.date().isoformat() if state.last_review else "",
        LAST_REVIEW_TIMESTAMP: to_millis(state.last_review) if state.last_review else 0,
    }
    if parent_node:
        record[PARENT_NODE] = f"[[{parent_node}]]"
    return record


def _number(value: Any) -> float:
    if value is None or isinstance(value, bool) or value == "":
        raise MalformedItemState("missing")
    try:
        n = float(str(value).strip().strip('"').strip("'"))
    except ValueError as e:
        raise MalformedItemState(f"not numeric: {value!r}") from e
    if math.isnan(n) or math.isinf(n) or n < 0:
        raise MalformedItemState(f"out of range: {value!r}")
    return n


def _field(record: dict[str, Any], key: str, default: float) -> float:
    try:
        return _number(record.get(key))
    except MalformedItemState as e:
        if key in record:
            logger.debug(f"{key}: {e}, using {default}")
        return default


def _timestamp(record: dict[str, Any], ts_key: str, date_key: str) -> datetime | None:
    try:
        ms = _number(record.get(ts_key))
        if ms > 0:
            return from_millis(ms)
    except MalformedItemState:
        pass
    raw = record.get(date_key)
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc)
    if isinstance(raw, str) and raw.strip():
        try:
            d = date.fromisoformat(raw.strip())
        except ValueError:
            logger.debug(f"{date_key}: unparseable date {raw!r}")
            return None
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    return None


def _learning_state(raw: Any) -> LearningState:
    if isinstance(raw, str) and raw.strip().upper() in LearningState.__members__:
        return LearningState[raw.strip().upper()]
    try:
        return LearningState(int(_number(raw)))
    except (MalformedItemState, ValueError):
        return LearningState.NEW


def state_from_record(record: dict[str, Any], now: datetime) -> MemoryState:
    """
    Rebuild a MemoryState from stored fields.

    Missing or malformed fields fall back to their defaults (zero counters,
    New, due now) rather than failing; freshly created items often carry
    only part of the record.
    """
    reps = int(_field(record, REPS, 0))
    lapses = min(int(_field(record, LAPSES, 0)), reps)
    state = _learning_state(record.get(STATE))
    if reps == 0:
        state = LearningState.NEW
    elif state == LearningState.NEW:
        state = LearningState.LEARNING

    return MemoryState(
        due=_timestamp(record, DUE_TIMESTAMP, DUE_DATE) or now,
        stability=_field(record, STABILITY, 0.0),
        difficulty=_field(record, DIFFICULTY, 0.0),
        elapsed_days=int(_field(record, ELAPSED_DAYS, 0)),
        scheduled_days=int(_field(record, SCHEDULED_DAYS, 0)),
        learning_steps=int(_field(record, LEARNING_STEPS, 0)),
        reps=reps,
        lapses=lapses,
        state=state,
        last_review=_timestamp(record, LAST_REVIEW_TIMESTAMP, LAST_REVIEW_DATE),
    )


def parent_node_from_record(record: dict[str, Any]) -> str | None:
    raw = record.get(PARENT_NODE)
    if raw is None:
        return None
    text = str(raw).strip().strip('"')
    if text.startswith("[[") and text.endswith("]]"):
        text = text[2:-2]
    return text or None
