"""Tests for the FSRS memory model."""

import random
from datetime import timedelta
from unittest.mock import patch

import pytest
from fsrs import Card

from conftest import NOW, make_state
from wsr.application.scheduling import MemoryModel, SchedulerParameters, parse_step
from wsr.domain.constants import MAX_DIFFICULTY, MIN_DIFFICULTY
from wsr.domain.errors import SchedulingInconsistency
from wsr.domain.models import LearningState, MemoryState, Rating

ALL_STATES = [
    make_state(LearningState.NEW),
    make_state(
        LearningState.LEARNING,
        stability=2.3,
        reps=1,
        learning_steps=1,
        last_review=NOW - timedelta(minutes=10),
    ),
    make_state(LearningState.REVIEW, due_in=timedelta(days=-5)),
    make_state(LearningState.REVIEW, stability=250.0, difficulty=9.5, reps=20, lapses=4),
    make_state(
        LearningState.RELEARNING,
        stability=1.2,
        reps=8,
        lapses=2,
        last_review=NOW - timedelta(minutes=5),
    ),
]


@pytest.fixture
def model():
    return MemoryModel(SchedulerParameters(enable_fuzz=False))


# --- Outcome enumeration ---


@pytest.mark.parametrize("state", ALL_STATES)
def test_compute_outcomes_has_one_candidate_per_rating(model, state):
    outcomes = model.compute_outcomes(state, NOW)
    assert set(outcomes) == set(Rating)
    assert all(isinstance(s, MemoryState) for s in outcomes.values())


@pytest.mark.parametrize("state", ALL_STATES)
@pytest.mark.parametrize("rating", list(Rating))
def test_counters_and_last_review(model, state, rating):
    result = model.apply_rating(state, NOW, rating)
    assert result.reps == state.reps + 1
    if rating == Rating.AGAIN:
        assert result.lapses == state.lapses + 1
    else:
        assert result.lapses == state.lapses
    assert result.last_review == NOW
    assert MIN_DIFFICULTY <= result.difficulty <= MAX_DIFFICULTY
    assert result.due >= NOW


@pytest.mark.parametrize("rating", [Rating.HARD, Rating.GOOD, Rating.EASY])
def test_review_state_pass_is_due_in_future(model, rating):
    state = make_state(LearningState.REVIEW, due_in=timedelta(days=-1))
    result = model.apply_rating(state, NOW, rating)
    assert result.due > NOW
    assert result.state == LearningState.REVIEW
    assert result.scheduled_days >= 1


def test_review_intervals_are_ordered(model):
    state = make_state(LearningState.REVIEW)
    outcomes = model.compute_outcomes(state, NOW)
    hard = outcomes[Rating.HARD].scheduled_days
    good = outcomes[Rating.GOOD].scheduled_days
    easy = outcomes[Rating.EASY].scheduled_days
    assert hard <= good < easy


def test_elapsed_days_recomputed(model):
    state = make_state(LearningState.REVIEW, last_review=NOW - timedelta(days=12, hours=3))
    result = model.apply_rating(state, NOW, Rating.GOOD)
    assert result.elapsed_days == 12


def test_elapsed_days_zero_without_prior_review(model):
    result = model.apply_rating(MemoryState.new(NOW), NOW, Rating.GOOD)
    assert result.elapsed_days == 0


# --- Scenarios ---


def test_new_item_graded_good_enters_learning():
    model = MemoryModel()
    state = MemoryState.new(NOW)

    result = model.apply_rating(state, NOW, Rating.GOOD)

    assert result.reps == 1
    assert result.state in (LearningState.LEARNING, LearningState.REVIEW)
    # Default ladder 1m, 10m: Good moves to the second step
    assert result.state == LearningState.LEARNING
    assert result.learning_steps == 1
    assert result.due == NOW + timedelta(minutes=10)
    assert result.due > NOW


def test_overdue_review_graded_again_relearns():
    model = MemoryModel()
    state = make_state(LearningState.REVIEW, due_in=timedelta(days=-5), lapses=1)

    result = model.apply_rating(state, NOW, Rating.AGAIN)

    assert result.lapses == 2
    assert result.state == LearningState.RELEARNING
    assert result.due == NOW + timedelta(minutes=10)
    assert result.scheduled_days == 0
    assert result.stability < state.stability


def test_again_in_learning_stays_learning(model):
    state = ALL_STATES[1]
    result = model.apply_rating(state, NOW, Rating.AGAIN)
    assert result.state == LearningState.LEARNING
    assert result.learning_steps == 0
    assert result.due == NOW + timedelta(minutes=1)


def test_easy_graduates_new_item(model):
    result = model.apply_rating(MemoryState.new(NOW), NOW, Rating.EASY)
    assert result.state == LearningState.REVIEW
    assert result.scheduled_days >= 1


def test_hard_on_first_step_uses_mean_of_first_two_steps(model):
    result = model.apply_rating(MemoryState.new(NOW), NOW, Rating.HARD)
    assert result.state == LearningState.LEARNING
    assert result.due == NOW + timedelta(minutes=5, seconds=30)


def test_good_on_last_learning_step_graduates(model):
    state = ALL_STATES[1]
    result = model.apply_rating(state, NOW, Rating.GOOD)
    assert result.state == LearningState.REVIEW
    assert result.due >= NOW + timedelta(days=1)


def test_relearning_good_returns_to_review(model):
    result = model.apply_rating(ALL_STATES[4], NOW, Rating.GOOD)
    assert result.state == LearningState.REVIEW


def test_no_learning_steps_graduates_immediately():
    model = MemoryModel(SchedulerParameters(enable_fuzz=False, learning_steps=()))
    result = model.apply_rating(MemoryState.new(NOW), NOW, Rating.AGAIN)
    assert result.state == LearningState.REVIEW
    assert result.scheduled_days >= 1


# --- Difficulty / stability ---


def test_easy_lowers_and_again_raises_difficulty(model):
    state = make_state(LearningState.REVIEW, difficulty=5.0)
    easy = model.apply_rating(state, NOW, Rating.EASY)
    again = model.apply_rating(state, NOW, Rating.AGAIN)
    assert easy.difficulty < state.difficulty < again.difficulty


def test_stability_grows_more_on_higher_rating(model):
    state = make_state(LearningState.REVIEW)
    outcomes = model.compute_outcomes(state, NOW)
    assert (
        outcomes[Rating.HARD].stability
        < outcomes[Rating.GOOD].stability
        < outcomes[Rating.EASY].stability
    )


def test_maximum_interval_caps_every_rating():
    state = make_state(LearningState.REVIEW, stability=500.0, last_review=NOW - timedelta(days=400))
    for enable_fuzz in (False, True):
        model = MemoryModel(SchedulerParameters(enable_fuzz=enable_fuzz, maximum_interval=30))
        for rating, result in model.compute_outcomes(state, NOW).items():
            assert result.scheduled_days <= 30, rating
            assert result.due <= NOW + timedelta(days=30), rating


def test_retrievability(model):
    assert model.retrievability(MemoryState.new(NOW), NOW) == 0.0
    state = make_state(LearningState.REVIEW, last_review=NOW)
    assert model.retrievability(state, NOW) == pytest.approx(1.0)
    # At t == S the curve passes through 90%
    state = make_state(LearningState.REVIEW, stability=10.0, last_review=NOW - timedelta(days=10))
    assert model.retrievability(state, NOW) == pytest.approx(0.9, abs=1e-6)


# --- Fuzz ---


def test_fuzz_is_deterministic_for_fixed_seed():
    state = make_state(LearningState.REVIEW, stability=40.0, last_review=NOW - timedelta(days=40))
    a = MemoryModel(SchedulerParameters(fuzz_seed=7)).compute_outcomes(state, NOW)
    b = MemoryModel(SchedulerParameters(fuzz_seed=7)).compute_outcomes(state, NOW)
    assert a == b


def test_fuzz_stays_within_bounds():
    state = make_state(LearningState.REVIEW, stability=40.0, last_review=NOW - timedelta(days=40))
    plain = MemoryModel(SchedulerParameters(enable_fuzz=False)).compute_outcomes(state, NOW)
    base = plain[Rating.GOOD].scheduled_days
    for seed in range(20):
        fuzzed = MemoryModel(SchedulerParameters(fuzz_seed=seed)).compute_outcomes(state, NOW)
        days = fuzzed[Rating.GOOD].scheduled_days
        assert abs(days - base) <= max(3, int(base * 0.2))


# --- Errors ---


def test_apply_rating_incomplete_card_raises(model):
    state = MemoryState.new(NOW)
    with patch.object(model.scheduler, "review_card", return_value=(Card(card_id=1), None)):
        with pytest.raises(SchedulingInconsistency):
            model.apply_rating(state, NOW, Rating.AGAIN)


def test_fuzz_leaves_global_random_untouched():
    state = make_state(LearningState.REVIEW, stability=40.0, last_review=NOW - timedelta(days=40))
    random.seed(123)
    expected = random.random()
    random.seed(123)
    MemoryModel(SchedulerParameters(fuzz_seed=3)).compute_outcomes(state, NOW)
    assert random.random() == expected


def test_wrong_weight_count_rejected():
    with pytest.raises(ValueError):
        MemoryModel(SchedulerParameters(weights=(1.0, 2.0)))


def test_parse_step():
    assert parse_step("1m") == timedelta(minutes=1)
    assert parse_step("10m") == timedelta(minutes=10)
    assert parse_step("1h") == timedelta(hours=1)
    assert parse_step("2d") == timedelta(days=2)
    with pytest.raises(ValueError):
        parse_step("ten minutes")
