"""Tests for the iteration store and iteration model."""

import pytest
from pydantic import ValidationError

from promptgarden.models import Iteration
from promptgarden.refinement import IterationStore


def make_iteration(feedback: str = "ok", score: int = 3) -> Iteration:
    return Iteration(prompt="Write a haiku", output="Some output", feedback=feedback, score=score)


class TestIteration:
    """Tests for the Iteration model."""

    def test_score_is_clamped(self):
        """Test that out-of-range scores are clamped to 1..5."""
        assert make_iteration(score=0).score == 1
        assert make_iteration(score=9).score == 5
        assert make_iteration(score=-3).score == 1

    def test_accepted(self):
        """Test the accepted property."""
        assert make_iteration(score=5).accepted
        assert not make_iteration(score=4).accepted

    def test_immutable(self):
        """Test that recorded iterations cannot be edited."""
        iteration = make_iteration()
        with pytest.raises(ValidationError):
            iteration.feedback = "changed"


class TestIterationStore:
    """Tests for IterationStore."""

    def test_empty_store(self):
        """Test a new store."""
        store = IterationStore()

        assert len(store) == 0
        assert store.all() == ()
        assert store.latest() is None
        assert store.feedback_texts() == []

    def test_record_appends_in_order(self):
        """Test that iterations keep submission order."""
        store = IterationStore()
        first = make_iteration("first")
        second = make_iteration("second")

        store.record(first)
        store.record(second)

        assert store.all() == (first, second)
        assert store.latest() is second
        assert store.feedback_texts() == ["first", "second"]
        assert list(store) == [first, second]

    def test_all_is_a_copy(self):
        """Test that callers cannot mutate the log through all()."""
        store = IterationStore([make_iteration()])
        snapshot = store.all()

        store.record(make_iteration("later"))

        assert len(snapshot) == 1
        assert len(store) == 2

    def test_window(self):
        """Test limiting to the most recent iterations."""
        store = IterationStore([make_iteration(str(i)) for i in range(5)])

        assert [i.feedback for i in store.window(2)] == ["3", "4"]
        assert len(store.window(None)) == 5
        assert len(store.window(10)) == 5

    def test_has_accepted(self):
        """Test detection of a top-scored iteration."""
        store = IterationStore([make_iteration(score=3)])
        assert not store.has_accepted()

        store.record(make_iteration(score=5))
        assert store.has_accepted()


class TestIterationStoreListeners:
    """Tests for change notification."""

    def test_listener_called_on_record(self):
        """Test that listeners receive each recorded iteration."""
        store = IterationStore()
        received = []
        store.subscribe(received.append)

        iteration = make_iteration()
        store.record(iteration)

        assert received == [iteration]

    def test_listener_sees_updated_store(self):
        """Test that listeners run after the iteration is appended."""
        store = IterationStore()
        lengths = []
        store.subscribe(lambda iteration: lengths.append(len(store)))

        store.record(make_iteration())
        store.record(make_iteration())

        assert lengths == [1, 2]

    def test_unsubscribe(self):
        """Test that unsubscribed listeners are no longer called."""
        store = IterationStore()
        received = []
        unsubscribe = store.subscribe(received.append)

        store.record(make_iteration())
        unsubscribe()
        store.record(make_iteration())

        assert len(received) == 1

        # Unsubscribing twice is harmless
        unsubscribe()
