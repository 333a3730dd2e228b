"""Append-only iteration log with change notification."""

import logging
from typing import Callable, Iterable, Iterator, Optional

from promptgarden.models import Iteration

logger = logging.getLogger(__name__)

IterationListener = Callable[[Iteration], None]


class IterationStore:
    """
    Ordered, append-only log of refinement iterations.

    Iterations are never edited or removed; a new session starts a new store.
    Listeners registered with subscribe() are called synchronously after every
    record(), which is how the refinement engine learns that its optimized
    template is out of date.
    """

    def __init__(self, iterations: Iterable[Iteration] = ()):
        self._iterations: list[Iteration] = list(iterations)
        self._listeners: list[IterationListener] = []

    def subscribe(self, listener: IterationListener) -> Callable[[], None]:
        """Register a listener and return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def record(self, iteration: Iteration) -> None:
        """Append an iteration and notify listeners."""
        self._iterations.append(iteration)
        logger.debug(
            f"Recorded iteration {len(self._iterations)} "
            f"(score {iteration.score}/5): \"{iteration.feedback[:50]}\""
        )
        for listener in list(self._listeners):
            listener(iteration)

    def all(self) -> tuple[Iteration, ...]:
        """All iterations in submission order."""
        return tuple(self._iterations)

    def latest(self) -> Optional[Iteration]:
        """The most recent iteration, if any."""
        return self._iterations[-1] if self._iterations else None

    def window(self, max_entries: Optional[int] = None) -> tuple[Iteration, ...]:
        """The last max_entries iterations, or all of them when max_entries is None."""
        if max_entries is None:
            return self.all()
        return tuple(self._iterations[-max_entries:]) if max_entries > 0 else ()

    def feedback_texts(self) -> list[str]:
        """Feedback of every iteration, in order."""
        return [iteration.feedback for iteration in self._iterations]

    def has_accepted(self) -> bool:
        """Whether any iteration received a top score."""
        return any(iteration.accepted for iteration in self._iterations)

    def __len__(self) -> int:
        return len(self._iterations)

    def __iter__(self) -> Iterator[Iteration]:
        return iter(tuple(self._iterations))
