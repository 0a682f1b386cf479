"""List state and the coordinator that keeps only the newest fetch result."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from .errors import TubedeckError
from .logging_utils import get_logger
from .youtube import ListItem, ListKind

log = get_logger(__name__)

Loader = Callable[[ListKind, Any, str], Awaitable[list[ListItem]]]


@dataclass
class ListState:
    """Items, cursor and loading status of one list screen.

    ``fetch_token`` is bumped for every fetch request; a result carrying an
    older value is discarded on arrival.
    """

    items: list[ListItem] = field(default_factory=list)
    selected_index: int = 0
    loading: bool = False
    error: Optional[str] = None
    fetch_token: int = 0

    @property
    def selected_item(self) -> Optional[ListItem]:
        if 0 <= self.selected_index < len(self.items):
            return self.items[self.selected_index]
        return None

    def move(self, delta: int) -> None:
        if not self.items:
            self.selected_index = 0
            return
        self.selected_index = max(0, min(len(self.items) - 1, self.selected_index + delta))


@dataclass(slots=True)
class FetchResult:
    generation: int
    applied: bool
    error: Optional[TubedeckError] = None


class FetchCoordinator:
    """Run list loads so that only the most recent request updates a ListState."""

    def __init__(self, loader: Loader) -> None:
        self._loader = loader

    def start(self, state: ListState) -> int:
        """Mark *state* as loading and return the generation of the new request."""

        state.fetch_token += 1
        state.loading = True
        return state.fetch_token

    @staticmethod
    def is_current(state: ListState, generation: int) -> bool:
        return state.fetch_token == generation

    async def fetch(
        self,
        state: ListState,
        kind: ListKind,
        argument: Any,
        token: str,
        generation: Optional[int] = None,
    ) -> FetchResult:
        """Load *kind* into *state* unless a newer request supersedes this one."""

        if generation is None:
            generation = self.start(state)
        try:
            items = await self._loader(kind, argument, token)
        except TubedeckError as exc:
            return self.fail(state, generation, exc)
        if not self.is_current(state, generation):
            log.debug(
                "Dropping stale %s result (generation %d, current %d)",
                kind.value,
                generation,
                state.fetch_token,
            )
            return FetchResult(generation, applied=False)
        state.items = list(items)
        state.error = None
        state.loading = False
        if state.selected_index >= len(state.items):
            state.selected_index = max(0, len(state.items) - 1)
        log.info("Loaded %d %s item(s)", len(state.items), kind.value)
        return FetchResult(generation, applied=True)

    def fail(self, state: ListState, generation: int, error: TubedeckError) -> FetchResult:
        """Record *error* on *state*; previously loaded items stay visible."""

        if not self.is_current(state, generation):
            log.debug("Dropping stale failure (generation %d): %s", generation, error)
            return FetchResult(generation, applied=False, error=error)
        state.error = error.message
        state.loading = False
        log.warning("List fetch failed: %s", error.message)
        return FetchResult(generation, applied=True, error=error)


__all__ = ["FetchCoordinator", "FetchResult", "ListState", "Loader"]
