from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from loguru import logger

P = TypeVar("P")
D = TypeVar("D")

Commit = Callable[..., bool]
Loader = Callable[[P, Commit], Awaitable[None]]


@dataclass(frozen=True)
class QueryState(Generic[P, D]):
    parameters: P | None
    data: D
    loading: bool
    error: str | None
    generation: int


class QueryCoordinator(Generic[P, D]):
    """One parameterized fetch whose results are applied last-request-wins.

    Every ``fetch`` bumps the generation. The loader publishes results through
    the ``commit`` callable it is handed; a commit (and the final loading/error
    update) only lands while its generation is still the newest one and the
    parameters in effect still equal, by value, the ones it was started with.
    Anything older is dropped without touching visible state, errors included.

    Loader exceptions never escape ``fetch``: they are logged and exposed as the
    ``error`` string.
    """

    def __init__(
        self,
        *,
        name: str,
        loader: Loader,
        initial_data: D,
        on_change: Callable[[QueryState[P, D]], None] | None = None,
    ) -> None:
        self._name = name
        self._loader = loader
        self._on_change = on_change
        self._state: QueryState[P, D] = QueryState(
            parameters=None,
            data=initial_data,
            loading=False,
            error=None,
            generation=0,
        )

    @property
    def state(self) -> QueryState[P, D]:
        return self._state

    @property
    def data(self) -> D:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def parameters(self) -> P | None:
        return self._state.parameters

    @property
    def generation(self) -> int:
        return self._state.generation

    def is_current(self, generation: int, parameters: P) -> bool:
        return generation == self._state.generation and parameters == self._state.parameters

    async def fetch(self, parameters: P) -> None:
        generation = self._state.generation + 1
        self._set(parameters=parameters, generation=generation, loading=True, error=None)

        def commit(**fields: Any) -> bool:
            if not self.is_current(generation, parameters):
                logger.debug(f"{self._name}: dropped stale result (generation {generation})")
                return False
            self._set(data=replace(self._state.data, **fields))
            return True

        try:
            await self._loader(parameters, commit)
        except Exception as ex:
            if not self.is_current(generation, parameters):
                logger.debug(f"{self._name}: dropped stale error (generation {generation}): {ex}")
                return
            logger.error(f"{self._name} fetch error: {ex}")
            self._set(loading=False, error=str(ex))
            return

        if self.is_current(generation, parameters):
            self._set(loading=False)

    async def refresh(self) -> None:
        """Re-run the current parameters. A no-op before the first fetch."""
        if self._state.generation == 0:
            return
        await self.fetch(self._state.parameters)

    def _set(self, **fields: Any) -> None:
        self._state = replace(self._state, **fields)
        if self._on_change is not None:
            self._on_change(self._state)
