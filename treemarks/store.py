from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from .log import get_logger
from .model import RootItems

log = get_logger(__name__)


@dataclass(frozen=True)
class CacheState:
    data: Optional[RootItems] = None
    loading: bool = False


Listener = Callable[[CacheState], None]


class TreeCache:
    """Single owned state cell holding the published tree snapshot.

    The state is replaced, never edited: readers holding a CacheState keep a
    complete tree no matter what is published after they read it.
    """

    def __init__(self, initial: Optional[CacheState] = None):
        self._state = initial or CacheState()
        self._listeners: List[Listener] = []
        self._pending: List[CacheState] = []
        self._notifying = False

    def read(self) -> CacheState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def replace(self, new_state: CacheState) -> None:
        """Swap the state, then notify listeners.

        A replace issued by a listener swaps immediately but is announced only
        after every listener has seen the current transition, so each listener
        receives transitions in order.
        """
        self._state = new_state
        if self._notifying:
            self._pending.append(new_state)
            return
        self._notifying = True
        try:
            self._notify(new_state)
            while self._pending:
                self._notify(self._pending.pop(0))
        finally:
            self._notifying = False
            self._pending.clear()

    def _notify(self, state: CacheState) -> None:
        # Snapshot the list so listeners added while notifying wait for the next transition.
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception("Tree cache listener %r failed", listener)

    def publish(self, data: Optional[RootItems]) -> None:
        self.replace(CacheState(data=data, loading=False))

    def set_loading(self, loading: bool) -> None:
        self.replace(CacheState(data=self._state.data, loading=loading))

    def reset(self) -> None:
        self.replace(CacheState())
