"""
Host-environment history abstraction (the browser's location/history pair)
"""
import logging
from typing import Callable, List, Protocol

logger = logging.getLogger(__name__)

PopStateListener = Callable[[str], None]


class Location(Protocol):
    @property
    def pathname(self) -> str: ...

    def push_state(self, path: str) -> None: ...

    def back(self) -> None: ...

    def add_pop_state_listener(self, listener: PopStateListener) -> Callable[[], None]: ...


class MemoryLocation:
    """
    In-memory history stack with a cursor. back()/forward() move the cursor
    and fire pop-state listeners, like a browser does on its own buttons.
    """

    def __init__(self, initial_path: str = "/"):
        self._entries: List[str] = [initial_path]
        self._index = 0
        self._listeners: List[PopStateListener] = []

    @property
    def pathname(self) -> str:
        return self._entries[self._index]

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def push_state(self, path: str):
        # Pushing drops any forward entries
        del self._entries[self._index + 1:]
        self._entries.append(path)
        self._index += 1

    def add_pop_state_listener(self, listener: PopStateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _pop_state(self):
        for listener in list(self._listeners):
            listener(self.pathname)

    def back(self):
        if self._index == 0:
            return
        self._index -= 1
        self._pop_state()

    def forward(self):
        if self._index >= len(self._entries) - 1:
            return
        self._index += 1
        self._pop_state()
