from __future__ import annotations
import threading
from typing import Callable, Generic, List, TypeVar


T = TypeVar("T")


class Topic(Generic[T]):
    """Listener registry; ``subscribe`` hands back a disposer that removes the listener."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, snapshot: T) -> int:
        # Copy first so a listener may unsubscribe itself mid fan-out.
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            cb(snapshot)
        return len(listeners)
