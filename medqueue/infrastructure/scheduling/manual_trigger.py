from typing import Any, Callable, List

from ...application.ports.trigger import Trigger


class ManualTrigger(Trigger):
    """Runs registered callbacks only when ``fire`` is called."""

    def __init__(self) -> None:
        self._callbacks: List[Callable[[], Any]] = []

    def on_tick(self, callback: Callable[[], Any]) -> None:
        self._callbacks.append(callback)

    def fire(self) -> List[Any]:
        return [callback() for callback in self._callbacks]
