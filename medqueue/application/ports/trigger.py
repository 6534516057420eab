from typing import Any, Callable, Protocol


class Trigger(Protocol):
    """Something that periodically calls back into the expiry sweep."""

    def on_tick(self, callback: Callable[[], Any]) -> None:
        ...
