from typing import Protocol


class Notifier(Protocol):
    def notify(self, user_id: str, message: str, urgent: bool = False) -> None:
        ...
