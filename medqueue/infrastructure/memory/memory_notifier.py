import threading
from typing import List, Tuple

from ...application.ports.notifier import Notifier


class InMemoryNotifier(Notifier):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: List[Tuple[str, str, bool]] = []

    def notify(self, user_id: str, message: str, urgent: bool = False) -> None:
        with self._lock:
            self.sent.append((user_id, message, urgent))

    def messages_for(self, user_id: str) -> List[str]:
        with self._lock:
            return [m for u, m, _ in self.sent if u == user_id]
