from sqlmodel import Session

from .....models import Notification
from .....application.ports.notifier import Notifier

class SqlNotifier(Notifier):
    """Stores in-app notifications; delivery channels read from this table."""

    def __init__(self, session: Session):
        self.session = session

    def notify(self, user_id: str, message: str, urgent: bool = False) -> None:
        try:
            self.session.add(Notification(user_id=user_id, message=message, is_urgent=urgent))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
