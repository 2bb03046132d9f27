from typing import Dict, List, Optional

from ..models.notification import Notification
from .logging import log_event


class NotificationService:
    """Admin dashboard notifications."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def create(self, *, type: str, title: str, message: str, data: Optional[Dict] = None) -> Dict:
        with self._session_factory() as session:
            row = Notification(type=type, title=title, message=message, data=data, is_read=False)
            session.add(row)
            session.flush()
            log_event("info", "notification.created", notification_id=row.id, type=type, title=title)
            return row.to_dict()

    def list_notifications(self, *, unread_only: bool = False) -> List[Dict]:
        with self._session_factory() as session:
            q = session.query(Notification)
            if unread_only:
                q = q.filter(Notification.is_read.is_(False))
            return [n.to_dict() for n in q.order_by(Notification.created_at.desc()).all()]
