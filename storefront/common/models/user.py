from sqlalchemy import Boolean, Column, DateTime, String
from .base import Base, new_id, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    full_name = Column(String(255), nullable=True)
    email_notifications = Column(Boolean, nullable=True, default=True)
    newsletter_subscribed = Column(Boolean, nullable=True, default=False)
    sms_notifications = Column(Boolean, nullable=True, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
        }
