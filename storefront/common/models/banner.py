from sqlalchemy import Boolean, Column, DateTime, Integer, String
from .base import Base, new_id, utcnow


class Banner(Base):
    __tablename__ = "banners"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=True)
    subtitle = Column(String(512), nullable=True)
    image_url = Column(String(1024), nullable=True)
    link = Column(String(1024), nullable=True)
    button_text = Column(String(128), nullable=True)
    display_order = Column("order", Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    start_date = Column(String(64), nullable=True)
    end_date = Column(String(64), nullable=True)
    text_color = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "image_url": self.image_url,
            "link": self.link,
            "button_text": self.button_text,
            "order": self.display_order,
            "active": self.active,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "text_color": self.text_color,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
