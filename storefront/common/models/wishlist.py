from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from .base import Base, new_id, utcnow


class WishlistItem(Base):
    __tablename__ = "wishlists"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    product = relationship("Product", lazy="joined")
