from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from .base import Base, new_id, utcnow


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id = Column(String(36), primary_key=True, default=new_id)
    coupon_id = Column(String(36), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    order_total = Column(Numeric(12, 2), nullable=False, default=0)
    used_at = Column(DateTime, nullable=False, default=utcnow)
