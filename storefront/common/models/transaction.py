from sqlalchemy import Column, DateTime, ForeignKey, JSON, Numeric, String
from sqlalchemy.orm import relationship
from .base import Base, new_id, utcnow


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    transaction_reference = Column(String(128), nullable=False, unique=True)
    paystack_reference = Column(String(128), nullable=True)
    payment_method = Column(String(64), nullable=True)
    payment_provider = Column(String(32), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="GHS")
    status = Column(String(32), nullable=False, default="pending")
    payment_status = Column(String(32), nullable=False, default="pending")
    customer_email = Column(String(255), nullable=False)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    initiated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    order = relationship("Order", lazy="joined")
    user = relationship("User", lazy="joined")
