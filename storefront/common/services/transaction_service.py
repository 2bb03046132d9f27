from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..models.base import utcnow
from ..models.transaction import Transaction
from ..utils.dto import to_transaction_dto
from .logging import log_event


REFUNDABLE_ORDER_STATUSES = {"pending", "cancelled"}


def payment_provider_for(method: Optional[str]) -> str:
    if method == "paystack":
        return "paystack"
    if method == "cash_on_delivery":
        return "cash"
    return "other"


class TransactionService:
    """Payment lifecycle records linked to orders."""

    def __init__(self, session_factory, currency: str = "GHS"):
        self._session_factory = session_factory
        self._currency = currency

    def list_transactions(self, *, status: Optional[str] = None, user_id: Optional[str] = None, order_id: Optional[str] = None) -> List[Dict]:
        with self._session_factory() as session:
            q = session.query(Transaction)
            if status:
                q = q.filter(Transaction.payment_status == status)
            if user_id:
                q = q.filter(Transaction.user_id == user_id)
            if order_id:
                q = q.filter(Transaction.order_id == order_id)
            rows = q.order_by(Transaction.created_at.desc()).all()
            return [to_transaction_dto(t) for t in rows]

    def get_transaction(self, transaction_id: str) -> Dict:
        with self._session_factory() as session:
            row = session.get(Transaction, transaction_id)
            if row is None:
                raise NotFoundError("Transaction not found")
            return to_transaction_dto(row, order_fields=("id", "order_number", "total", "status"))

    def refund(self, transaction_id: str) -> Dict:
        with self._session_factory() as session:
            row = session.get(Transaction, transaction_id)
            if row is None:
                raise NotFoundError("Transaction not found")
            if row.payment_status == "refunded":
                raise ValidationError("Transaction has already been refunded")
            if row.payment_status != "paid":
                raise ValidationError("Only paid transactions can be refunded")

            now = utcnow()
            row.payment_status = "refunded"
            row.status = "refunded"
            row.updated_at = now

            order = row.order
            if order is not None and order.status in REFUNDABLE_ORDER_STATUSES:
                order.payment_status = "refunded"
                order.updated_at = now

            session.flush()
            log_event(
                "info",
                "transaction.refunded",
                transaction_id=row.id,
                reference=row.transaction_reference,
                order_id=row.order_id,
            )
            return to_transaction_dto(row)

    def record_for_order(
        self,
        *,
        order_id: str,
        order_number: str,
        user_id: Optional[str],
        payment_method: Optional[str],
        payment_reference: Optional[str],
        payment_status: str,
        amounts: Dict[str, Decimal],
        customer_email: Optional[str],
        customer_name: str,
    ) -> Dict:
        """Create the order's transaction, or adopt one a payment webhook created first."""
        with self._session_factory() as session:
            if payment_reference:
                existing = (
                    session.query(Transaction)
                    .filter(
                        or_(
                            Transaction.transaction_reference == payment_reference,
                            Transaction.paystack_reference == payment_reference,
                        )
                    )
                    .first()
                )
                if existing is not None:
                    meta = dict(existing.meta or {})
                    meta.update({"customer_name": customer_name, "order_number": order_number})
                    existing.order_id = order_id
                    existing.user_id = user_id
                    if customer_email:
                        existing.customer_email = customer_email
                    existing.meta = meta
                    existing.updated_at = utcnow()
                    session.flush()
                    log_event("info", "transaction.linked", transaction_id=existing.id, order_number=order_number)
                    return {"id": existing.id, "linked": True}

            row = Transaction(
                order_id=order_id,
                user_id=user_id,
                transaction_reference=payment_reference or f"TXN-{order_id[:8]}",
                paystack_reference=payment_reference,
                payment_method=payment_method or "cash_on_delivery",
                payment_provider=payment_provider_for(payment_method),
                amount=amounts["total"],
                currency=self._currency,
                status=payment_status,
                payment_status=payment_status,
                customer_email=customer_email or "no-email@example.com",
                meta={
                    "order_number": order_number,
                    "customer_name": customer_name,
                    "subtotal": float(amounts["subtotal"]),
                    "discount": float(amounts["discount"]),
                    "tax": float(amounts["tax"]),
                    "shipping_fee": float(amounts["shipping_fee"]),
                    "total": float(amounts["total"]),
                    "payment_method": payment_method,
                    "order_id": order_id,
                },
                initiated_at=utcnow(),
            )
            session.add(row)
            session.flush()
            log_event("info", "transaction.created", transaction_id=row.id, order_number=order_number)
            return {"id": row.id, "linked": False}

    def mirror_order_payment_status(self, order_id: str, payment_status: str) -> int:
        with self._session_factory() as session:
            rows = session.query(Transaction).filter(Transaction.order_id == order_id).all()
            for row in rows:
                row.payment_status = payment_status
                row.status = payment_status
                row.updated_at = utcnow()
            return len(rows)
