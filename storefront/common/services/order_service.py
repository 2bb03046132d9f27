import hmac
import logging
import random
import re
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ForbiddenError, NotFoundError, StorefrontError, ValidationError
from ..models.base import utcnow
from ..models.coupon_usage import CouponUsage
from ..models.order import Order, OrderItem
from ..models.product import Product
from ..models.user import User
from ..models.wishlist import WishlistItem
from ..utils import formatting
from ..utils.dto import pre_order_fields, to_order_dto
from .logging import log_event


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
ORDER_NUMBER_RE = re.compile(r"^ORD-(\d{3})")
ZERO = Decimal("0")


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def _quantity(value: Any) -> int:
    if value is None or value == "":
        return 1
    if isinstance(value, bool):
        raise ValidationError(f"Invalid item quantity: {value!r}", code="INVALID_ITEM_QUANTITY")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    try:
        quantity = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid item quantity: {value!r}", code="INVALID_ITEM_QUANTITY")
    if quantity < 1:
        raise ValidationError("Item quantity must be at least 1", code="INVALID_ITEM_QUANTITY")
    return quantity


def _line_total(item: Dict) -> Decimal:
    if item.get("subtotal"):
        return _decimal(item["subtotal"])
    if item.get("total_price"):
        return _decimal(item["total_price"])
    return _decimal(item.get("unit_price")) * int(item.get("quantity") or 1)


class OrderService:
    """Order intake, lookup and lifecycle backed by DB.

    Creation runs as a sequence of separate units of work. Only the order and
    its line items are mandatory; everything after the items insert (stock,
    transaction, emails, coupon usage, notifications) is best-effort.
    """

    def __init__(
        self,
        session_factory,
        *,
        config,
        stock_service,
        transaction_service,
        email_service,
        notification_service,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self.config = config
        self._stock = stock_service
        self._transactions = transaction_service
        self._email = email_service
        self._notifications = notification_service
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)

    # --- order numbers ---

    def generate_order_number(self, now: Optional[datetime] = None) -> str:
        """`ORD-<seq:3><DDMMYY>`, sequence continuing from today's newest order."""
        now = now or utcnow()
        date_str = now.strftime("%d%m%y")
        try:
            with self._session_factory() as session:
                day_start = datetime(now.year, now.month, now.day)
                last = (
                    session.query(Order.order_number)
                    .filter(Order.created_at >= day_start)
                    .order_by(Order.created_at.desc())
                    .first()
                )
        except SQLAlchemyError as exc:
            self.logger.error("Error generating order number: %s", exc)
            return f"ORD-{int(time.time() * 1000) % 1000:03d}{date_str}"

        sequence = 1
        if last is not None and last[0]:
            match = ORDER_NUMBER_RE.match(last[0])
            if match:
                sequence = int(match.group(1)) + 1
                if sequence > 999:
                    sequence = 1
        return f"ORD-{sequence:03d}{date_str}"

    # --- creation ---

    def create_order(self, payload: Dict) -> Dict:
        items = payload.get("order_items")
        if not isinstance(items, list) or not items:
            raise ValidationError("Order items are required", code="No order items provided")
        delivery_address = payload.get("delivery_address")
        if not delivery_address or not isinstance(delivery_address, dict):
            raise ValidationError("Delivery address is required", code="No delivery address provided")
        client_total = _decimal(payload.get("total"))
        if client_total <= 0:
            raise ValidationError("Invalid total amount", code="Total must be greater than 0")

        items = self._validate_products(items)

        order_number = payload.get("order_number") or self.generate_order_number()
        is_pre_order = bool(payload.get("is_pre_order"))
        payment_method = payload.get("payment_method")
        payment_reference = payload.get("payment_reference")
        shipping_address = self._shipping_address(payload, delivery_address, is_pre_order)
        amounts = self._amounts(payload, items, client_total)
        payment_status = "paid" if payment_method == "paystack" and payment_reference else "pending"

        with self._session_factory() as session:
            order = Order(
                order_number=order_number,
                user_id=payload.get("user_id") or None,
                subtotal=amounts["subtotal"],
                discount=amounts["discount"],
                tax=amounts["tax"],
                shipping_fee=amounts["shipping_fee"],
                total=amounts["total"],
                payment_method=payment_method,
                shipping_address=shipping_address,
                customer_bio=payload.get("customer_bio") or None,
                notes=self._initial_notes(payload, is_pre_order),
                status="pending",
                payment_status=payment_status,
            )
            session.add(order)
            session.flush()
            order_id = order.id
        log_event("info", "order.created", order_id=order_id, order_number=order_number, total=float(amounts["total"]))

        self._insert_items(order_id, items)

        if is_pre_order:
            log_event("info", "stock.skipped", order_id=order_id, reason="pre-order")
        else:
            self._decrement_stock(items)

        order_dto = self.get_order(order_id)
        user = order_dto.get("user")
        customer_name, customer_email = self._customer_contact(order_dto)

        try:
            self._transactions.record_for_order(
                order_id=order_id,
                order_number=order_number,
                user_id=order_dto.get("user_id"),
                payment_method=payment_method,
                payment_reference=payment_reference,
                payment_status=payment_status,
                amounts=amounts,
                customer_email=customer_email,
                customer_name=customer_name,
            )
        except Exception:
            self.logger.exception("Error creating/linking transaction for order %s", order_number)

        if customer_email:
            try:
                result = self._email.send_order_confirmation(order_dto, customer_name=customer_name, customer_email=customer_email)
                if not result.get("success"):
                    self.logger.error("Order confirmation email to %s failed: %s", customer_email, result.get("reason"))
            except Exception:
                self.logger.exception("Error sending order confirmation email for %s", order_number)
        else:
            self.logger.warning("No customer email found for order confirmation: %s", order_number)

        coupon_id = payload.get("coupon_id")
        if coupon_id and amounts["discount"] > 0:
            try:
                self._record_coupon_usage(coupon_id, order_dto, amounts)
            except Exception:
                self.logger.exception("Error recording coupon usage for order %s", order_number)

        bio = order_dto.get("customer_bio") or {}
        admin_name = (
            (user and self._user_name(user, None))
            or bio.get("name")
            or shipping_address.get("recipient_name")
            or "Guest Customer"
        )
        try:
            self._email.send_admin_order_notification(
                order_dto,
                customer_name=admin_name,
                customer_email=(user or {}).get("email") or bio.get("email") or "No email",
            )
        except Exception:
            self.logger.exception("Error sending admin order notification for %s", order_number)

        try:
            display = admin_name if admin_name != "Guest Customer" else shipping_address.get("full_name") or "Guest Customer"
            self._notifications.create(
                type="order",
                title=f"New Order: {order_number}",
                message=f"New order received from {display}. Total: {formatting.money(amounts['total'], self.config.currency)}",
                data={"order_id": order_id, "order_number": order_number, "customer_name": display},
            )
        except Exception:
            self.logger.exception("Failed to create admin notification for order %s", order_number)

        return order_dto

    def _validate_products(self, items: List[Any]) -> List[Dict]:
        """Check product ids exist and return the items with normalised quantities and prices."""
        product_ids = [str(it.get("product_id") or "").strip() if isinstance(it, dict) else "" for it in items]
        if any(not pid for pid in product_ids):
            raise ValidationError("Some order items have invalid product IDs", code="INVALID_PRODUCT_IDS")

        unique_ids = list(dict.fromkeys(product_ids))
        with self._session_factory() as session:
            found = {row[0] for row in session.query(Product.id).filter(Product.id.in_(unique_ids)).all()}
        missing = [pid for pid in unique_ids if pid not in found]
        if missing:
            raise ValidationError(
                f"Products not found: {', '.join(missing)}. These products may have been removed from the catalog.",
                code="PRODUCTS_NOT_FOUND",
                missing_product_ids=missing,
            )

        normalised = []
        for item, product_id in zip(items, product_ids):
            clean = dict(item, product_id=product_id, quantity=_quantity(item.get("quantity")))
            for field in ("unit_price", "subtotal", "total_price"):
                if clean.get(field) not in (None, ""):
                    amount = _decimal(clean[field])
                    if amount < 0:
                        raise ValidationError(f"Invalid {field} for product {product_id}", code="INVALID_ITEM_PRICE")
                    clean[field] = amount
            normalised.append(clean)
        return normalised

    def _shipping_address(self, payload: Dict, delivery_address: Dict, is_pre_order: bool) -> Dict:
        address = dict(delivery_address)
        address["delivery_option"] = payload.get("delivery_option") or {
            "name": "Standard",
            "price": float(_decimal(payload.get("delivery_fee"))),
        }
        if is_pre_order:
            address.update(
                is_pre_order=True,
                pre_order_shipping_option=payload.get("pre_order_shipping_option") or None,
                estimated_arrival_date=payload.get("estimated_arrival_date") or None,
            )
        if payload.get("payment_reference"):
            address["payment_reference"] = payload["payment_reference"]
        return address

    def _amounts(self, payload: Dict, items: List[Dict], client_total: Decimal) -> Dict[str, Decimal]:
        subtotal = _decimal(payload.get("subtotal"))
        if not subtotal:
            subtotal = sum((_line_total(it) for it in items), ZERO)
        shipping_fee = _decimal(payload.get("delivery_fee"))
        tax = _decimal(payload.get("tax"))
        discount = _decimal(payload.get("discount"))
        total = subtotal + shipping_fee + tax - discount

        difference = abs(client_total - total)
        if difference > Decimal("0.01"):
            ratio = max(client_total, total) / min(client_total, total) if total > 0 else None
            if difference > total * Decimal("0.01") or (ratio is not None and ratio > 10):
                log_event(
                    "warning",
                    "order.total_mismatch",
                    client_total=float(client_total),
                    calculated_total=float(total),
                    ratio=float(ratio) if ratio is not None else None,
                )

        if total < 0:
            raise ValidationError("Invalid order total: negative amount detected.", code="NEGATIVE_ORDER_TOTAL")
        if total > Decimal(str(self.config.max_order_total)):
            raise ValidationError(
                f"Invalid order total detected ({total:.2f} {self.config.currency}). "
                f"Prices must be in {self.config.currency}, not minor units. Please contact support.",
                code="INVALID_TOTAL_PESEWAS_DETECTED",
                details="Order total exceeds reasonable limit. This may indicate prices were sent in minor units.",
            )
        return {"subtotal": subtotal, "discount": discount, "tax": tax, "shipping_fee": shipping_fee, "total": total}

    @staticmethod
    def _initial_notes(payload: Dict, is_pre_order: bool) -> Optional[str]:
        notes = payload.get("notes") or None
        if not is_pre_order:
            return notes
        arrival = formatting.long_date(payload.get("estimated_arrival_date"), default="TBD")
        option = payload.get("pre_order_shipping_option") or "Not specified"
        return f"{notes or ''}\n\n[PRE-ORDER] Shipping: {option}. Estimated Arrival: {arrival}".strip()

    def _insert_items(self, order_id: str, items: List[Dict]) -> None:
        try:
            with self._session_factory() as session:
                for item in items:
                    unit_price = _decimal(item.get("unit_price"))
                    session.add(
                        OrderItem(
                            order_id=order_id,
                            product_id=item["product_id"],
                            product_name=item.get("product_name"),
                            product_image=item.get("product_image"),
                            quantity=item["quantity"],
                            unit_price=unit_price,
                            total_price=_line_total(item),
                            selected_variants=item.get("selected_variants"),
                        )
                    )
        except Exception as exc:
            self.logger.error("Order items creation failed for %s: %s", order_id, exc)
            self._discard_order(order_id)
            if isinstance(exc, IntegrityError) and "foreign key" in str(exc.orig).lower():
                raise StorefrontError(
                    "Failed to create order",
                    code="PRODUCT_NOT_FOUND",
                    details="A product in this order may have been removed from the catalog. "
                    "Please remove it from your cart and try again.",
                ) from exc
            raise

    def _discard_order(self, order_id: str) -> None:
        try:
            with self._session_factory() as session:
                session.query(Order).filter(Order.id == order_id).delete(synchronize_session=False)
            log_event("warning", "order.discarded", order_id=order_id)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to delete orphaned order %s: %s", order_id, exc)

    def _decrement_stock(self, items: List[Dict]) -> None:
        for item in items:
            try:
                change = self._stock.decrement(item["product_id"], item["quantity"])
                if change is not None and change.sold_out:
                    self._alert_out_of_stock(change.product_id, change.product_name)
            except Exception:
                self.logger.exception("Error updating stock for product %s", item.get("product_id"))

    def _alert_out_of_stock(self, product_id: str, product_name: Optional[str]) -> None:
        name = product_name or product_id
        self._notifications.create(
            type="alert",
            title="Product Out of Stock",
            message=f"{name} is now out of stock",
            data={"product_id": product_id},
        )
        if not self._email.send_out_of_stock_alert(product_id, name):
            self.logger.error("Failed to send out of stock email for product %s", product_id)

    def _record_coupon_usage(self, coupon_id: str, order: Dict, amounts: Dict[str, Decimal]) -> None:
        with self._session_factory() as session:
            session.add(
                CouponUsage(
                    coupon_id=coupon_id,
                    user_id=order.get("user_id"),
                    order_id=order["id"],
                    discount_amount=amounts["discount"],
                    order_total=amounts["subtotal"],
                )
            )
        log_event("info", "coupon.used", coupon_id=coupon_id, order_id=order["id"], discount=float(amounts["discount"]))

    # --- queries ---

    def list_orders(self, *, user_id: Optional[str] = None) -> List[Dict]:
        with self._session_factory() as session:
            q = session.query(Order)
            if user_id:
                q = q.filter(Order.user_id == user_id)
            return [to_order_dto(o) for o in q.order_by(Order.created_at.desc()).all()]

    def get_order(self, order_id: str) -> Dict:
        with self._session_factory() as session:
            row = session.get(Order, order_id)
            if row is None:
                raise NotFoundError("Order not found")
            return to_order_dto(row)

    def get_order_for_pdf(self, order_id: str) -> Dict:
        order = self.get_order(order_id)
        order["customer_bio"] = order.get("customer_bio") or None
        return order

    def track_order(self, order_number_or_id: Optional[str], email: Optional[str]) -> Dict:
        """Public lookup; a wrong email is indistinguishable from an unknown order."""
        if not isinstance(order_number_or_id, str) or not isinstance(email, str):
            raise ValidationError("Order number/ID and email are required")
        order_number_or_id, email = order_number_or_id.strip(), email.strip()
        if not order_number_or_id or not email:
            raise ValidationError("Order number/ID and email are required")

        with self._session_factory() as session:
            row = session.query(Order).filter(Order.order_number == order_number_or_id).first()
            if row is None:
                row = session.get(Order, order_number_or_id)
            data = to_order_dto(row) if row is not None else None

        if data is None or not self._email_matches(data, email):
            self._miss_delay()
            raise NotFoundError("Order not found")

        log_event("info", "order.tracked", order_number=data["order_number"], status=data["status"])
        data["items"] = data["order_items"]
        return data

    def _email_matches(self, order: Dict, email: str) -> bool:
        provided = email.strip().lower().encode("utf-8")
        candidates = [
            (order.get("user") or {}).get("email"),
            (order.get("shipping_address") or {}).get("email"),
            (order.get("customer_bio") or {}).get("email"),
        ]
        matched = False
        for candidate in candidates:
            if candidate:
                matched |= hmac.compare_digest(str(candidate).strip().lower().encode("utf-8"), provided)
        return matched

    def _miss_delay(self) -> None:
        base = self.config.track_miss_delay_ms
        if base > 0:
            self._sleep((base + random.uniform(0, 50)) / 1000.0)

    # --- lifecycle ---

    def update_status(
        self,
        order_id: str,
        status: Optional[str],
        *,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

        previous, items, restore = self._apply_status(order_id, status, tracking_number=tracking_number, notes=notes)
        if restore:
            self._stock.restore(items)
        log_event("info", "order.status_updated", order_id=order_id, previous=previous, status=status, stock_restored=restore)

        order = self.get_order(order_id)
        name, email = self._customer_contact(order)
        if email:
            try:
                result = self._email.send_order_status_update(order, status, customer_name=name, customer_email=email)
                if not result.get("success"):
                    self.logger.error("Order status update email to %s failed: %s", email, result.get("reason"))
            except Exception:
                self.logger.exception("Error sending order status update email for %s", order["order_number"])
        else:
            self.logger.warning("No email found for order status update: %s", order_id)
        return order

    def update_payment_status(self, order_id: str, payment_status: Optional[str]) -> Dict:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError("Invalid payment status. Must be: pending, paid, failed, or refunded")
        with self._session_factory() as session:
            row = session.get(Order, order_id)
            if row is None:
                raise NotFoundError("Order not found")
            row.payment_status = payment_status
            row.updated_at = utcnow()
        mirrored = self._transactions.mirror_order_payment_status(order_id, payment_status)
        log_event("info", "order.payment_status_updated", order_id=order_id, payment_status=payment_status, transactions=mirrored)
        return self.get_order(order_id)

    def cancel_order(self, order_id: str, *, reason: Optional[str] = None, email: Optional[str] = None) -> Dict:
        existing = self.get_order(order_id)
        if not existing.get("user_id"):
            if not isinstance(email, str) or not email.strip():
                raise ValidationError("Email verification required for guest orders")
            if not self._guest_email_matches(existing, email):
                raise ForbiddenError(
                    "Email verification failed. Please use the email address used when placing the order."
                )

        notes = existing.get("notes")
        if reason:
            notes = f"{notes or ''}\n\n[CANCELLED] {reason}".strip()
        previous, items, restore = self._apply_status(order_id, "cancelled", notes=notes)
        if restore:
            self._stock.restore(items)
        log_event("info", "order.cancelled", order_id=order_id, previous=previous, stock_restored=restore)

        order = self.get_order(order_id)
        name, customer_email = self._customer_contact(order)
        if customer_email:
            try:
                self._email.send_order_cancellation(order, customer_name=name, customer_email=customer_email, reason=reason)
            except Exception:
                self.logger.exception("Failed to send order cancellation email for %s", order["order_number"])
        return order

    def _apply_status(
        self,
        order_id: str,
        status: str,
        *,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[str, List[Dict], bool]:
        """Write the new status; report whether cancelled stock should go back on the shelf."""
        with self._session_factory() as session:
            row = session.get(Order, order_id)
            if row is None:
                raise NotFoundError("Order not found")
            previous = row.status
            is_pre_order = pre_order_fields({"shipping_address": row.shipping_address})["is_pre_order"]
            restore = (
                status == "cancelled"
                and previous != "cancelled"
                and not is_pre_order
                and row.payment_status != "refunded"
            )
            items = [{"product_id": it.product_id, "quantity": it.quantity} for it in row.items]

            row.status = status
            if tracking_number is not None:
                row.tracking_number = tracking_number
            if notes is not None:
                row.notes = notes
            row.updated_at = utcnow()
        return previous, items, restore

    @staticmethod
    def _guest_email_matches(order: Dict, email: str) -> bool:
        provided = email.strip().lower()
        for source in (order.get("shipping_address"), order.get("customer_bio")):
            candidate = (source or {}).get("email")
            if candidate and candidate.strip().lower() == provided:
                return True
        return False

    @staticmethod
    def _user_name(user: Dict, default: Optional[str] = "Customer") -> Optional[str]:
        name = user.get("full_name") or f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
        return name or default

    def _customer_contact(self, order: Dict) -> Tuple[str, Optional[str]]:
        """Who receives customer email: the account, then the guest bio, then the address."""
        user = order.get("user") or {}
        if user.get("email"):
            return self._user_name(user), user["email"]
        bio = order.get("customer_bio") or {}
        if bio.get("email"):
            return bio.get("name") or "Guest Customer", bio["email"]
        address = order.get("shipping_address") or {}
        if address.get("email"):
            return address.get("full_name") or address.get("first_name") or "Guest Customer", address["email"]
        return "Customer", None

    # --- reminders ---

    def send_wishlist_reminder(self, user_id: str) -> Dict:
        with self._session_factory() as session:
            if session.get(User, user_id) is None:
                raise NotFoundError("User not found")
            rows = session.query(WishlistItem).filter(WishlistItem.user_id == user_id).all()
            items = [
                {
                    "product_name": row.product.name if row.product else "Unknown Product",
                    "product_description": (row.product.description if row.product else "") or "",
                    "product_price": float((row.product.discount_price or row.product.price) if row.product else 0),
                }
                for row in rows
            ]
        if not items:
            return {"success": True, "skipped": True, "reason": "Wishlist is empty"}
        result = self._email.send_wishlist_reminder(user_id, items)
        log_event("info", "reminder.wishlist", user_id=user_id, items=len(items), **result)
        return result

    def send_cart_abandonment_reminder(self, user_id: Optional[str], cart_items: Optional[List[Dict]]) -> Dict:
        if not user_id:
            raise ValidationError("user_id is required")
        with self._session_factory() as session:
            if session.get(User, user_id) is None:
                raise NotFoundError("User not found")
        result = self._email.send_cart_abandonment_reminder(user_id, cart_items or [])
        log_event("info", "reminder.cart_abandonment", user_id=user_id, items=len(cart_items or []), **result)
        return result
