"""
Transactional email service
Composes HTML from Jinja2 templates and delivers through the Resend HTTP API
(https://resend.com/docs/api-reference/emails/send-email).
"""
import base64
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from ..models.user import User
from ..utils import formatting
from .logging import log_event


class EmailService:
    """
    Resend 整合服務：
    - 訂單確認、狀態更新、取消通知（客戶）
    - 新訂單、缺貨、批量訂購、聯盟申請通知（管理員）
    - 願望清單與購物車提醒（受設定與用戶偏好控制）
    """

    API_URL = "https://api.resend.com/emails"

    def __init__(self, config, session_factory, settings_service, http: Optional[Any] = None) -> None:
        self.config = config
        self._session_factory = session_factory
        self._settings = settings_service
        self._http = http if http is not None else requests.Session()
        self.logger = logging.getLogger(__name__)
        self._env = Environment(
            loader=FileSystemLoader(str(config.email_template_dir)),
            autoescape=select_autoescape(["html"]),
        )
        self._env.filters["money"] = formatting.money
        self._env.filters["long_date"] = formatting.long_date

        if not self.is_enabled():
            self.logger.warning("RESEND_API_KEY is not set, outgoing email is disabled")

    def is_enabled(self) -> bool:
        return bool(self.config.resend_api_key)

    # --- transport ---

    def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        attachments: Optional[Iterable[Dict[str, Any]]] = None,
        use_support_email: bool = True,
    ) -> bool:
        """Deliver one message. Attachments are dicts with `filename` and raw `content` bytes."""
        if not self.is_enabled():
            self.logger.warning("Email to %s skipped (%s): provider not configured", to, subject)
            return False

        sender = self.config.support_email if use_support_email else self.config.noreply_email
        payload: Dict[str, Any] = {"from": sender, "to": to, "subject": subject, "html": html}
        encoded = [
            {"filename": att["filename"], "content": base64.b64encode(att["content"]).decode("ascii")}
            for att in (attachments or [])
        ]
        if encoded:
            payload["attachments"] = encoded

        try:
            response = self._http.post(
                self.API_URL,
                headers={"Authorization": f"Bearer {self.config.resend_api_key}"},
                json=payload,
                timeout=15,
            )
        except requests.RequestException as exc:
            self.logger.error("Error sending email to %s: %s", to, exc)
            return False

        if response.status_code >= 300:
            message = f"Resend API error: {response.status_code}"
            try:
                message = response.json().get("message", message)
            except ValueError:
                pass
            self.logger.error("Error sending email via Resend to=%s subject=%s from=%s: %s", to, subject, sender, message)
            return False

        message_id = None
        try:
            message_id = response.json().get("id")
        except ValueError:
            pass
        log_event(
            "info",
            "email.sent",
            to=to,
            subject=subject,
            sender="support" if use_support_email else "noreply",
            message_id=message_id,
        )
        return True

    def render(self, template_name: str, **context: Any) -> str:
        context.setdefault("store_name", self.config.store_name)
        context.setdefault("logo_url", self.config.logo_url)
        context.setdefault("contact_url", self.config.contact_url)
        context.setdefault("tracking_url", self.config.tracking_url)
        context.setdefault("currency", self.config.currency)
        return self._env.get_template(template_name).render(**context)

    # --- order emails ---

    def send_order_confirmation(self, order: Dict, *, customer_name: str, customer_email: Optional[str]) -> Dict:
        """Transactional: always sent, user preferences do not apply."""
        if not customer_email:
            self.logger.error("No customer email provided for order confirmation: %s", order.get("order_number"))
            return {"success": False, "reason": "No customer email provided"}
        try:
            context = self._order_context(order, customer_name, customer_email)
            html = self.render("order_confirmation.html", **context)
        except TemplateError as exc:
            self.logger.error("Error rendering order confirmation: %s", exc)
            return {"success": False, "reason": str(exc)}
        subject = f"[{context['order_type_tag']}] Order Confirmation - {order.get('order_number')}"
        return {"success": self.send_email(customer_email, subject, html)}

    def send_order_status_update(self, order: Dict, new_status: str, *, customer_name: str, customer_email: Optional[str]) -> Dict:
        if not customer_email:
            self.logger.error("No customer email provided for order status update: %s", order.get("order_number"))
            return {"success": False, "reason": "No customer email provided"}
        try:
            context = self._order_context(order, customer_name, customer_email)
            html = self.render("order_status_update.html", new_status=formatting.humanize(new_status or ""), **context)
        except TemplateError as exc:
            self.logger.error("Error rendering order status update: %s", exc)
            return {"success": False, "reason": str(exc)}
        subject = f"[{context['order_type_tag']}] Order Update - {order.get('order_number')}"
        return {"success": self.send_email(customer_email, subject, html)}

    def send_order_cancellation(self, order: Dict, *, customer_name: str, customer_email: Optional[str], reason: Optional[str] = None) -> Dict:
        if not customer_email:
            return {"success": False, "reason": "No customer email provided"}
        try:
            context = self._order_context(order, customer_name, customer_email)
            html = self.render("order_cancelled.html", cancellation_reason=reason, **context)
        except TemplateError as exc:
            self.logger.error("Error rendering order cancellation: %s", exc)
            return {"success": False, "reason": str(exc)}
        subject = f"[{context['order_type_tag']}] Order Cancelled - {order.get('order_number')}"
        return {"success": self.send_email(customer_email, subject, html)}

    def send_admin_order_notification(self, order: Dict, *, customer_name: str, customer_email: Optional[str]) -> Dict:
        try:
            context = self._order_context(order, customer_name or "Guest Customer", customer_email or "No email")
            html = self.render("admin_order_notification.html", **context)
        except TemplateError as exc:
            self.logger.error("Error rendering admin order notification: %s", exc)
            return {"success": False, "reason": str(exc)}
        subject = f"[{context['order_type_tag']}] New Order Received - {order.get('order_number')}"
        return {"success": self.send_email(self.config.admin_notification_email, subject, html)}

    def send_out_of_stock_alert(self, product_id: str, product_name: str) -> bool:
        html = self.render("out_of_stock.html", product_id=product_id, product_name=product_name)
        return self.send_email(
            self.config.admin_notification_email,
            f"Product Out of Stock: {product_name}",
            html,
            use_support_email=False,
        )

    # --- marketing reminders ---

    def send_wishlist_reminder(self, user_id: str, items: List[Dict]) -> Dict:
        return self._send_marketing(
            user_id,
            toggle="email_wishlist_reminders",
            toggle_label="Wishlist reminder emails",
            template="wishlist_reminder.html",
            subject="Items in your wishlist are waiting!",
            items=items,
        )

    def send_cart_abandonment_reminder(self, user_id: str, items: List[Dict]) -> Dict:
        return self._send_marketing(
            user_id,
            toggle="email_cart_abandonment",
            toggle_label="Cart abandonment emails",
            template="cart_abandonment.html",
            subject="Don't forget your items!",
            items=items,
        )

    def send_newsletter(self, user_id: str, subject: str, content: str) -> Dict:
        """`content` is finished HTML and is sent as-is."""
        return self._send_marketing(
            user_id,
            subject=subject,
            html=content,
            unsubscribed_reason="User has unsubscribed from newsletter",
        )

    def _send_marketing(
        self,
        user_id: str,
        *,
        subject: str,
        toggle: Optional[str] = None,
        toggle_label: Optional[str] = None,
        template: Optional[str] = None,
        items: Optional[List[Dict]] = None,
        html: Optional[str] = None,
        unsubscribed_reason: str = "User has disabled email notifications",
    ) -> Dict:
        if not self._settings.is_enabled("email_notifications_enabled"):
            return {"success": True, "skipped": True, "reason": "Email notifications disabled in settings"}
        if toggle and not self._settings.is_enabled(toggle):
            return {"success": True, "skipped": True, "reason": f"{toggle_label} disabled in settings"}

        with self._session_factory() as session:
            user = session.get(User, user_id)
            if user is None:
                return {"success": False, "reason": "User not found"}
            if not bool(user.newsletter_subscribed):
                self.logger.info("Skipping %s for user %s: not subscribed", template or "newsletter", user_id)
                return {"success": True, "skipped": True, "reason": unsubscribed_reason}
            email = user.email
            name = f"{user.first_name or ''} {user.last_name or ''}".strip() or "Customer"

        if html is None:
            try:
                html = self.render(template, customer_name=name, items=items or [])
            except TemplateError as exc:
                return {"success": False, "reason": str(exc)}
        return {"success": self.send_email(email, subject, html, use_support_email=False)}

    # --- lead capture ---

    def send_bulk_order_request(self, data: Dict) -> Dict:
        return self._send_lead("bulk_order_request.html", f"New Bulk Order Request - {data.get('name')}", data)

    def send_affiliate_application(self, data: Dict) -> Dict:
        return self._send_lead("affiliate_application.html", f"New Affiliate Application - {data.get('fullName')}", data)

    def _send_lead(self, template: str, subject: str, data: Dict) -> Dict:
        try:
            html = self.render(template, lead=data)
        except TemplateError as exc:
            return {"success": False, "error": str(exc)}
        if self.send_email(self.config.admin_notification_email, subject, html):
            return {"success": True}
        return {"success": False, "error": "Email delivery failed"}

    # --- helpers ---

    def _order_context(self, order: Dict, customer_name: str, customer_email: str) -> Dict[str, Any]:
        is_pre_order = bool(order.get("is_pre_order"))
        items = order.get("order_items") or order.get("items") or []
        delivery = order.get("shipping_address") or order.get("delivery_address") or {}
        subtotal = order.get("subtotal") or sum(
            float(it.get("total_price") or (it.get("unit_price") or 0) * (it.get("quantity") or 0)) for it in items
        )
        shipping_fee = order.get("shipping_fee") or 0
        total = order.get("total") or (subtotal + shipping_fee)

        return {
            "order": order,
            "order_number": order.get("order_number") or "N/A",
            "customer_name": customer_name or "Customer",
            "customer_email": customer_email or "N/A",
            "is_pre_order": is_pre_order,
            "order_type_tag": "PRE-ORDER" if is_pre_order else "REGULAR",
            "shipping_label": "Shipment" if is_pre_order else "Delivery",
            "preparation_message": (
                "We've received your order and are preparing it for shipment."
                if is_pre_order
                else "We've received your order and are preparing it for delivery."
            ),
            "order_date": formatting.long_date(order.get("created_at")),
            "subtotal": subtotal,
            "shipping_fee": shipping_fee,
            "discount": order.get("discount") or 0,
            "tax": order.get("tax") or 0,
            "total": total,
            "payment_method": formatting.payment_method_label(order.get("payment_method")),
            "payment_status": formatting.payment_status_label(order.get("payment_status")),
            "estimated_delivery": formatting.estimated_delivery(is_pre_order, order.get("estimated_arrival_date"), delivery),
            "pre_order_shipping_option": order.get("pre_order_shipping_option") or "Not specified",
            "estimated_arrival": formatting.long_date(order.get("estimated_arrival_date"), default="TBD"),
            "delivery": {
                "address": formatting.format_address(delivery),
                "gadget_name": delivery.get("gadget_name") or "N/A",
                "recipient_name": delivery.get("recipient_name") or delivery.get("full_name") or customer_name or "N/A",
                "recipient_number": delivery.get("recipient_number") or delivery.get("phone") or "N/A",
                "location": delivery.get("recipient_location") or delivery.get("location") or delivery.get("street_address") or delivery.get("street") or "N/A",
                "region": delivery.get("recipient_region") or delivery.get("region") or delivery.get("city") or "N/A",
                "country": delivery.get("country") or "Ghana",
                "alternate_contact": delivery.get("alternate_contact_number"),
            },
            "notes": order.get("notes"),
            "items": [self._item_context(it) for it in items],
        }

    def _item_context(self, item: Dict) -> Dict[str, Any]:
        unit_price = float(item.get("unit_price") or item.get("price") or 0)
        quantity = int(item.get("quantity") or 0)
        raw_image = item.get("product_image") or item.get("thumbnail") or item.get("image_url") or item.get("image")
        variants = item.get("selected_variants") or {}
        if isinstance(variants, dict):
            variants = list(variants.values())
        return {
            "name": item.get("product_name") or "Product",
            "quantity": quantity,
            "unit_price": unit_price,
            "subtotal": float(item.get("total_price") or item.get("subtotal") or unit_price * quantity),
            "image_url": formatting.resolve_image_url(raw_image, self.config.images_base_url, self.config.storage_url),
            "is_pre_order": bool(item.get("is_pre_order")),
            "variants": [
                {"name": v.get("name") or v.get("label") or "", "value": v.get("value") or ""}
                for v in variants
                if isinstance(v, dict)
            ],
        }
