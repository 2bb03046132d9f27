"""訂單 API 路由：下單、查詢、追蹤、狀態更新、取消、發票下載與提醒郵件。"""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, Response, current_app, request
from sqlalchemy.exc import SQLAlchemyError

from ..common.utils.auth import verify_admin_token
from ..common.utils.responses import error_response, success_response


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


def _config():
    return current_app.config["STOREFRONT_CONFIG"]


def _ensure_admin() -> Dict:
    return verify_admin_token(request.headers.get("Authorization"), _config().admin_jwt_secret)


def _payload() -> Dict[str, Any]:
    return request.get_json(silent=True) or {}


@orders_bp.post("/", strict_slashes=False)
def create_order():
    service = _components()["order_service"]
    try:
        order = service.create_order(_payload())
    except SQLAlchemyError as exc:
        current_app.logger.error("Error creating order: %s", exc)
        return error_response("Failed to create order", 500, error=str(exc))
    return success_response(order, "Order created successfully")


@orders_bp.get("/", strict_slashes=False)
def list_orders():
    _ensure_admin()
    service = _components()["order_service"]
    try:
        orders = service.list_orders(user_id=request.args.get("user_id") or None)
    except SQLAlchemyError as exc:
        return error_response("Failed to fetch orders", 500, error=str(exc))
    return success_response(orders)


@orders_bp.post("/track")
def track_order():
    payload = _payload()
    service = _components()["order_service"]
    try:
        order = service.track_order(payload.get("order_number_or_id"), payload.get("email"))
    except SQLAlchemyError as exc:
        return error_response("Failed to track order", 500, error=str(exc))
    return success_response(order)


@orders_bp.get("/<order_id>")
def get_order(order_id: str):
    service = _components()["order_service"]
    try:
        order = service.get_order(order_id)
    except SQLAlchemyError as exc:
        return error_response("Failed to fetch order", 500, error=str(exc))
    return success_response(order)


@orders_bp.put("/<order_id>/status")
def update_order_status(order_id: str):
    _ensure_admin()
    payload = _payload()
    service = _components()["order_service"]
    try:
        order = service.update_status(
            order_id,
            payload.get("status"),
            tracking_number=payload.get("tracking_number"),
            notes=payload.get("notes"),
        )
    except SQLAlchemyError as exc:
        return error_response("Failed to update order status", 500, error=str(exc))
    return success_response(order, "Order status updated successfully")


@orders_bp.put("/<order_id>/payment-status")
def update_payment_status(order_id: str):
    _ensure_admin()
    service = _components()["order_service"]
    try:
        order = service.update_payment_status(order_id, _payload().get("payment_status"))
    except SQLAlchemyError as exc:
        return error_response("Failed to update payment status", 500, error=str(exc))
    return success_response(order, "Payment status updated successfully")


@orders_bp.post("/<order_id>/cancel")
def cancel_order(order_id: str):
    payload = _payload()
    service = _components()["order_service"]
    try:
        order = service.cancel_order(
            order_id,
            reason=payload.get("cancellation_reason"),
            email=payload.get("email"),
        )
    except SQLAlchemyError as exc:
        return error_response("Failed to cancel order", 500, error=str(exc))
    return success_response(order, "Order cancelled successfully")


@orders_bp.get("/<order_id>/pdf")
def download_order_pdf(order_id: str):
    orders = _components()["order_service"]
    pdf_service = _components()["pdf_service"]
    try:
        order = orders.get_order_for_pdf(order_id)
        pdf = pdf_service.generate_order_pdf(order)
    except (SQLAlchemyError, ValueError, OSError) as exc:
        current_app.logger.error("Error generating order PDF for %s: %s", order_id, exc)
        return error_response("Failed to generate order PDF", 500, error=str(exc))
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="order-{order["order_number"]}.pdf"'},
    )


@orders_bp.post("/reminders/wishlist/<user_id>")
def send_wishlist_reminder(user_id: str):
    _ensure_admin()
    service = _components()["order_service"]
    try:
        result = service.send_wishlist_reminder(user_id)
    except SQLAlchemyError as exc:
        return error_response("Failed to send wishlist reminder", 500, error=str(exc))
    return success_response(result, "Wishlist reminder sent successfully")


@orders_bp.post("/reminders/cart-abandonment")
def send_cart_abandonment_reminder():
    _ensure_admin()
    payload = _payload()
    service = _components()["order_service"]
    try:
        result = service.send_cart_abandonment_reminder(payload.get("user_id"), payload.get("cart_items"))
    except SQLAlchemyError as exc:
        return error_response("Failed to send cart abandonment reminder", 500, error=str(exc))
    return success_response(result, "Cart abandonment reminder sent successfully")
