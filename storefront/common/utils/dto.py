from decimal import Decimal
from typing import Any, Dict, Optional


def money(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def pre_order_fields(order: Dict) -> Dict:
    """Pre-order flags live either on the row or inside shipping_address."""
    shipping = order.get("shipping_address") or {}
    return {
        "is_pre_order": bool(order.get("is_pre_order") or shipping.get("is_pre_order") or False),
        "pre_order_shipping_option": order.get("pre_order_shipping_option") or shipping.get("pre_order_shipping_option"),
        "estimated_arrival_date": order.get("estimated_arrival_date") or shipping.get("estimated_arrival_date"),
    }


def to_order_item_dto(item: Any) -> Dict:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_image": item.product_image,
        "quantity": item.quantity,
        "unit_price": money(item.unit_price),
        "total_price": money(item.total_price),
        "selected_variants": item.selected_variants,
        "created_at": _iso(item.created_at),
    }


def to_order_dto(row: Any, *, include_user: bool = True, include_items: bool = True) -> Dict:
    data = {
        "id": row.id,
        "order_number": row.order_number,
        "user_id": row.user_id,
        "subtotal": money(row.subtotal),
        "discount": money(row.discount),
        "tax": money(row.tax),
        "shipping_fee": money(row.shipping_fee),
        "total": money(row.total),
        "payment_method": row.payment_method,
        "shipping_address": row.shipping_address,
        "customer_bio": row.customer_bio,
        "notes": row.notes,
        "tracking_number": row.tracking_number,
        "status": row.status,
        "payment_status": row.payment_status,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }
    if include_user:
        data["user"] = row.user.to_summary() if row.user is not None else None
    if include_items:
        data["order_items"] = [to_order_item_dto(it) for it in row.items]
    data.update(pre_order_fields(data))
    return data


def to_transaction_dto(row: Any, *, order_fields=("id", "order_number")) -> Dict:
    order = None
    if row.order is not None:
        order = {}
        for name in order_fields:
            value = getattr(row.order, name, None)
            order[name] = money(value) if isinstance(value, Decimal) else value
    return {
        "id": row.id,
        "order_id": row.order_id,
        "user_id": row.user_id,
        "transaction_reference": row.transaction_reference,
        "paystack_reference": row.paystack_reference,
        "payment_method": row.payment_method,
        "payment_provider": row.payment_provider,
        "amount": money(row.amount),
        "currency": row.currency,
        "status": row.status,
        "payment_status": row.payment_status,
        "customer_email": row.customer_email,
        "metadata": row.meta or {},
        "initiated_at": _iso(row.initiated_at),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
        "order": order,
        "user": row.user.to_summary() if row.user is not None else None,
    }
