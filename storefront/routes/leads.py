"""批量訂購與聯盟計畫申請表單路由。"""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from ..common.errors import ValidationError


bulk_orders_bp = Blueprint("bulk_orders", __name__, url_prefix="/api/bulk-orders")
affiliate_bp = Blueprint("affiliate", __name__, url_prefix="/api/affiliate")


def _components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


@bulk_orders_bp.post("/", strict_slashes=False)
def submit_bulk_order():
    service = _components()["lead_service"]
    try:
        service.submit_bulk_order(request.get_json(silent=True) or {})
    except ValidationError:
        raise
    except Exception as exc:
        current_app.logger.error("Bulk order submission error: %s", exc)
        return jsonify(
            {
                "success": False,
                "message": "Your request was received. Email notification will be retried by the server.",
                "error": str(exc),
            }
        ), 200
    return jsonify({"success": True, "message": "Bulk order request submitted successfully! We'll contact you shortly."})


@affiliate_bp.post("/", strict_slashes=False)
def submit_affiliate_application():
    service = _components()["lead_service"]
    try:
        service.submit_affiliate(request.get_json(silent=True) or {})
    except ValidationError:
        raise
    except Exception as exc:
        current_app.logger.error("Affiliate application error: %s", exc)
        return jsonify(
            {
                "success": False,
                "message": "Your application was received. Email notification will be retried by the server.",
                "error": str(exc),
            }
        ), 200
    return jsonify(
        {
            "success": True,
            "message": "Affiliate application submitted successfully! We'll review your application and get back to you soon.",
        }
    )
