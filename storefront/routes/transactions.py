"""交易紀錄 API 路由（僅限管理員）。"""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, request
from sqlalchemy.exc import SQLAlchemyError

from ..common.utils.auth import verify_admin_token
from ..common.utils.responses import error_response, success_response


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


def _config():
    return current_app.config["STOREFRONT_CONFIG"]


@transactions_bp.before_request
def guard_admin_routes():
    if request.method != "OPTIONS":
        verify_admin_token(request.headers.get("Authorization"), _config().admin_jwt_secret)


@transactions_bp.get("/", strict_slashes=False)
def list_transactions():
    service = _components()["transaction_service"]
    try:
        data = service.list_transactions(
            status=request.args.get("status") or None,
            user_id=request.args.get("user_id") or None,
            order_id=request.args.get("order_id") or None,
        )
    except SQLAlchemyError as exc:
        return error_response("Failed to fetch transactions", 500, error=str(exc))
    return success_response(data)


@transactions_bp.get("/<transaction_id>")
def get_transaction(transaction_id: str):
    service = _components()["transaction_service"]
    try:
        data = service.get_transaction(transaction_id)
    except SQLAlchemyError as exc:
        return error_response("Failed to fetch transaction", 500, error=str(exc))
    return success_response(data)


@transactions_bp.post("/<transaction_id>/refund")
def refund_transaction(transaction_id: str):
    service = _components()["transaction_service"]
    try:
        data = service.refund(transaction_id)
    except SQLAlchemyError as exc:
        return error_response("Failed to process refund", 500, error=str(exc))
    return success_response(data, "Transaction refunded successfully")
