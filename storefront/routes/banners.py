"""橫幅 API 路由：公開列表與管理員維護。"""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, request
from sqlalchemy.exc import SQLAlchemyError

from ..common.utils.auth import verify_admin_token
from ..common.utils.responses import error_response, success_response


banners_bp = Blueprint("banners", __name__, url_prefix="/api/banners")


def _components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


def _config():
    return current_app.config["STOREFRONT_CONFIG"]


def _ensure_admin() -> Dict:
    return verify_admin_token(request.headers.get("Authorization"), _config().admin_jwt_secret)


@banners_bp.get("/", strict_slashes=False)
def list_banners():
    try:
        data = _components()["banner_service"].list_active()
    except SQLAlchemyError as exc:
        return error_response(f"Failed to fetch banners: {exc}", 500)
    return success_response(data)


@banners_bp.get("/type/<banner_type>")
def list_banners_by_type(banner_type: str):
    # banners carry no type column, every active banner is returned
    return list_banners()


@banners_bp.get("/all")
def list_all_banners():
    _ensure_admin()
    try:
        data = _components()["banner_service"].list_all()
    except SQLAlchemyError as exc:
        return error_response("Failed to fetch banners", 500, error=str(exc))
    return success_response(data)


@banners_bp.post("/", strict_slashes=False)
def create_banner():
    _ensure_admin()
    try:
        data = _components()["banner_service"].create(request.get_json(silent=True) or {})
    except SQLAlchemyError as exc:
        return error_response("Failed to create banner", 500, error=str(exc))
    return success_response(data, "Banner created successfully", 201)


@banners_bp.put("/<banner_id>")
def update_banner(banner_id: str):
    _ensure_admin()
    try:
        data = _components()["banner_service"].update(banner_id, request.get_json(silent=True) or {})
    except SQLAlchemyError as exc:
        return error_response("Failed to update banner", 500, error=str(exc))
    return success_response(data, "Banner updated successfully")


@banners_bp.delete("/<banner_id>")
def delete_banner(banner_id: str):
    _ensure_admin()
    try:
        _components()["banner_service"].delete(banner_id)
    except SQLAlchemyError as exc:
        return error_response("Failed to delete banner", 500, error=str(exc))
    return success_response(None, "Banner deleted successfully")
