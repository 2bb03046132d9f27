from typing import Any, Optional

from flask import jsonify


def success_response(data: Any = None, message: Optional[str] = None, status: int = 200):
    payload = {"success": True}
    if message:
        payload["message"] = message
    payload["data"] = data
    return jsonify(payload), status


def error_response(message: str, status: int = 500, **extra: Any):
    payload = {"success": False, "message": message}
    payload.update({k: v for k, v in extra.items() if v is not None})
    return jsonify(payload), status
