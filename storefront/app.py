"""Storefront 電商後端 Flask 應用。"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .common.db.session import Database
from .common.errors import StorefrontError
from .common.services.banner_service import BannerService
from .common.services.email_service import EmailService
from .common.services.lead_service import LeadService
from .common.services.notification_service import NotificationService
from .common.services.order_service import OrderService
from .common.services.pdf_service import InvoicePdfService
from .common.services.settings_service import SettingsService
from .common.services.stock_service import StockService
from .common.services.transaction_service import TransactionService
from .config import StorefrontConfig
from .routes import banners, leads, orders, transactions


def build_components(config: StorefrontConfig, database: Database, http: Optional[Any] = None) -> Dict[str, Any]:
    """建立所有服務；`http` 可注入替代的 HTTP 客戶端（測試用）。"""

    session_factory = database.session
    settings = SettingsService(session_factory)
    notifications = NotificationService(session_factory)
    stock = StockService(session_factory, atomic=config.stock_atomic_decrement)
    transactions_service = TransactionService(session_factory, currency=config.currency)
    email = EmailService(config, session_factory, settings, http=http)
    return {
        "database": database,
        "settings_service": settings,
        "notification_service": notifications,
        "stock_service": stock,
        "transaction_service": transactions_service,
        "email_service": email,
        "pdf_service": InvoicePdfService(config, http=http),
        "order_service": OrderService(
            session_factory,
            config=config,
            stock_service=stock,
            transaction_service=transactions_service,
            email_service=email,
            notification_service=notifications,
        ),
        "banner_service": BannerService(session_factory),
        "lead_service": LeadService(email),
    }


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(exc: StorefrontError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(404)
    def handle_not_found(_exc):
        return jsonify({"success": False, "message": "Route not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(_exc):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "message": "Internal server error", "error": str(exc)}), 500


def _register_cors(app: Flask, config: StorefrontConfig) -> None:
    allowed = set(config.frontend_origins)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, X-Requested-With"
            response.headers.add("Vary", "Origin")
        return response


def create_app(config: Optional[StorefrontConfig] = None, http: Optional[Any] = None) -> Flask:
    config = config or StorefrontConfig.load()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["STOREFRONT_CONFIG"] = config

    database = Database(config.database_url)
    database.create_all()
    app.extensions["storefront_components"] = build_components(config, database, http=http)

    app.register_blueprint(orders.orders_bp)
    app.register_blueprint(transactions.transactions_bp)
    app.register_blueprint(banners.banners_bp)
    app.register_blueprint(leads.bulk_orders_bp)
    app.register_blueprint(leads.affiliate_bp)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "message": f"{config.store_name} API is running"})

    _register_error_handlers(app)
    _register_cors(app, config)
    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=False)


if __name__ == "__main__":
    main()
