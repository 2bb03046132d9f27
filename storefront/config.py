"""Storefront 後端設定模組。"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


TRUTHY = {"1", "true", "yes", "on"}


def validate_currency(value: Optional[str]) -> str:
    v = (value or "GHS").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUTHY


def _split_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    return [url.strip() for url in raw.split(",") if url.strip()]


@dataclass
class StorefrontConfig:
    """封裝 storefront API 的設定值。"""

    database_url: str
    secret_key: str
    admin_jwt_secret: str
    resend_api_key: Optional[str] = None
    support_email: str = "VENTECH GADGETS <support@ventechgadgets.com>"
    noreply_email: str = "VENTECH GADGETS <noreply@ventechgadgets.com>"
    admin_notification_email: str = "ventechgadgets@gmail.com"
    store_name: str = "VENTECH"
    site_url: str = "https://ventechgadgets.com"
    images_base_url: str = "https://images.ventechgadgets.com"
    storage_url: str = ""
    logo_url: Optional[str] = "https://files.ventechgadgets.com/ventech_logo_1.png"
    frontend_origins: List[str] = field(default_factory=lambda: _split_origins(None))
    currency: str = "GHS"
    max_order_total: float = 100000.0
    stock_atomic_decrement: bool = True
    track_miss_delay_ms: int = 100
    log_level: str = "INFO"

    @property
    def tracking_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/track-order"

    @property
    def contact_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/contact"

    @property
    def email_template_dir(self) -> Path:
        return Path(__file__).resolve().parent / "templates" / "emails"

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> "StorefrontConfig":
        """從 .env 與環境變數建構設定。"""

        load_dotenv(env_file)

        database_url = os.getenv("DATABASE_URL", "sqlite:///data/storefront.db")
        if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
            Path(database_url.split("sqlite:///")[-1]).expanduser().resolve().parent.mkdir(
                parents=True, exist_ok=True
            )

        secret_key = os.getenv("SECRET_KEY", "dev_secret")
        logo_url = os.getenv("LOGO_URL", cls.logo_url)

        return cls(
            database_url=database_url,
            secret_key=secret_key,
            admin_jwt_secret=os.getenv("ADMIN_JWT_SECRET", secret_key),
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            support_email=os.getenv("RESEND_SUPPORT_EMAIL", cls.support_email),
            noreply_email=os.getenv("RESEND_NOREPLY_EMAIL", cls.noreply_email),
            admin_notification_email=os.getenv("ADMIN_NOTIFICATION_EMAIL", cls.admin_notification_email),
            store_name=os.getenv("STORE_NAME", cls.store_name),
            site_url=(os.getenv("SITE_URL") or cls.site_url).rstrip("/"),
            images_base_url=(os.getenv("IMAGES_URL") or cls.images_base_url).rstrip("/"),
            storage_url=(os.getenv("STORAGE_URL") or "").rstrip("/"),
            logo_url=logo_url or None,
            frontend_origins=_split_origins(os.getenv("FRONTEND_URL")),
            currency=validate_currency(os.getenv("CURRENCY")),
            max_order_total=float(os.getenv("MAX_ORDER_TOTAL", "100000")),
            stock_atomic_decrement=_env_flag("STOCK_ATOMIC_DECREMENT", True),
            track_miss_delay_ms=int(os.getenv("TRACK_MISS_DELAY_MS", "100")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
