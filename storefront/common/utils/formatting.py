from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Union


PAYMENT_METHOD_LABELS = {
    "paystack": "Paystack (Online Payment)",
    "cash_on_delivery": "Cash on Delivery",
    "bank_transfer": "Bank Transfer",
}


def parse_date(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def long_date(value: Any, default: str = "N/A") -> str:
    parsed = parse_date(value)
    if parsed is None:
        return default
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def money(value: Any, currency: Optional[str] = None) -> str:
    amount = f"{float(value or 0):.2f}"
    return f"{currency} {amount}" if currency else amount


def humanize(value: str) -> str:
    return value[:1].upper() + value[1:].replace("_", " ") if value else value


def payment_method_label(method: Optional[str]) -> str:
    method = method or "cash_on_delivery"
    return PAYMENT_METHOD_LABELS.get(method, humanize(method))


def payment_status_label(status: Optional[str]) -> str:
    return humanize(status or "pending")


def estimated_delivery(is_pre_order: bool, estimated_arrival: Any, delivery_address: Optional[Dict], today: Optional[date] = None) -> str:
    if is_pre_order and estimated_arrival:
        return long_date(estimated_arrival, default="TBD")
    option = (delivery_address or {}).get("delivery_option") or {}
    days = option.get("estimated_days") if isinstance(option, dict) else None
    if days:
        base = today or date.today()
        return long_date(base + timedelta(days=int(days)), default="TBD")
    return "TBD"


def format_address(address: Any, default_country: Optional[str] = "Ghana") -> str:
    if isinstance(address, str):
        return address
    if not address:
        return "No address provided"
    parts = [
        address.get("street_address") or address.get("street"),
        address.get("city"),
        address.get("region"),
        address.get("postal_code"),
        address.get("country") or default_country,
    ]
    parts = [str(p) for p in parts if p]
    if address.get("full_name"):
        parts.insert(0, address["full_name"])
    if address.get("phone"):
        parts.append(f"Phone: {address['phone']}")
    return ", ".join(parts)


def format_delivery_details(address: Any) -> str:
    if isinstance(address, str):
        return address
    if not address:
        return "No delivery details provided"
    if address.get("gadget_name") or address.get("recipient_name"):
        labelled = [
            ("Gadget", "gadget_name"),
            ("Recipient", "recipient_name"),
            ("Phone", "recipient_number"),
            ("Location", "recipient_location"),
            ("Region", "recipient_region"),
            ("Alternate", "alternate_contact_number"),
        ]
        lines = [f"{label}: {address[key]}" for label, key in labelled if address.get(key)]
        if address.get("country"):
            lines.append(address["country"])
        return "\n".join(lines)
    parts = [
        address.get("street_address") or address.get("street"),
        address.get("city"),
        address.get("region"),
        address.get("postal_code"),
        address.get("country"),
    ]
    return ", ".join(str(p) for p in parts if p)


def resolve_image_url(raw: Optional[str], images_base_url: str, storage_url: str = "") -> str:
    """Turn whatever the catalogue stored into an absolute image URL."""
    images_base_url = images_base_url.rstrip("/")
    storage_url = storage_url.rstrip("/")
    if not raw:
        return f"{images_base_url}/placeholder-product.webp"
    if raw.startswith("http://") or raw.startswith("https://"):
        return raw
    if raw.startswith("/storage/") or raw.startswith("storage/"):
        clean = raw.lstrip("/")
        clean = clean[len("storage/v1/object/public/"):] if clean.startswith("storage/v1/object/public/") else clean
        if storage_url:
            return f"{storage_url}/storage/v1/object/public/{clean}"
        return f"{images_base_url}/{clean}"
    if raw.startswith("/"):
        return f"{images_base_url}{raw}"
    if storage_url:
        return f"{storage_url}/storage/v1/object/public/products/{raw}"
    return f"{images_base_url}/{raw}"
