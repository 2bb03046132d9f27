import logging
from typing import Dict, Tuple

from ..errors import ValidationError
from ..utils.validators import is_valid_email, is_valid_url, missing_fields
from .logging import log_event


BULK_ORDER_REQUIRED = ("name", "phone", "email", "productType", "quantity", "deliveryLocation", "paymentMethod")
BULK_ORDER_OPTIONAL = ("organization", "preferredSpecs", "preferredDeliveryDate", "notes")
AFFILIATE_REQUIRED = ("fullName", "email", "phone", "country", "promotionChannel", "platformLink")
AFFILIATE_OPTIONAL = ("audienceSize", "payoutMethod", "reason")


def _human_list(names: Tuple[str, ...]) -> str:
    return ", ".join(names[:-1]) + f", and {names[-1]}"


class LeadService:
    """Bulk order and affiliate sign-up forms, forwarded to the admin inbox."""

    def __init__(self, email_service):
        self._email = email_service
        self.logger = logging.getLogger(__name__)

    def submit_bulk_order(self, payload: Dict) -> bool:
        lead = self._clean(payload, BULK_ORDER_REQUIRED, BULK_ORDER_OPTIONAL)
        result = self._email.send_bulk_order_request(lead)
        return self._report("bulk_order", lead["email"], result)

    def submit_affiliate(self, payload: Dict) -> bool:
        lead = self._clean(payload, AFFILIATE_REQUIRED, AFFILIATE_OPTIONAL)
        if not is_valid_url(lead["platformLink"]):
            raise ValidationError("Invalid platform link format")
        result = self._email.send_affiliate_application(lead)
        return self._report("affiliate", lead["email"], result)

    def _clean(self, payload: Dict, required: Tuple[str, ...], optional: Tuple[str, ...]) -> Dict:
        if missing_fields(payload, required):
            raise ValidationError(f"Missing required fields: {_human_list(required)} are required")
        if not is_valid_email(payload["email"]):
            raise ValidationError("Invalid email format")
        lead = {name: payload[name] for name in required}
        lead.update({name: payload.get(name) or None for name in optional})
        return lead

    def _report(self, kind: str, email: str, result: Dict) -> bool:
        """Submissions are accepted even when the notification email fails."""
        delivered = bool(result.get("success"))
        if not delivered:
            self.logger.error("Failed to send %s email: %s", kind, result.get("error"))
        log_event("info", f"lead.{kind}", email=email, delivered=delivered)
        return delivered
