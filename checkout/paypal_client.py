"""
Thin client for the PayPal REST endpoints the checkout needs.

Each public call fetches its own OAuth access token; tokens are never
shared between calls.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from checkout.exceptions import ProcessorError

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"
PENDING = "PENDING"
DECLINED = "DECLINED"
# No capture or authorization object in the response
INCONCLUSIVE = "inconclusive"

WEBHOOK_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


@dataclass
class OrderResult:
    order_id: Optional[str]
    status_code: int
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CaptureResult:
    transaction_id: Optional[str]
    status: str
    status_code: int
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == COMPLETED


def format_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(Decimal("0.01")))


def parse_capture(raw: Mapping[str, Any], status_code: int) -> CaptureResult:
    """Map an Orders v2 capture response onto a CaptureResult.

    The first capture object wins; authorizations are only consulted when
    no purchase unit carries a capture.
    """
    units = raw.get("purchase_units") or []
    for kind in ("captures", "authorizations"):
        for unit in units:
            payments = (unit or {}).get("payments") or {}
            entries = payments.get(kind) or []
            if entries:
                txn = entries[0] or {}
                return CaptureResult(
                    transaction_id=txn.get("id"),
                    status=txn.get("status") or INCONCLUSIVE,
                    status_code=status_code,
                    raw=dict(raw),
                )
    return CaptureResult(transaction_id=None, status=INCONCLUSIVE,
                         status_code=status_code, raw=dict(raw))


class PayPalClient:
    def __init__(self, client_id: Optional[str], client_secret: Optional[str],
                 base_url: str, http: httpx.Client):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.http = http

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self.http.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.error("PayPal %s %s failed: %s", method, path, exc)
            raise ProcessorError(f"PayPal request failed: {exc}") from exc

    def _json(self, response: httpx.Response, what: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            logger.error("PayPal %s returned %s: %s", what, response.status_code,
                         body if body is not None else response.text)
            raise ProcessorError(
                f"PayPal {what} failed",
                processor_status=response.status_code,
                body=body if isinstance(body, dict) else {"error": response.text or f"PayPal {what} failed"},
            )
        if not isinstance(body, dict):
            raise ProcessorError(f"PayPal {what} returned a non-JSON body")
        return body

    def access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise ProcessorError("MISSING_API_CREDENTIALS")

        response = self._request(
            "POST",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
        )
        token = self._json(response, "token exchange").get("access_token")
        if not token:
            raise ProcessorError("PayPal token missing in response")
        return token

    def _authorized(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.access_token()}",
            "Content-Type": "application/json",
        }
        headers.update(kwargs.pop("headers", {}))
        return self._request(method, path, headers=headers, **kwargs)

    def generate_client_token(self) -> str:
        response = self._authorized("POST", "/v1/identity/generate-token",
                                    headers={"Accept-Language": "en_US"})
        token = self._json(response, "client token").get("client_token")
        if not token:
            raise ProcessorError("PayPal client token missing in response")
        return token

    def create_order(self, amount: Decimal) -> OrderResult:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {"currency_code": "USD", "value": format_amount(amount)},
            }],
        }
        logger.info("Creating PayPal order for %s USD", payload["purchase_units"][0]["amount"]["value"])
        response = self._authorized("POST", "/v2/checkout/orders", json=payload)
        body = self._json(response, "order create")
        return OrderResult(order_id=body.get("id"), status_code=response.status_code, raw=body)

    def capture_order(self, order_id: str) -> CaptureResult:
        response = self._authorized("POST", f"/v2/checkout/orders/{order_id}/capture")
        body = self._json(response, "order capture")
        result = parse_capture(body, response.status_code)
        logger.info("Captured order %s: transaction=%s status=%s",
                    order_id, result.transaction_id, result.status)
        return result

    def verify_webhook_signature(self, headers: Mapping[str, str], event: Dict[str, Any],
                                 webhook_id: str) -> bool:
        payload = {key: headers.get(header) for key, header in WEBHOOK_HEADERS.items()}
        if not all(payload.values()):
            return False
        payload["webhook_id"] = webhook_id
        payload["webhook_event"] = event

        response = self._authorized("POST", "/v1/notifications/verify-webhook-signature", json=payload)
        return self._json(response, "webhook verification").get("verification_status") == "SUCCESS"
