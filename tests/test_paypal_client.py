import json
from decimal import Decimal

import httpx
import pytest

from checkout.exceptions import ProcessorError
from checkout.paypal_client import INCONCLUSIVE, PayPalClient, format_amount, parse_capture
from conftest import PAYPAL_BASE, capture_body


def test_create_order_sends_usd_amount(paypal, fake_paypal):
    result = paypal.create_order(Decimal("19.99"))

    assert result.order_id == "O-1"
    assert result.status_code == 201
    sent = json.loads(fake_paypal.calls("/v2/checkout/orders")[0].content)
    assert sent["intent"] == "CAPTURE"
    assert sent["purchase_units"] == [{"amount": {"currency_code": "USD", "value": "19.99"}}]


def test_format_amount_pads_to_cents():
    assert format_amount(Decimal("20")) == "20.00"
    assert format_amount(Decimal("7.5")) == "7.50"


def test_each_call_fetches_a_fresh_token(paypal, fake_paypal):
    paypal.create_order(Decimal("10.00"))
    paypal.capture_order("O-1")

    assert len(fake_paypal.calls("/v1/oauth2/token")) == 2
    capture = fake_paypal.calls("/v2/checkout/orders/O-1/capture")[0]
    assert capture.headers["Authorization"] == "Bearer A21-token"


def test_capture_completed(paypal):
    result = paypal.capture_order("O-1")

    assert result.completed
    assert result.transaction_id == "T-1"
    assert result.status_code == 201


def test_capture_decline_is_data_not_an_error(paypal, fake_paypal):
    fake_paypal.capture_body = capture_body("T-9", "DECLINED")

    result = paypal.capture_order("O-1")

    assert not result.completed
    assert result.status == "DECLINED"
    assert result.transaction_id == "T-9"


def test_parse_capture_falls_back_to_authorization():
    result = parse_capture(capture_body("A-1", "CREATED", kind="authorizations"), 201)

    assert result.transaction_id == "A-1"
    assert result.status == "CREATED"


def test_parse_capture_without_transaction_is_inconclusive():
    result = parse_capture({"id": "O-1", "status": "COMPLETED", "purchase_units": [{"payments": {}}]}, 200)

    assert result.status == INCONCLUSIVE
    assert result.transaction_id is None
    assert not result.completed


def test_processor_rejection_carries_status_and_body(paypal, fake_paypal):
    fake_paypal.capture_status = 422
    fake_paypal.capture_body = {"name": "UNPROCESSABLE_ENTITY",
                                "details": [{"issue": "INSTRUMENT_DECLINED"}]}

    with pytest.raises(ProcessorError) as excinfo:
        paypal.capture_order("O-1")

    assert excinfo.value.status_code == 422
    assert excinfo.value.to_dict()["name"] == "UNPROCESSABLE_ENTITY"


def test_transport_failure_is_processor_error():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(boom)) as http:
        client = PayPalClient("id", "secret", PAYPAL_BASE, http)
        with pytest.raises(ProcessorError) as excinfo:
            client.create_order(Decimal("1.00"))

    assert excinfo.value.processor_status is None
    assert excinfo.value.status_code == 500


def test_missing_credentials(http):
    client = PayPalClient(None, None, PAYPAL_BASE, http)

    with pytest.raises(ProcessorError, match="MISSING_API_CREDENTIALS"):
        client.generate_client_token()


def test_generate_client_token(paypal):
    assert paypal.generate_client_token() == "client-token-1"


def test_verify_webhook_signature(paypal, fake_paypal):
    headers = {
        "paypal-auth-algo": "SHA256withRSA",
        "paypal-cert-url": "https://api.paypal.com/cert.pem",
        "paypal-transmission-id": "tx-1",
        "paypal-transmission-sig": "sig",
        "paypal-transmission-time": "2026-10-18T10:00:00Z",
    }
    event = {"event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {"id": "T-1", "status": "COMPLETED"}}

    assert paypal.verify_webhook_signature(headers, event, "WH-1")
    sent = json.loads(fake_paypal.calls("/v1/notifications/verify-webhook-signature")[0].content)
    assert sent["webhook_id"] == "WH-1"
    assert sent["webhook_event"] == event

    fake_paypal.verification_status = "FAILURE"
    assert not paypal.verify_webhook_signature(headers, event, "WH-1")


def test_verify_webhook_signature_requires_headers(paypal, fake_paypal):
    assert not paypal.verify_webhook_signature({}, {}, "WH-1")
    assert fake_paypal.requests == []
