import html
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from checkout.config import Settings
from checkout.exceptions import CheckoutError, ProcessorError
from checkout.lifecycle import OrderLifecycle

logger = logging.getLogger(__name__)

router = APIRouter()

CHECKOUT_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>Translation checkout</title>
    <script src="https://www.paypal.com/sdk/js?components=buttons,card-fields&client-id={client_id}"
            data-client-token="{client_token}"></script>
  </head>
  <body>
    <div id="paypal-button-container"></div>
    <div id="card-form"></div>
    <p id="result-message"></p>
    <script src="app.js"></script>
  </body>
</html>
"""


class CheckoutRequest(BaseModel):
    secure_token: Optional[str] = Field(default=None, alias="secureToken")


class WebhookResource(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    status: Optional[str] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: Optional[str] = None
    resource: WebhookResource = Field(default_factory=WebhookResource)


def get_lifecycle(request: Request) -> OrderLifecycle:
    return request.app.state.lifecycle


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/", response_class=HTMLResponse)
def checkout_page(
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
):
    try:
        client_token = lifecycle.paypal.generate_client_token()
    except Exception as exc:
        logger.exception("Failed to generate client token")
        return HTMLResponse(content=html.escape(str(exc)), status_code=500)

    page = CHECKOUT_PAGE.format(
        client_id=html.escape(settings.paypal_client_id or ""),
        client_token=html.escape(client_token),
    )
    return HTMLResponse(content=page)


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/api/orders")
def create_order(request: CheckoutRequest, lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    try:
        outcome = lifecycle.create_order(request.secure_token)
    except CheckoutError:
        raise
    except Exception:
        logger.exception("Failed to create order")
        return JSONResponse(status_code=500, content={"error": "Failed to create order."})

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/api/orders/{order_id}/capture")
def capture_order(
    order_id: str,
    request: CheckoutRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    try:
        outcome = lifecycle.capture_order(order_id, request.secure_token)
    except CheckoutError:
        raise
    except Exception:
        logger.exception("Failed to capture order %s", order_id)
        return JSONResponse(status_code=500, content={"error": "Failed to capture order."})

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/api/paypal/webhook")
async def paypal_webhook(
    request: Request,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
):
    # Signature checks need the event exactly as PayPal sent it
    try:
        payload = json.loads(await request.body())
        event = WebhookEvent.model_validate(payload)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="Invalid payload")

    if settings.paypal_webhook_id:
        try:
            verified = await run_in_threadpool(
                lifecycle.paypal.verify_webhook_signature,
                request.headers, payload, settings.paypal_webhook_id,
            )
        except ProcessorError:
            logger.exception("Webhook signature verification failed")
            verified = False
        if not verified:
            raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        outcome = await run_in_threadpool(lifecycle.handle_webhook, event.model_dump())
    except CheckoutError:
        raise
    except Exception:
        logger.exception("Failed to process webhook %s", event.event_type)
        return JSONResponse(status_code=500, content={"error": "Failed to process webhook."})

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
