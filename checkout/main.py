import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from checkout.config import Settings
from checkout.database import Base, SessionLocal, engine
from checkout.exceptions import CheckoutError
from checkout.lifecycle import INVALID_TOKEN, OrderLifecycle
from checkout.notifications import EntryLookupClient, Mailer, NotificationDispatcher
from checkout.paypal_client import PayPalClient
from checkout.routes import router
from checkout.store import PaymentStatusStore

logger = logging.getLogger(__name__)


def build_lifecycle(settings: Settings, http: httpx.Client) -> OrderLifecycle:
    paypal = PayPalClient(
        settings.paypal_client_id,
        settings.paypal_client_secret,
        settings.paypal_base_url,
        http,
    )
    store = PaymentStatusStore(SessionLocal)
    notifier = NotificationDispatcher(
        EntryLookupClient(settings.entry_lookup_url, settings.wp_username, settings.wp_app_password, http),
        Mailer(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_username,
            settings.smtp_password,
            use_ssl=settings.smtp_use_ssl,
            timeout=settings.http_timeout,
        ),
        sender=settings.mail_from,
        seller_email=settings.seller_email,
    )
    return OrderLifecycle(paypal, store, notifier)


def create_app(settings: Optional[Settings] = None, lifecycle: Optional[OrderLifecycle] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(bind=engine)
        http = None
        if lifecycle is None:
            http = httpx.Client(timeout=settings.http_timeout)
            app.state.lifecycle = build_lifecycle(settings, http)
        logger.info("Checkout service ready (PayPal at %s)", settings.paypal_base_url)
        yield
        if http is not None:
            http.close()

    app = FastAPI(title="Translation Checkout Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.lifecycle = lifecycle

    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Order routes only carry the secure token; a malformed body means no usable token
        if request.url.path.startswith("/api/orders"):
            logger.warning("Rejected order request body on %s: %s", request.url.path, exc.errors())
            return JSONResponse(status_code=400, content={"error": INVALID_TOKEN})
        return await request_validation_exception_handler(request, exc)

    app.include_router(router)
    return app


app = create_app()


def run():
    settings = app.state.settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
