"""FastAPI application factory with role-based route mounting."""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response

from bizchat.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

from .routers import public, worker
from .routes import (
    payments,
    tasks_messages,
    webhooks_payments,
    webhooks_sms,
    webhooks_twilio,
    webhooks_whatsapp,
)

AppRole = Literal["public", "worker"]


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create the app for APP_ROLE (default "public").

    Public: health, inbound webhooks, payment callbacks, QR images.
    Worker: everything public plus the task routes.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(
        title="BizChat",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(webhooks_twilio.router)
    app.include_router(webhooks_sms.router)
    app.include_router(webhooks_payments.router)
    app.include_router(payments.router)

    if role == "worker":
        app.include_router(worker.router)
        app.include_router(tasks_messages.router)

    return app
