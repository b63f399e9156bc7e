"""Payment provider callbacks - UPI gateway and Stripe.

Both move a stored transaction forward through TransactionService (which
issues the invoice on first completion) and, when the status actually
changed, tell the customer on their conversation's channel.

Security: never log payloads, signatures or UPI ids.
"""

from __future__ import annotations

import hmac
import os
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Header, Request, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ValidationError

from bizchat.api.deps import get_context
from bizchat.context import MessagingContext
from bizchat.domain.notifications import send_payment_status_update
from bizchat.domain.transactions import (
    InvalidTransitionError,
    TransactionNotFoundError,
    TransitionOutcome,
)
from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import id_prefix, safe_log_context
from bizchat.payments.stripe_webhook import (
    InvalidSignatureError,
    InvalidStripePayloadError,
    StripeWebhookEvent,
    verify_and_extract,
)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = get_logger(__name__)


class UpiCallbackBody(BaseModel):
    reference_id: str = ""
    status: str = ""
    upi_txn_id: str | None = None


def _notify_if_changed(
    background_tasks: BackgroundTasks,
    ctx: MessagingContext,
    outcome: TransitionOutcome,
) -> None:
    if outcome.changed:
        background_tasks.add_task(send_payment_status_update, ctx, outcome.transaction)


@router.post("/upi/callback")
async def upi_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> Response:
    """Apply a UPI gateway callback {reference_id, status, upi_txn_id}.

    Returns:
        200 when applied (or already applied).
        400 for a malformed body.
        401 if UPI_WEBHOOK_SECRET is set and the header does not match.
        404 for an unknown reference.
        409 if the callback would move the transaction backwards.
    """
    expected_secret = os.environ.get("UPI_WEBHOOK_SECRET", "")
    if expected_secret and not hmac.compare_digest(x_webhook_secret or "", expected_secret):
        logger.warning("upi callback secret mismatch")
        return Response(status_code=401, content="unauthorized")

    try:
        body = UpiCallbackBody.model_validate(await request.json())
    except ValidationError:
        return Response(status_code=400, content="invalid payload")
    except ValueError:
        return Response(status_code=400, content="invalid json")
    payload: dict[str, Any] = body.model_dump()

    ctx = get_context()
    try:
        outcome = await run_in_threadpool(ctx.upi.handle_callback, payload)
    except ValueError as e:
        return Response(status_code=400, content=str(e))
    except TransactionNotFoundError:
        logger.warning(
            "upi callback for unknown transaction",
            extra={
                "extra_fields": safe_log_context(
                    reference_prefix=id_prefix(str(payload.get("reference_id")))
                )
            },
        )
        return Response(status_code=404, content="unknown transaction")
    except InvalidTransitionError as e:
        logger.warning(
            "upi callback rejected",
            extra={"extra_fields": safe_log_context(reason=str(e))},
        )
        return Response(status_code=409, content="invalid transition")

    _notify_if_changed(background_tasks, ctx, outcome)
    return Response(status_code=200, content=outcome.transaction.status)


def _apply_stripe_event(ctx: MessagingContext, event: StripeWebhookEvent) -> TransitionOutcome | None:
    """Transition the transaction the event's payment intent belongs to.

    None when the event is irrelevant (unmapped type, no intent, unknown
    intent, backwards transition).
    """
    target_status = event.target_status
    if target_status is None or not event.payment_intent_id:
        return None

    transaction = ctx.store.get_transaction_by_reference(event.payment_intent_id)
    if transaction is None:
        logger.info(
            "stripe event for unknown payment intent ignored",
            extra={
                "extra_fields": safe_log_context(
                    event_type=event.event_type,
                    intent_prefix=id_prefix(event.payment_intent_id),
                )
            },
        )
        return None

    try:
        return ctx.transactions.transition(
            transaction, target_status, provider_txn_id=event.object_id
        )
    except InvalidTransitionError as e:
        logger.warning(
            "stripe event rejected",
            extra={"extra_fields": safe_log_context(event_type=event.event_type, reason=str(e))},
        )
        return None


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
) -> Response:
    """Receive Stripe webhook events.

    Returns:
        200 for every authentic event, applied or ignored.
        400 if signature or payload is invalid.
        500 if STRIPE_WEBHOOK_SECRET is not configured (Stripe retries).
    """
    webhook_secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return Response(status_code=500, content="server configuration error")

    payload_bytes = await request.body()
    try:
        event = verify_and_extract(payload_bytes, stripe_signature, webhook_secret)
    except InvalidSignatureError:
        return Response(status_code=400, content="invalid signature")
    except InvalidStripePayloadError:
        return Response(status_code=400, content="invalid payload")

    logger.info(
        "stripe webhook received",
        extra={
            "extra_fields": safe_log_context(
                event_id_prefix=id_prefix(event.event_id, 8),
                event_type=event.event_type,
            )
        },
    )

    ctx = get_context()
    outcome = await run_in_threadpool(_apply_stripe_event, ctx, event)
    if outcome is None:
        return Response(status_code=200, content="ignored")

    _notify_if_changed(background_tasks, ctx, outcome)
    return Response(status_code=200, content="ok")
