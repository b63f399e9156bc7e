"""Payment QR images.

WhatsApp receives the UPI QR as an image URL pointing here; the PNG is
rendered on request from the upi:// URI stored with the transaction.
"""

import uuid

from fastapi import APIRouter, HTTPException, Response

from bizchat.api.deps import get_context
from bizchat.payments.qr import render_qr_png

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/{transaction_id}/qr.png")
def payment_qr(transaction_id: str) -> Response:
    """PNG QR code for a UPI transaction.

    Returns:
        200 image/png.
        404 if the id is malformed, unknown, or has no UPI URI.
    """
    try:
        uuid.UUID(transaction_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Transaction not found")

    transaction = get_context().store.get_transaction(transaction_id)
    upi_url = (transaction.metadata or {}).get("upi_url") if transaction else None
    if not upi_url:
        raise HTTPException(status_code=404, detail="Transaction not found")

    return Response(
        content=render_qr_png(upi_url),
        media_type="image/png",
        headers={"Cache-Control": "private, max-age=3600"},
    )
