"""UPI payment URIs and their QR images."""

import io
from urllib.parse import quote

import qrcode

UPI_PAYEE_NAME = "BizChatAssist"


def build_upi_url(
    upi_id: str,
    amount: float,
    note: str,
    currency: str = "INR",
    payee_name: str = UPI_PAYEE_NAME,
) -> str:
    """upi://pay URI understood by every UPI app."""
    amount_text = str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"
    return (
        f"upi://pay?pa={upi_id}&pn={payee_name}&am={amount_text}"
        f"&cu={currency}&tn={quote(note, safe='')}"
    )


def render_qr_png(data: str, box_size: int = 8, border: int = 2) -> bytes:
    """PNG bytes of a QR code encoding data."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
