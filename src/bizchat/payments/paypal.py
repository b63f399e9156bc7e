"""PayPal adapter.

Orders are only registered locally as pending; capture and refunds happen
in the PayPal dashboard.
"""

import uuid

from .models import PaymentRequest, PaymentResult


class PayPalAdapter:
    name = "paypal"

    def process_payment(self, request: PaymentRequest) -> PaymentResult:
        return PaymentResult(
            success=True,
            transaction_id=f"pp-{uuid.uuid4().hex[:16]}",
            provider=self.name,
            status="pending",
            raw_response={"status": "CREATED"},
        )

    def reverse_transaction(self, transaction_id: str) -> bool:
        return True
