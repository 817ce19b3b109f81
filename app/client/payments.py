from decimal import Decimal
from uuid import UUID

from app.client.base import ApiClient
from app.core.exceptions import PaymentError
from app.schemas.medical_bill import PaymentIntentResponse
from app.utils.money import ZERO, coerce_amount


class PaymentsClient(ApiClient):
    default_error = PaymentError

    async def create_intent(self, bill_id: UUID, amount: Decimal) -> PaymentIntentResponse:
        """Amounts that are not positive fail without a request."""
        amount = coerce_amount(amount)
        if amount <= ZERO:
            raise PaymentError("Payment amount must be greater than zero")
        data = await self.request(
            "POST",
            f"/medical-bills/{bill_id}/payment-intent",
            json={"amount": str(amount)},
        )
        return PaymentIntentResponse.model_validate(data)
