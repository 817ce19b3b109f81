"""Payment Intent Broker - Stripe payment intents for paying a bill directly"""

import asyncio
from decimal import Decimal
from typing import Optional
from uuid import UUID

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import PaymentError
from app.core.logging import get_logger
from app.schemas.medical_bill import PaymentIntentResponse
from app.services.bill_ledger_service import BillLedgerService
from app.utils.money import ZERO, coerce_amount, from_cents, to_cents

logger = get_logger(__name__)


class PaymentService:
    @staticmethod
    async def create_intent(
        db: AsyncSession,
        bill_id: UUID,
        user_id: UUID,
        amount: Optional[Decimal] = None,
    ) -> PaymentIntentResponse:
        """
        Create a payment intent for a bill.

        The amount defaults to the remaining balance and is not clamped to it.
        Nothing is written to the ledger; the caller records the payment once
        the capture succeeds.
        """
        if amount is not None and coerce_amount(amount) <= ZERO:
            raise PaymentError("Payment amount must be greater than zero")

        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        if amount is None:
            amount = bill.remaining
            if amount <= ZERO:
                raise PaymentError("This bill has no remaining balance")

        cents = to_cents(amount)
        if cents <= 0:
            raise PaymentError("Payment amount must be greater than zero")
        if not settings.STRIPE_SECRET_KEY:
            raise PaymentError("Payments are not configured")

        def _create():
            return stripe.PaymentIntent.create(
                api_key=settings.STRIPE_SECRET_KEY,
                amount=cents,
                currency=settings.STRIPE_CURRENCY,
                automatic_payment_methods={"enabled": True},
                description=f"Payment to {bill.biller_name or 'medical provider'}",
                metadata={
                    "billId": str(bill.id),
                    "userId": str(user_id),
                    "billerName": bill.biller_name or "",
                    "type": "direct_bill_payment",
                },
            )

        try:
            intent = await asyncio.to_thread(_create)
        except stripe.StripeError as e:
            logger.warning(
                "Payment intent creation failed",
                extra={"bill_id": str(bill_id), "amount_cents": cents, "error": str(e)},
            )
            raise PaymentError(e.user_message or "Failed to create payment") from e

        logger.info(
            "Payment intent created",
            extra={"bill_id": str(bill_id), "payment_intent_id": intent.id, "amount_cents": cents},
        )
        return PaymentIntentResponse(
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
            amount=from_cents(cents),
        )
