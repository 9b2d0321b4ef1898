"""
Turns gateway events into ledger rows.

Every entry point locates the ledger row by order ID on its own. When the
row is missing (the webhook beat the form submission, or the form row was
never written) a new row is appended with only the payment columns filled;
the enrollment details cannot be recovered at that point.
"""

import json
import logging
from typing import Any, Optional

from course_payments.config import Settings
from course_payments.errors import SignatureError, StoreError, UpstreamError, ValidationError
from course_payments.models import (
    CreateOrderRequest,
    EnrollmentForm,
    Order,
    Payment,
    PaymentStatus,
    WebhookEvent,
    ledger_row,
    payment_columns,
    to_major_units,
    utc_timestamp,
)
from course_payments.razorpay_service import (
    RazorpayGateway,
    new_receipt,
    verify_payment_signature,
    verify_webhook_signature,
)

logger = logging.getLogger("course_payments.reconciliation")


class Reconciler:
    def __init__(self, ledger, gateway: RazorpayGateway, settings: Settings):
        self.ledger = ledger
        self.gateway = gateway
        self.settings = settings

    async def create_order(self, request: CreateOrderRequest) -> Order:
        return await self.gateway.create_order(
            round(request.amount * 100), request.currency, new_receipt(), request.notes
        )

    async def start_checkout(self, form: EnrollmentForm) -> str:
        """Create the course-fee order, record a pending row and return the checkout link."""
        notes = {"name": form.name, "email": form.email, "mobile": form.mobile}
        if self.settings.business_name:
            notes["business_name"] = self.settings.business_name

        order = await self.gateway.create_order(
            self.settings.course_fee, self.settings.course_currency, new_receipt(), notes
        )

        row = ledger_row(
            timestamp=utc_timestamp(),
            name=form.name,
            mobile=form.mobile,
            email=form.email,
            city=form.city,
            experience=form.experience,
            order_id=order.id,
            status=PaymentStatus.PENDING.value,
        )
        await self.ledger.append_row(row)
        logger.info(f"Form data stored with order ID {order.id}")

        return self.gateway.checkout_link(
            order.id, self.settings.callback_url, self.settings.cancel_url
        )

    async def record_payment(
        self,
        *,
        order_id: str,
        payment_id: str,
        amount: Any,
        currency: str,
        status: str,
        email: str = "",
    ) -> Optional[int]:
        """
        Find the row for ``order_id`` and overwrite its payment columns, or
        append a new identity-less row. Returns the updated row number, or
        None when a row was appended.
        """
        timestamp = utc_timestamp()
        # Rows with a blank order ID must never match an event missing one
        row_index = await self.ledger.find_row_by_order_id(order_id) if order_id else None

        if row_index is not None:
            await self.ledger.update_row(row_index, payment_columns(
                amount=amount,
                currency=currency,
                payment_id=payment_id,
                order_id=order_id,
                status=status,
                timestamp=timestamp,
            ))
            logger.info(f"Order {order_id}: row {row_index} set to {status}")
            return row_index

        await self.ledger.append_row(ledger_row(
            timestamp=timestamp,
            email=email,
            amount=amount,
            currency=currency,
            payment_id=payment_id,
            order_id=order_id,
            status=status,
            status_timestamp=timestamp,
        ))
        logger.warning(f"Order {order_id}: no ledger row found, appended a new {status} row")
        return None

    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> None:
        if not (order_id and payment_id and signature):
            raise ValidationError("verify-payment called without all three fields",
                                  public_message="Missing required fields")

        if not verify_payment_signature(order_id, payment_id, signature,
                                        self.settings.razorpay_key_secret):
            logger.warning(f"Signature mismatch for order {order_id}, payment {payment_id}")
            raise SignatureError(f"Signature mismatch for order {order_id}")

        payment = None
        try:
            payment = await self.gateway.fetch_payment(payment_id)
        except UpstreamError:
            logger.exception(f"Could not fetch payment {payment_id}; recording with defaults")

        amount = payment.amount if payment and payment.amount else self.settings.course_fee
        await self.record_payment(
            order_id=order_id,
            payment_id=payment_id,
            amount=to_major_units(amount),
            currency=(payment and payment.currency) or self.settings.course_currency,
            status=(payment and payment.status) or PaymentStatus.CAPTURED.value,
            email=(payment and payment.email) or "",
        )

    def check_webhook_signature(self, body: bytes, signature: Optional[str]) -> None:
        secret = self.settings.razorpay_webhook_secret
        if not secret:
            if not self.settings.allow_unsigned_webhooks:
                logger.error("RAZORPAY_WEBHOOK_SECRET not set and unsigned webhooks are not allowed")
                raise SignatureError("Webhook secret not configured")
            logger.warning("RAZORPAY_WEBHOOK_SECRET not set - skipping webhook signature verification")
            return

        if not verify_webhook_signature(body, signature, secret):
            logger.warning("Invalid webhook signature")
            raise SignatureError("Invalid webhook signature")

    async def handle_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent:
        self.check_webhook_signature(body, signature)

        payload = json.loads(body)
        event = WebhookEvent.parse(payload.get("event"))
        entity = ((payload.get("payload") or {}).get("payment") or {}).get("entity") or {}
        logger.info(f"Webhook received: {payload.get('event')} for payment {entity.get('id')}")

        if event is WebhookEvent.UNKNOWN:
            logger.info(f"Unhandled webhook event: {payload.get('event')}")
            return event

        payment = Payment.model_validate(entity)
        try:
            await self.record_payment(
                order_id=payment.order_id or "",
                payment_id=payment.id,
                amount=to_major_units(payment.amount or 0),
                currency=payment.currency or self.settings.course_currency,
                status=event.status.value,
                email=payment.email or "",
            )
        except StoreError:
            logger.exception(f"Error handling {event.value} for payment {payment.id}")
        return event

    async def cancel(self, order_id: Optional[str]) -> None:
        """Mark the order's row cancelled. Unknown or missing order IDs are ignored."""
        if not order_id:
            return

        try:
            row_index = await self.ledger.find_row_by_order_id(order_id)
            if row_index is None:
                logger.info(f"Order not found for cancellation: {order_id}")
                return

            await self.ledger.clear_row_range(row_index, "G", "I")
            await self.ledger.update_row_range(
                row_index, "J", "L", [order_id, PaymentStatus.CANCELLED.value, utc_timestamp()]
            )
            logger.info(f"Row {row_index} marked as cancelled")
        except StoreError:
            logger.exception(f"Error updating cancelled payment {order_id} in spreadsheet")
