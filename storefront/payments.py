import logging
import time
import uuid
from calendar import monthrange
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from storefront.errors import InvalidInput, InvalidState, NotFound
from storefront.models import (
    PAYMENT_TRANSITIONS,
    Account,
    Payment,
    PaymentMethod,
    PaymentStatus,
    utcnow,
)
from storefront.paypal_service import PayPalService
from storefront.permissions import authorize
from storefront.stripe_service import StripeService, intent_status

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")
MIN_YEAR, MAX_YEAR = 1, 9998


def generate_transaction_id():
    return f"TXN_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8].upper()}"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class PaymentWorkflow:
    """Creates payments with the external providers and drives their status.

    Status changes go through ``_transition``, a compare-and-set UPDATE, so two
    requests racing on the same payment cannot both move it.
    """

    def __init__(self, db: Session, stripe_client: StripeService, paypal_client: PayPalService,
                 currency: str = "inr"):
        self.db = db
        self.stripe = stripe_client
        self.paypal = paypal_client
        self.currency = currency.lower()

    # -- creation ---------------------------------------------------------

    def _validate_amount(self, amount) -> Decimal:
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidInput("Amount must be a number")
        if not amount.is_finite() or amount <= 0:
            raise InvalidInput("Amount must be greater than zero")
        # Numeric(10, 2) column
        if amount > MAX_AMOUNT:
            raise InvalidInput(f"Amount must not exceed {MAX_AMOUNT}")
        try:
            quantized = amount.quantize(CENT)
        except InvalidOperation:
            raise InvalidInput("Amount must have at most two decimal places")
        if amount != quantized:
            raise InvalidInput("Amount must have at most two decimal places")
        return quantized

    def _create_pending(self, account: Account, amount, method: PaymentMethod, description):
        payment = Payment(
            account_id=account.id,
            amount=self._validate_amount(amount),
            currency=self.currency,
            method=method,
            status=PaymentStatus.PENDING,
            transaction_id=generate_transaction_id(),
            description=description,
        )
        self.db.add(payment)
        # durable before the provider is contacted
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def create_stripe_payment(self, account: Account, amount, description=None):
        """Returns ``(payment, client_secret)``."""
        payment = self._create_pending(account, amount, PaymentMethod.STRIPE, description)

        intent = self.stripe.create_payment_intent(
            amount=to_minor_units(payment.amount),
            currency=self.currency,
            description=description,
            metadata={"user_id": str(account.id), "payment_id": str(payment.id)},
        )

        payment.stripe_payment_intent_id = intent.id
        self.db.commit()
        self.db.refresh(payment)
        logger.info("Stripe payment %s created with intent %s", payment.id, intent.id)
        return payment, intent.client_secret

    def create_paypal_payment(self, account: Account, amount, description=None) -> Payment:
        payment = self._create_pending(account, amount, PaymentMethod.PAYPAL, description)

        order = self.paypal.create_order(
            amount=payment.amount,
            currency=self.currency,
            reference_id=payment.transaction_id,
            description=description,
        )

        payment.paypal_order_id = order["id"]
        self.db.commit()
        self.db.refresh(payment)
        logger.info("PayPal payment %s created with order %s", payment.id, order["id"])
        return payment

    # -- confirmation -----------------------------------------------------

    def confirm_stripe_payment(self, payment_intent_id: str, caller: Optional[Account] = None) -> Payment:
        payment = self.db.query(Payment).filter_by(stripe_payment_intent_id=payment_intent_id).first()
        if payment is None:
            raise NotFound("Payment not found")
        if caller is not None:
            authorize(caller, payment, "read")
        if payment.status != PaymentStatus.PENDING:
            return payment

        status = intent_status(self.stripe.retrieve_payment_intent(payment_intent_id))
        if status == "succeeded":
            return self._transition(payment, PaymentStatus.COMPLETED, completed_at=utcnow())
        if status == "payment_failed":
            return self._transition(payment, PaymentStatus.FAILED)
        return payment

    def confirm_paypal_payment(self, order_id: str, caller: Optional[Account] = None) -> Payment:
        payment = self.db.query(Payment).filter_by(paypal_order_id=order_id).first()
        if payment is None:
            raise NotFound("Payment not found")
        if caller is not None:
            authorize(caller, payment, "read")
        if payment.status != PaymentStatus.PENDING:
            return payment

        order = self.paypal.capture_order(order_id)
        if order.get("status") == "COMPLETED":
            return self._transition(payment, PaymentStatus.COMPLETED, completed_at=utcnow())
        return self._transition(payment, PaymentStatus.FAILED)

    def mark_paid_from_webhook(self, payment_intent_id: str):
        """Webhook counterpart of confirm; unknown or settled intents are ignored."""
        payment = self.db.query(Payment).filter_by(stripe_payment_intent_id=payment_intent_id).first()
        if payment is None or payment.status != PaymentStatus.PENDING:
            return payment
        return self._transition(payment, PaymentStatus.COMPLETED, completed_at=utcnow())

    def mark_failed_from_webhook(self, payment_intent_id: str):
        payment = self.db.query(Payment).filter_by(stripe_payment_intent_id=payment_intent_id).first()
        if payment is None or payment.status != PaymentStatus.PENDING:
            return payment
        return self._transition(payment, PaymentStatus.FAILED)

    # -- caller-driven transitions ----------------------------------------

    def cancel_payment(self, payment_id: int, caller: Account) -> Payment:
        payment = self.get_payment(payment_id, caller, action="cancel")
        return self._transition(payment, PaymentStatus.CANCELLED)

    def refund_payment(self, payment_id: int, caller: Account) -> Payment:
        # local status flip only, no refund is issued at the provider
        payment = self.get_payment(payment_id, caller, action="refund")
        return self._transition(payment, PaymentStatus.REFUNDED)

    def _transition(self, payment: Payment, target: PaymentStatus, **values) -> Payment:
        current = payment.status
        if target not in PAYMENT_TRANSITIONS.get(current, ()):
            raise InvalidState(f"Cannot move payment from {current.value} to {target.value}")

        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == current)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise InvalidState(f"Payment {payment.id} was modified concurrently")
        self.db.commit()
        self.db.refresh(payment)

        logger.info("Payment %s: %s -> %s", payment.id, current.value, target.value)
        return payment

    # -- queries ----------------------------------------------------------

    def get_payment(self, payment_id: int, caller: Account, action: str = "read") -> Payment:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        authorize(caller, payment, action)
        return payment

    def get_by_transaction_id(self, transaction_id: str):
        return self.db.query(Payment).filter_by(transaction_id=transaction_id).first()

    def payment_history(self, account: Account):
        return (
            self.db.query(Payment)
            .filter(Payment.account_id == account.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    def list_payments(self, status: PaymentStatus = None):
        query = self.db.query(Payment)
        if status is not None:
            query = query.filter(Payment.status == status)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    def total_spent(self, account: Account) -> Decimal:
        total = (
            self.db.query(func.sum(Payment.amount))
            .filter(Payment.account_id == account.id, Payment.status == PaymentStatus.COMPLETED)
            .scalar()
        )
        return Decimal(total) if total is not None else ZERO

    def _revenue(self, start: datetime, end: datetime) -> Decimal:
        total = (
            self.db.query(func.sum(Payment.amount))
            .filter(
                Payment.status == PaymentStatus.COMPLETED,
                Payment.completed_at >= start,
                Payment.completed_at < end,
            )
            .scalar()
        )
        return Decimal(total) if total is not None else ZERO

    def get_monthly_revenue(self, year: int, month: int) -> Decimal:
        if not MIN_YEAR <= year <= MAX_YEAR:
            raise InvalidInput(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        if not 1 <= month <= 12:
            raise InvalidInput("Month must be between 1 and 12")
        start = datetime(year, month, 1)
        end = start + timedelta(days=monthrange(year, month)[1])
        return self._revenue(start, end)

    def get_daily_revenue(self, day: date) -> Decimal:
        if day.year > MAX_YEAR:
            raise InvalidInput(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        start = datetime(day.year, day.month, day.day)
        return self._revenue(start, start + timedelta(days=1))
