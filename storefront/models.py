import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from storefront.database import Base


def utcnow():
    # Naive UTC, SQLite drops tzinfo anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class PaymentMethod(str, enum.Enum):
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# Allowed edges of the payment lifecycle
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
}


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    avatar_url = Column(String(512))
    role = Column(Enum(Role, name="account_role"), nullable=False, default=Role.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    payments = relationship("Payment", back_populates="account")
    reviews = relationship("Review", back_populates="account")

    @property
    def is_admin(self):
        return self.role == Role.ADMIN


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    status = Column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    transaction_id = Column(String(64), unique=True, nullable=False)
    stripe_payment_intent_id = Column(String(255), unique=True, index=True)   # Stripe PaymentIntent ID
    paypal_order_id = Column(String(255), unique=True, index=True)            # PayPal order ID
    description = Column(String(500))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, index=True)

    account = relationship("Account", back_populates="payments")

    @property
    def correlation_id(self):
        if self.method == PaymentMethod.STRIPE:
            return self.stripe_payment_intent_id
        return self.paypal_order_id


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("account_id", "product_id", name="uq_review_account_product"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),
        CheckConstraint("helpful_count >= 0", name="ck_review_helpful_count"),
    )

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    product_id = Column(String(255), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(255))
    comment = Column(Text)
    is_verified = Column(Boolean, nullable=False, default=False)
    helpful_count = Column(Integer, nullable=False, default=0)
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    account = relationship("Account", back_populates="reviews")
