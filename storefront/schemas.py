from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.models import PaymentMethod, PaymentStatus, Role


def envelope(message: str, success: bool = True, **data):
    """Body shared by every JSON response."""
    return {
        "success": success,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **data,
    }


# -- requests ----------------------------------------------------------------

class SignUpRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: str = Field(min_length=1, max_length=255)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=512)


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class RoleRequest(BaseModel):
    role: Role


class CreatePaymentRequest(BaseModel):
    amount: Decimal
    description: Optional[str] = Field(default=None, max_length=500)


class ConfirmPaymentRequest(BaseModel):
    correlation_id: str = Field(min_length=1)


class ReviewRequest(BaseModel):
    product_id: str = Field(min_length=1, max_length=255)
    rating: int
    title: Optional[str] = Field(default=None, max_length=255)
    comment: Optional[str] = None
    images: List[str] = []


class UpdateReviewRequest(BaseModel):
    rating: int
    title: Optional[str] = Field(default=None, max_length=255)
    comment: Optional[str] = None
    images: List[str] = []


# -- responses ---------------------------------------------------------------

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    role: Role
    is_active: bool
    created_at: datetime


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    currency: str
    status: PaymentStatus
    method: PaymentMethod
    transaction_id: str
    correlation_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    product_id: str
    rating: int
    title: Optional[str] = None
    comment: Optional[str] = None
    is_verified: bool
    helpful_count: int
    images: List[str] = []
    created_at: datetime
    updated_at: datetime


class RatingSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    average: float
    total: int
    distribution: Dict[int, int]


def dump(schema, obj):
    return schema.model_validate(obj).model_dump(mode="json")


def dump_all(schema, objs):
    return [dump(schema, o) for o in objs]
