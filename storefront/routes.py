from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from storefront.auth import AuthWorkflow, get_current_account, require_admin
from storefront.database import get_db
from storefront.errors import InvalidInput
from storefront.models import Account, PaymentStatus
from storefront.payments import MAX_YEAR, MIN_YEAR, PaymentWorkflow
from storefront.reviews import ReviewWorkflow
from storefront.schemas import (
    ChangePasswordRequest,
    ConfirmPaymentRequest,
    CreatePaymentRequest,
    PaymentOut,
    RatingSummaryOut,
    ReviewOut,
    ReviewRequest,
    RoleRequest,
    SignInRequest,
    SignUpRequest,
    UpdateProfileRequest,
    UpdateReviewRequest,
    UserOut,
    dump,
    dump_all,
    envelope,
)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])
payments_router = APIRouter(prefix="/payments", tags=["payments"])
reviews_router = APIRouter(prefix="/reviews", tags=["reviews"])


def get_auth_workflow(request: Request, db: Session = Depends(get_db)):
    return AuthWorkflow(db, request.app.state.settings)


def get_payment_workflow(request: Request, db: Session = Depends(get_db)):
    state = request.app.state
    return PaymentWorkflow(db, state.stripe_client, state.paypal_client, state.settings.payment_currency)


def get_review_workflow(db: Session = Depends(get_db)):
    return ReviewWorkflow(db)


# -- auth --------------------------------------------------------------------

@auth_router.post("/signup", status_code=201)
def signup(body: SignUpRequest, auth: AuthWorkflow = Depends(get_auth_workflow)):
    account = auth.register(body.email, body.password, body.full_name)
    return envelope("User registered successfully",
                    token=auth.issue_token(account), user=dump(UserOut, account))


@auth_router.post("/signin")
def signin(body: SignInRequest, auth: AuthWorkflow = Depends(get_auth_workflow)):
    session = auth.authenticate(body.email, body.password)
    return envelope("Signed in successfully", token=session.token, user=dump(UserOut, session.account))


@auth_router.post("/signout")
def signout():
    # tokens are stateless; the client discards its copy
    return envelope("Signed out successfully")


@auth_router.get("/validate")
def validate(account: Account = Depends(get_current_account)):
    return envelope("Token is valid", valid=True, user=dump(UserOut, account))


@auth_router.get("/me")
def me(account: Account = Depends(get_current_account)):
    return envelope("Current user", user=dump(UserOut, account))


# -- users -------------------------------------------------------------------

@users_router.get("/profile")
def get_profile(account: Account = Depends(get_current_account)):
    return envelope("Profile retrieved", user=dump(UserOut, account))


@users_router.put("/profile")
def update_profile(
    body: UpdateProfileRequest,
    account: Account = Depends(get_current_account),
    auth: AuthWorkflow = Depends(get_auth_workflow),
):
    updated = auth.update_profile(account.id, body.full_name, body.avatar_url)
    return envelope("Profile updated successfully", user=dump(UserOut, updated))


@users_router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
    auth: AuthWorkflow = Depends(get_auth_workflow),
):
    auth.change_password(account.id, body.old_password, body.new_password)
    return envelope("Password changed successfully")


@users_router.put("/deactivate")
def deactivate_self(
    account: Account = Depends(get_current_account),
    auth: AuthWorkflow = Depends(get_auth_workflow),
):
    auth.deactivate(account.id)
    return envelope("Account deactivated successfully")


@users_router.get("/all")
def list_users(admin: Account = Depends(require_admin), auth: AuthWorkflow = Depends(get_auth_workflow)):
    return envelope("Users retrieved", users=dump_all(UserOut, auth.list_active_accounts()))


@users_router.get("/search")
def search_users(
    name: str = Query(..., min_length=1),
    admin: Account = Depends(require_admin),
    auth: AuthWorkflow = Depends(get_auth_workflow),
):
    return envelope("Search results", users=dump_all(UserOut, auth.search_accounts(name)))


@users_router.get("/stats")
def user_stats(admin: Account = Depends(require_admin), auth: AuthWorkflow = Depends(get_auth_workflow)):
    stats = auth.account_stats()
    return envelope(
        "User statistics",
        total_active_users=stats["total_active_users"],
        recent_users_count=len(stats["recent_users"]),
        recent_users=dump_all(UserOut, stats["recent_users"]),
    )


@users_router.get("/{account_id}")
def get_user(account_id: int, admin: Account = Depends(require_admin),
             auth: AuthWorkflow = Depends(get_auth_workflow)):
    return envelope("User retrieved", user=dump(UserOut, auth.get_account(account_id)))


@users_router.put("/{account_id}/activate")
def activate_user(account_id: int, admin: Account = Depends(require_admin),
                  auth: AuthWorkflow = Depends(get_auth_workflow)):
    return envelope("User activated", user=dump(UserOut, auth.activate(account_id)))


@users_router.put("/{account_id}/deactivate")
def deactivate_user(account_id: int, admin: Account = Depends(require_admin),
                    auth: AuthWorkflow = Depends(get_auth_workflow)):
    return envelope("User deactivated", user=dump(UserOut, auth.deactivate(account_id)))


@users_router.put("/{account_id}/role")
def change_user_role(account_id: int, body: RoleRequest, admin: Account = Depends(require_admin),
                     auth: AuthWorkflow = Depends(get_auth_workflow)):
    return envelope("Role updated", user=dump(UserOut, auth.change_role(account_id, body.role)))


# -- payments ----------------------------------------------------------------

@payments_router.post("/stripe/create")
def create_stripe_payment(
    body: CreatePaymentRequest,
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    payment, client_secret = payments.create_stripe_payment(account, body.amount, body.description)
    return envelope("Stripe payment created", payment=dump(PaymentOut, payment), client_secret=client_secret)


@payments_router.post("/paypal/create")
def create_paypal_payment(
    body: CreatePaymentRequest,
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    payment = payments.create_paypal_payment(account, body.amount, body.description)
    return envelope("PayPal payment created", payment=dump(PaymentOut, payment))


@payments_router.post("/stripe/confirm")
def confirm_stripe_payment(
    body: ConfirmPaymentRequest,
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    payment = payments.confirm_stripe_payment(body.correlation_id, account)
    return envelope("Stripe payment confirmed", payment=dump(PaymentOut, payment))


@payments_router.post("/paypal/confirm")
def confirm_paypal_payment(
    body: ConfirmPaymentRequest,
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    payment = payments.confirm_paypal_payment(body.correlation_id, account)
    return envelope("PayPal payment confirmed", payment=dump(PaymentOut, payment))


@payments_router.get("/history")
def payment_history(
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    return envelope(
        "Payment history",
        payments=dump_all(PaymentOut, payments.payment_history(account)),
        total_spent=float(payments.total_spent(account)),
    )


@payments_router.get("/all")
def list_payments(
    status: Optional[PaymentStatus] = None,
    admin: Account = Depends(require_admin),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    return envelope("Payments retrieved", payments=dump_all(PaymentOut, payments.list_payments(status)))


@payments_router.get("/stats")
def payment_stats(
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    month: Optional[int] = Query(None, ge=1, le=12),
    day: Optional[date] = None,
    admin: Account = Depends(require_admin),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    today = datetime.now(timezone.utc).date()
    if (year is None) != (month is None):
        raise InvalidInput("year and month must be given together")
    year, month = (year, month) if year is not None else (today.year, today.month)
    day = day or today
    return envelope(
        "Payment statistics",
        year=year,
        month=month,
        day=day.isoformat(),
        monthly_revenue=float(payments.get_monthly_revenue(year, month)),
        daily_revenue=float(payments.get_daily_revenue(day)),
    )


@payments_router.get("/{payment_id}")
def get_payment(
    payment_id: int,
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    return envelope("Payment retrieved", payment=dump(PaymentOut, payments.get_payment(payment_id, account)))


@payments_router.put("/{payment_id}/cancel")
def cancel_payment(
    payment_id: int,
    account: Account = Depends(get_current_account),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    payment = payments.cancel_payment(payment_id, account)
    return envelope("Payment cancelled", payment=dump(PaymentOut, payment))


@payments_router.put("/{payment_id}/refund")
def refund_payment(
    payment_id: int,
    admin: Account = Depends(require_admin),
    payments: PaymentWorkflow = Depends(get_payment_workflow),
):
    payment = payments.refund_payment(payment_id, admin)
    return envelope("Payment refunded", payment=dump(PaymentOut, payment))


# -- reviews -----------------------------------------------------------------

@reviews_router.post("", status_code=201)
def create_review(
    body: ReviewRequest,
    account: Account = Depends(get_current_account),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    review = reviews.create_review(account, body.product_id, body.rating, body.title, body.comment, body.images)
    return envelope("Review created successfully", review=dump(ReviewOut, review))


@reviews_router.get("/my-reviews")
def my_reviews(
    account: Account = Depends(get_current_account),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    return envelope("Your reviews", reviews=dump_all(ReviewOut, reviews.reviews_by_account(account)))


@reviews_router.get("/can-review/{product_id}")
def can_review(
    product_id: str,
    account: Account = Depends(get_current_account),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    return envelope("Review eligibility", can_review=reviews.can_review(account, product_id))


@reviews_router.get("/product/{product_id}")
def product_reviews(
    product_id: str,
    rating: Optional[int] = None,
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    found = reviews.reviews_for_product(product_id, rating)
    return envelope("Reviews retrieved", reviews=dump_all(ReviewOut, found), count=len(found))


@reviews_router.get("/product/{product_id}/summary")
def product_summary(product_id: str, reviews: ReviewWorkflow = Depends(get_review_workflow)):
    return envelope("Rating summary", summary=dump(RatingSummaryOut, reviews.get_rating_summary(product_id)))


@reviews_router.get("/product/{product_id}/most-helpful")
def most_helpful_reviews(product_id: str, reviews: ReviewWorkflow = Depends(get_review_workflow)):
    return envelope("Most helpful reviews",
                    reviews=dump_all(ReviewOut, reviews.most_helpful_reviews(product_id)))


@reviews_router.get("/product/{product_id}/verified")
def verified_reviews(product_id: str, reviews: ReviewWorkflow = Depends(get_review_workflow)):
    return envelope("Verified reviews", reviews=dump_all(ReviewOut, reviews.verified_reviews(product_id)))


@reviews_router.get("/product/{product_id}/mine")
def my_review_for_product(
    product_id: str,
    account: Account = Depends(get_current_account),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    review = reviews.review_for_account(account, product_id)
    return envelope("Your review", review=dump(ReviewOut, review) if review is not None else None)


@reviews_router.get("/product/{product_id}/search")
def search_product_reviews(
    product_id: str,
    q: str = Query(..., min_length=1),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    return envelope("Search results", reviews=dump_all(ReviewOut, reviews.search_reviews(product_id, q)))


@reviews_router.get("/{review_id}")
def get_review(review_id: int, reviews: ReviewWorkflow = Depends(get_review_workflow)):
    return envelope("Review retrieved", review=dump(ReviewOut, reviews.get_review(review_id)))


@reviews_router.put("/{review_id}")
def update_review(
    review_id: int,
    body: UpdateReviewRequest,
    account: Account = Depends(get_current_account),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    review = reviews.update_review(review_id, account, body.rating, body.title, body.comment, body.images)
    return envelope("Review updated successfully", review=dump(ReviewOut, review))


@reviews_router.delete("/{review_id}")
def delete_review(
    review_id: int,
    account: Account = Depends(get_current_account),
    reviews: ReviewWorkflow = Depends(get_review_workflow),
):
    reviews.delete_review(review_id, account)
    return envelope("Review deleted successfully")


@reviews_router.post("/{review_id}/helpful")
def mark_helpful(review_id: int, reviews: ReviewWorkflow = Depends(get_review_workflow)):
    return envelope("Review marked as helpful", helpful_count=reviews.mark_helpful(review_id))
