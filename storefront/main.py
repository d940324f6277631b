import logging

import stripe
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import settings as default_settings
from storefront.database import Base, engine, get_db
from storefront.errors import InvalidInput, StorefrontError
from storefront.paypal_service import PayPalService
from storefront.payments import PaymentWorkflow
from storefront.routes import auth_router, payments_router, reviews_router, users_router
from storefront.schemas import envelope
from storefront.stripe_service import StripeService

logger = logging.getLogger(__name__)


def configure_logging(level="INFO"):
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_stripe_client(settings):
    return StripeService(settings.stripe_secret_key, settings.stripe_webhook_secret)


def build_paypal_client(settings):
    return PayPalService(
        settings.paypal_client_id,
        settings.paypal_client_secret,
        environment=settings.paypal_environment,
        brand_name=settings.paypal_brand_name,
        return_url=settings.paypal_return_url,
        cancel_url=settings.paypal_cancel_url,
        timeout=settings.paypal_timeout,
    )


def install_error_handlers(app: FastAPI):
    @app.exception_handler(StorefrontError)
    async def storefront_error(request: Request, exc: StorefrontError):
        return JSONResponse(status_code=exc.status_code, content=envelope(exc.message, success=False))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=InvalidInput.status_code,
            content=envelope(InvalidInput.default_message, success=False, errors=errors),
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=envelope("Internal server error", success=False))


def create_app(settings=None, stripe_client=None, paypal_client=None):
    settings = settings or default_settings
    configure_logging(settings.log_level)

    app = FastAPI(title="Storefront API")
    app.state.settings = settings
    app.state.stripe_client = stripe_client or build_stripe_client(settings)
    app.state.paypal_client = paypal_client or build_paypal_client(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(payments_router)
    app.include_router(reviews_router)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        try:
            db.execute(text("SELECT 1"))
            database = "up"
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            database = "down"
        return envelope("Service is running", database=database)

    @app.post("/webhook")
    async def stripe_webhook(
        request: Request,
        stripe_signature: str = Header(None),
        db: Session = Depends(get_db),
    ):
        payload = await request.body()
        state = request.app.state

        try:
            event = state.stripe_client.construct_event(payload, stripe_signature)
        except ValueError:
            raise InvalidInput("Invalid payload")
        except stripe.SignatureVerificationError:
            raise InvalidInput("Invalid signature")

        payments = PaymentWorkflow(db, state.stripe_client, state.paypal_client, state.settings.payment_currency)
        intent = event["data"]["object"]

        if event["type"] == "payment_intent.succeeded":
            payments.mark_paid_from_webhook(intent["id"])
        elif event["type"] == "payment_intent.payment_failed":
            payments.mark_failed_from_webhook(intent["id"])
        else:
            logger.info("Ignoring Stripe event %s", event["type"])

        return envelope("Webhook processed", ok=True)

    return app


Base.metadata.create_all(bind=engine)

app = create_app()
