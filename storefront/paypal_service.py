"""
PayPal Orders v2 integration.

Environment Variables Required:
- PAYPAL_CLIENT_ID
- PAYPAL_CLIENT_SECRET
- PAYPAL_ENVIRONMENT ('sandbox' or 'live')
"""
import logging
from decimal import Decimal
from typing import Dict, Optional

import requests

from storefront.errors import PaymentProviderError

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://api-m.sandbox.paypal.com"
LIVE_URL = "https://api-m.paypal.com"


class PayPalService:
    """
    Client for the PayPal REST API.
    Handles order creation and capture.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        environment: str = "sandbox",
        brand_name: str = "Storefront",
        return_url: str = "",
        cancel_url: str = "",
        timeout: int = 30,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = LIVE_URL if environment == "live" else SANDBOX_URL
        self.brand_name = brand_name
        self.return_url = return_url
        self.cancel_url = cancel_url
        self.timeout = timeout

        if not self.configured:
            logger.warning("PayPal not initialized - no client credentials provided")

    @property
    def configured(self):
        return bool(self.client_id and self.client_secret)

    def _access_token(self) -> str:
        """Exchange the client credentials for a bearer token."""
        try:
            response = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["access_token"]
        except (requests.exceptions.RequestException, ValueError, KeyError) as e:
            logger.error("PayPal authentication failed: %s", e)
            raise PaymentProviderError("PayPal authentication failed")

    def _make_request(self, endpoint: str, data: Optional[Dict] = None) -> Dict:
        """
        POST to the PayPal API.

        Raises:
            PaymentProviderError: not configured, timeout or non-2xx response
        """
        if not self.configured:
            raise PaymentProviderError("PayPal is not configured")

        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}{endpoint}"

        try:
            response = requests.post(url, headers=headers, json=data or {}, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()

        except requests.exceptions.Timeout:
            logger.error("PayPal API timeout: %s", endpoint)
            raise PaymentProviderError("PayPal request timed out. Please try again.")

        except requests.exceptions.RequestException as e:
            logger.error("PayPal API error: %s", e)
            error_msg = str(e)
            if getattr(e, "response", None) is not None:
                try:
                    error_msg = e.response.json().get("message", error_msg)
                except ValueError:
                    pass
            raise PaymentProviderError(f"PayPal error: {error_msg}")

        except ValueError:
            logger.error("PayPal API returned a non-JSON body: %s", endpoint)
            raise PaymentProviderError("PayPal error: malformed response")

        if not isinstance(result, dict):
            raise PaymentProviderError("PayPal error: malformed response")
        return result

    def create_order(self, amount: Decimal, currency: str, reference_id: str, description=None) -> Dict:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference_id,
                    "description": description,
                    "amount": {
                        "currency_code": currency.upper(),
                        "value": str(Decimal(amount).quantize(Decimal("0.01"))),
                    },
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": self.return_url,
                "cancel_url": self.cancel_url,
            },
        }
        order = self._make_request("/v2/checkout/orders", payload)
        if not order.get("id"):
            logger.error("PayPal order response without an id: %s", order)
            raise PaymentProviderError("PayPal error: order id missing from response")
        return order

    def capture_order(self, order_id: str) -> Dict:
        return self._make_request(f"/v2/checkout/orders/{order_id}/capture")
