"""
Paystack Payment Gateway Integration.

Only the two calls needed for card deposits are wrapped:
POST /transaction/initialize and GET /transaction/verify/<reference>.

Supports MOCK_MODE for local development and tests when no secret key is
available.
"""
import hashlib
import hmac
import logging
import uuid
from collections import OrderedDict
from typing import Optional, Dict, Any

import requests

logger = logging.getLogger(__name__)

# In-memory storage for mock mode, oldest entries evicted past MOCK_STORE_LIMIT
MOCK_STORE_LIMIT = 1000
_mock_transactions: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()


def to_kobo(amount: float) -> int:
    """Paystack amounts are integers in the currency's minor unit."""
    return int(round(float(amount) * 100))


class PaystackService:
    """
    Thin client for the Paystack REST API.

    Payment Flow:
    1. initialize_transaction -> authorization_url
    2. User completes payment on Paystack checkout
    3. verify_transaction(reference) -> status "success" and amount paid
    """

    DEFAULT_BASE_URL = "https://api.paystack.co"
    TIMEOUT = 15

    STATUS_SUCCESS = "success"
    STATUS_FAILED = "failed"
    STATUS_ABANDONED = "abandoned"

    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None, mock_mode: bool = False):
        self.secret_key = secret_key
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.mock_mode = mock_mode

        if not self.secret_key and not self.mock_mode:
            raise ValueError("PAYSTACK_SECRET_KEY is required. Set it in environment or enable mock mode.")

    @classmethod
    def from_config(cls, config) -> "PaystackService":
        return cls(
            secret_key=config.get("PAYSTACK_SECRET_KEY"),
            base_url=config.get("PAYSTACK_BASE_URL"),
            mock_mode=config.get("PAYSTACK_MOCK_MODE", False)
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json"
        }

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Make an authenticated request to the Paystack API.

        Returns:
            Parsed JSON response, or {"status": False, "message": ...} on
            transport errors
        """
        url = f"{self.base_url}{endpoint}"
        kwargs["headers"] = self._headers()
        kwargs.setdefault("timeout", self.TIMEOUT)

        try:
            response = requests.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.warning("Paystack %s %s failed: %s", method, endpoint, e)
            return {"status": False, "message": str(e)}

    # ==================== MOCK MODE HELPERS ====================

    def _mock_initialize(self, email: str, amount_kobo: int, reference: str,
                         callback_url: Optional[str]) -> Dict[str, Any]:
        access_code = uuid.uuid4().hex[:15]
        _mock_transactions[reference] = {
            "reference": reference,
            "amount": amount_kobo,
            "email": email,
            "status": self.STATUS_SUCCESS,
            "callback_url": callback_url
        }
        while len(_mock_transactions) > MOCK_STORE_LIMIT:
            _mock_transactions.popitem(last=False)
        return {
            "status": True,
            "message": "Authorization URL created",
            "data": {
                "authorization_url": f"https://checkout.paystack.com/{access_code}",
                "access_code": access_code,
                "reference": reference
            }
        }

    def _mock_verify(self, reference: str) -> Dict[str, Any]:
        transaction = _mock_transactions.get(reference)
        if not transaction:
            return {"status": False, "message": "Transaction reference not found"}
        return {
            "status": True,
            "message": "Verification successful",
            "data": {
                "reference": reference,
                "amount": transaction["amount"],
                "status": transaction["status"],
                "customer": {"email": transaction["email"]}
            }
        }

    # ==================== TRANSACTIONS ====================

    def initialize_transaction(
        self,
        email: str,
        amount: float,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Start a checkout session.

        Args:
            email: Customer email
            amount: Amount in major units (naira)
            reference: Our unique deposit reference
            callback_url: Where Paystack redirects after payment
            metadata: Extra data echoed back on verification
        """
        amount_kobo = to_kobo(amount)
        if self.mock_mode:
            return self._mock_initialize(email, amount_kobo, reference, callback_url)

        payload: Dict[str, Any] = {"email": email, "amount": amount_kobo, "reference": reference}
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata
        return self._request("POST", "/transaction/initialize", json=payload)

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        if self.mock_mode:
            return self._mock_verify(reference)
        return self._request("GET", f"/transaction/verify/{reference}")

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Paystack signs webhook bodies with HMAC-SHA512 of the secret key."""
        if not self.secret_key or not signature:
            return False
        expected = hmac.new(self.secret_key.encode(), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(signature, expected)

    @staticmethod
    def set_mock_status(reference: str, status: str) -> None:
        """Override the outcome of a mock transaction (tests and demos)."""
        if reference in _mock_transactions:
            _mock_transactions[reference]["status"] = status
