"""
M-Pesa Daraja Service
=====================

Async wrapper around the Safaricom Daraja "Lipa na M-Pesa Online" APIs:
- OAuth client-credentials token (cached until shortly before expiry)
- STK push initiation (the push-payment prompt)
- STK push status query

All HTTP calls use httpx. Submissions are NOT retried here: a repeated STK
push would prompt the customer twice, so retry policy belongs to the sync
engine.

Error mapping:
- ``ResponseCode != "0"`` and HTTP 4xx  -> ``GatewayError(retryable=False)``
- HTTP 5xx, timeouts, connection errors -> ``GatewayError(retryable=True)``
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from src.core.config import settings
from src.core.errors import GatewayError

logger = logging.getLogger(__name__)

_TOKEN_PATH = "/oauth/v1/generate"
_STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
_STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"

_TOKEN_EXPIRY_MARGIN_SECONDS = 60
_REQUEST_TIMEOUT_SECONDS = 30.0

# Daraja timestamps are East Africa Time (UTC+3, no DST)
_EAT = timezone(timedelta(hours=3), "EAT")

# STK query result code meaning "still being processed"
_QUERY_PENDING_CODES = {"4999", "500.001.1001"}


# ---------------------------------------------------------------------------
# Response dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StkPushResult:
    """Daraja acknowledgment that an STK prompt was dispatched."""
    checkout_request_id: str
    merchant_request_id: str
    response_code: str
    response_description: str
    customer_message: str


@dataclass(frozen=True)
class StkQueryResult:
    """Normalised STK push status."""
    status: str  # "success" | "pending" | "failed"
    result_code: Optional[int]
    result_desc: str
    raw: dict[str, Any]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def daraja_timestamp(now: Optional[datetime] = None) -> str:
    """Return ``YYYYMMDDHHMMSS`` in East Africa Time."""
    now = now or datetime.now(tz=_EAT)
    return now.astimezone(_EAT).strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """Base64 of shortcode + passkey + timestamp, as Daraja requires."""
    raw = f"{shortcode}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _raise_for_transport(exc: httpx.HTTPError, operation: str) -> GatewayError:
    if isinstance(exc, httpx.TimeoutException):
        message = f"Daraja {operation} timed out"
    else:
        message = f"Daraja {operation} failed: {exc}"
    logger.warning("%s", message)
    return GatewayError(message, retryable=True)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DarajaClient:
    """Thin async client for the Daraja endpoints used by TTip."""

    def __init__(
        self,
        *,
        base_url: str = settings.daraja_base_url,
        consumer_key: str = settings.daraja_consumer_key,
        consumer_secret: str = settings.daraja_consumer_secret,
        shortcode: str = settings.daraja_shortcode,
        passkey: str = settings.daraja_passkey,
        callback_url: str = settings.daraja_callback_url,
        transaction_desc: str = settings.daraja_transaction_desc,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.transaction_desc = transaction_desc
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=_REQUEST_TIMEOUT_SECONDS
        )
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- auth -------------------------------------------------------------

    async def get_access_token(self) -> str:
        """Return a cached OAuth token, fetching a new one when near expiry."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            response = await self._client.get(
                _TOKEN_PATH,
                params={"grant_type": "client_credentials"},
                auth=(self._consumer_key, self._consumer_secret),
            )
        except httpx.HTTPError as exc:
            raise _raise_for_transport(exc, "token request") from exc

        if response.status_code >= 400:
            raise GatewayError(
                f"Daraja token request rejected: HTTP {response.status_code}",
                retryable=response.status_code >= 500,
                response_code=str(response.status_code),
            )

        body = _json_body(response)
        if "access_token" not in body:
            raise GatewayError("Daraja token response missing access_token", retryable=True)
        try:
            expires_in = int(body.get("expires_in", 3599))
        except (TypeError, ValueError) as exc:
            raise GatewayError(
                f"Daraja token response has invalid expires_in: {body.get('expires_in')!r}",
                retryable=True,
            ) from exc
        self._token = body["access_token"]
        self._token_expires_at = (
            time.monotonic() + max(expires_in - _TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        )
        return self._token

    async def _post(self, path: str, payload: dict[str, Any], operation: str) -> httpx.Response:
        token = await self.get_access_token()
        try:
            return await self._client.post(
                path,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise _raise_for_transport(exc, operation) from exc

    # -- STK push ---------------------------------------------------------

    async def initiate_stk_push(
        self,
        phone: str,
        amount: int,
        account_reference: str,
    ) -> StkPushResult:
        """Dispatch an STK push prompt to ``phone``.

        Args:
            phone: MSISDN in ``254XXXXXXXXX`` form.
            amount: Whole KES.
            account_reference: Shown to the customer; max 12 characters.

        Returns:
            StkPushResult carrying the CheckoutRequestID used for correlation.

        Raises:
            GatewayError: If Daraja does not accept the request.
        """
        timestamp = daraja_timestamp()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": stk_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount),
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference[:12],
            "TransactionDesc": self.transaction_desc,
        }

        response = await self._post(_STK_PUSH_PATH, payload, "STK push")

        if response.status_code >= 500:
            raise GatewayError(
                f"Daraja STK push server error: HTTP {response.status_code}",
                retryable=True,
                response_code=str(response.status_code),
            )

        body = _json_body(response)
        if response.status_code >= 400:
            raise GatewayError(
                f"Daraja STK push rejected: {body.get('errorMessage', response.text)}",
                retryable=False,
                response_code=str(body.get("errorCode", response.status_code)),
            )

        response_code = str(body.get("ResponseCode", ""))
        if response_code != "0" or not body.get("CheckoutRequestID"):
            raise GatewayError(
                f"Daraja STK push not accepted: {body.get('ResponseDescription', 'unknown')}",
                retryable=False,
                response_code=response_code,
            )

        result = StkPushResult(
            checkout_request_id=body["CheckoutRequestID"],
            merchant_request_id=body.get("MerchantRequestID", ""),
            response_code=response_code,
            response_description=body.get("ResponseDescription", ""),
            customer_message=body.get("CustomerMessage", ""),
        )
        logger.info(
            "STK push accepted: checkout=%s, amount=%d, reference=%s",
            result.checkout_request_id,
            amount,
            account_reference,
        )
        return result

    async def query_stk_status(self, checkout_request_id: str) -> StkQueryResult:
        """Ask Daraja for the outcome of a previous STK push.

        Transport failures are reported as ``pending`` so callers simply
        try again later.
        """
        timestamp = daraja_timestamp()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": stk_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }

        try:
            response = await self._post(_STK_QUERY_PATH, payload, "STK query")
        except GatewayError as exc:
            return StkQueryResult(status="pending", result_code=None, result_desc=exc.message, raw={})

        body = _json_body(response)
        raw_code = str(body.get("ResultCode", body.get("errorCode", "")))
        desc = body.get("ResultDesc") or body.get("errorMessage", "")

        if raw_code == "0":
            return StkQueryResult(status="success", result_code=0, result_desc=desc, raw=body)
        if raw_code in _QUERY_PENDING_CODES or not raw_code.isdigit():
            return StkQueryResult(status="pending", result_code=None, result_desc=desc, raw=body)
        return StkQueryResult(status="failed", result_code=int(raw_code), result_desc=desc, raw=body)
