"""
Payment Gateway Adapter
=======================

Wraps the push-payment submission into a single call with a bounded
timeout::

    submit(phone, amount, correlation_ref) -> SubmissionReceipt | GatewayError

Success means only that the STK prompt was dispatched; settlement arrives
later through the callback endpoint, keyed by ``transaction_id``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from src.core.errors import GatewayError
from src.integrations.mpesa.darajaService import DarajaClient
from src.sync.types import SubmissionReceipt

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    async def submit(
        self, phone: str, amount: int, correlation_ref: str
    ) -> SubmissionReceipt: ...


class PaymentGatewayAdapter:
    """Daraja-backed implementation of ``PaymentGateway``."""

    def __init__(
        self,
        client: DarajaClient,
        *,
        timeout_seconds: float = 30.0,
        account_reference: str = "TTip",
    ) -> None:
        self._client = client
        self._timeout = timeout_seconds
        self._account_reference = account_reference

    async def submit(
        self, phone: str, amount: int, correlation_ref: str
    ) -> SubmissionReceipt:
        """Dispatch a push payment.

        Args:
            phone: Normalized payer MSISDN.
            amount: Whole KES.
            correlation_ref: Device-side intent id, logged alongside the
                gateway's transaction id.

        Raises:
            GatewayError: On rejection, transport failure or timeout.
        """
        try:
            result = await asyncio.wait_for(
                self._client.initiate_stk_push(phone, amount, self._account_reference),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Gateway submission timed out after %.1fs: ref=%s",
                self._timeout,
                correlation_ref,
            )
            raise GatewayError(
                f"Submission timed out after {self._timeout:.1f}s", retryable=True
            ) from exc

        logger.info(
            "Gateway accepted submission: ref=%s, transaction=%s",
            correlation_ref,
            result.checkout_request_id,
        )
        return SubmissionReceipt(
            transaction_id=result.checkout_request_id,
            merchant_request_id=result.merchant_request_id or None,
            customer_message=result.customer_message or None,
        )
