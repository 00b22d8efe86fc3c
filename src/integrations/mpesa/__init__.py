"""
M-Pesa Integration Module
=========================

Central export point for the Daraja client and the STK callback handler.

Usage::

    from src.integrations.mpesa import (
        DarajaClient,
        StkPushResult,
        StkQueryResult,
        handle_stk_callback,
    )
"""

from .callbackHandler import (
    CallbackResult,
    SettlementCallback,
    handle_stk_callback,
    parse_stk_callback,
)
from .darajaService import (
    DarajaClient,
    StkPushResult,
    StkQueryResult,
    daraja_timestamp,
    stk_password,
)

__all__ = [
    # Daraja Service
    "DarajaClient",
    "StkPushResult",
    "StkQueryResult",
    "daraja_timestamp",
    "stk_password",
    # Callback Handler
    "CallbackResult",
    "SettlementCallback",
    "handle_stk_callback",
    "parse_stk_callback",
]
