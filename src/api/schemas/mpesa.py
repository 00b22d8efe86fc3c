"""
Pydantic v2 schemas for the M-Pesa callback endpoint.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CallbackAckOut(BaseModel):
    """Acknowledgment body Daraja expects from ``CallBackURL``."""

    model_config = ConfigDict(populate_by_name=True)

    result_code: int = Field(0, alias="ResultCode")
    result_desc: str = Field("Success", alias="ResultDesc")
