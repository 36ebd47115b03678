from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _StrictRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class EmptyRequest(_StrictRequest):
    pass


class CreateOrderRequest(_StrictRequest):
    listing_id: str = Field(min_length=1, max_length=36)


class OpenDisputeRequest(_StrictRequest):
    reason: str = Field(default="", max_length=500)


class CompletePayoutRequest(_StrictRequest):
    payout_reference: str = Field(default="", max_length=128)
