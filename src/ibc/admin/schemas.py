"""Pydantic schemas for admin config and payout endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from ibc.schemas import CamelModel
from ibc.wallet.schemas import Pagination, PayoutResponse


class ConfigResponse(CamelModel):
    version: str
    config: dict[str, Any]


class ProcessPayoutsRequest(CamelModel):
    auto_approve: bool = False
    threshold: int = Field(default=0, ge=0)


class ProcessPayoutsResponse(CamelModel):
    processed: int
    succeeded: int
    failed: int
    pending: int


class SettleRequest(CamelModel):
    outcome: Literal["paid", "failed"]
    provider_ref: str | None = None
    error: str | None = None


class SettleResponse(CamelModel):
    payout_id: str
    status: str
    changed: bool


class AdminPayoutListResponse(CamelModel):
    payouts: list[PayoutResponse]
    pagination: Pagination
