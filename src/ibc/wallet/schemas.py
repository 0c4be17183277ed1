"""Pydantic schemas for wallet and payout API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from ibc.schemas import CamelModel


class BalanceResponse(CamelModel):
    pubkey: str
    balance: int
    pending_balance: int
    total_earned: int
    total_withdrawn: int
    last_activity: datetime


class WithdrawRequest(CamelModel):
    amount: int
    lightning_address: str = Field(min_length=3, max_length=320)


class WithdrawResponse(CamelModel):
    payout_id: str
    status: str
    amount: int
    fee: int


class PayoutResponse(CamelModel):
    id: str
    user_pubkey: str
    amount: int
    fee: int
    game_type: str
    status: str
    timestamp: datetime
    tx_id: str | None = None


class Pagination(CamelModel):
    limit: int
    offset: int
    total: int


class PayoutListResponse(CamelModel):
    payouts: list[PayoutResponse]
    pagination: Pagination


class AwardRequest(CamelModel):
    user_id: str = Field(pattern=r"^[0-9a-f]{64}$")
    kind: Literal["trivia", "stacker", "achievement", "referral"]
    amount: int | None = Field(default=None, gt=0)


class AwardResponse(CamelModel):
    payout: PayoutResponse
    balance: BalanceResponse
