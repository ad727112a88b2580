"""
Pydantic schemas for the dashboard API.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from finboard.types import (
    AccountType,
    BudgetPeriod,
    NotificationType,
    TransactionType,
)


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    type: AccountType
    balance: float = 0.0
    institution: str = Field(..., min_length=1, max_length=128)
    account_number: str = Field(..., min_length=1, max_length=64)

    @field_validator("name", "institution", "account_number")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class AccountResponse(BaseModel):
    id: str
    user_id: str
    name: str
    type: AccountType
    balance: float
    institution: str
    account_number: str
    is_active: bool


class TransactionCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=256)
    amount: float = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=64)
    transaction_type: TransactionType
    transaction_date: date = Field(default_factory=date.today)
    account_id: Optional[str] = None


class TransactionResponse(BaseModel):
    id: str
    user_id: str
    account_id: Optional[str] = None
    description: str
    amount: float
    category: str
    transaction_type: TransactionType
    transaction_date: date


class BudgetCreate(BaseModel):
    category: str = Field(..., min_length=1, max_length=64)
    amount: float = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date = Field(default_factory=date.today)
    end_date: Optional[date] = None


class BudgetResponse(BaseModel):
    id: str
    category: str
    amount: float
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date] = None
    spent: float = 0.0
    percentage: int = 0
    status: Literal["ok", "warning", "over"] = "ok"


class MonthlySummaryResponse(BaseModel):
    month: str
    income: float
    expenses: float
    balance: float


class CategoryTotal(BaseModel):
    category: str
    total: float
    color: str
    percentage: float


class SpendingAnalyticsResponse(BaseModel):
    month: str
    total_expenses: float
    categories: list[CategoryTotal]
    transactions: list[TransactionResponse]


class NetWorthPoint(BaseModel):
    snapshot_date: date
    assets: float
    liabilities: float
    net_worth: float


class NetWorthResponse(BaseModel):
    timeframe: str
    assets: float
    liabilities: float
    net_worth: float
    change: float
    series: list[NetWorthPoint]


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: NotificationType
    is_read: bool
    created_at: float


class UnreadCountResponse(BaseModel):
    count: int


class StatusResponse(BaseModel):
    status: Literal["ok"]


class Plan(BaseModel):
    id: str
    name: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    interval: Optional[str] = None
    popular: bool = False


class PlansResponse(BaseModel):
    plans: list[Plan]


class CheckoutRequest(BaseModel):
    price_id: str = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class SubscriptionStatusResponse(BaseModel):
    has_active_subscription: bool
    status: Optional[str] = None
    stripe_id: Optional[str] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
