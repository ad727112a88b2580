"""
Typed views over billing provider payloads.

Only the fields the webhook handlers read are declared; anything else in
the provider JSON is ignored by ``dacite``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dacite import Config, from_dict

_DACITE_CONFIG = Config(check_types=False)


@dataclass
class Price:
    id: str


@dataclass
class Plan:
    interval: Optional[str] = None
    amount: Optional[int] = None


@dataclass
class SubscriptionItem:
    price: Optional[Price] = None
    plan: Optional[Plan] = None


@dataclass
class SubscriptionItemList:
    data: List[SubscriptionItem] = field(default_factory=list)


@dataclass
class Subscription:
    """A provider subscription object."""

    id: str
    status: str
    customer: Optional[str] = None
    currency: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    start_date: Optional[int] = None
    metadata: Optional[Dict[str, str]] = None
    items: SubscriptionItemList = field(default_factory=SubscriptionItemList)

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items.data[0] if self.items.data else None


@dataclass
class CheckoutSession:
    id: str
    subscription: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


@dataclass
class Invoice:
    id: str
    subscription: Optional[str] = None
    amount_paid: int = 0
    amount_due: int = 0
    currency: Optional[str] = None


@dataclass
class EventData:
    object: Dict[str, Any]


@dataclass
class BillingEvent:
    """The envelope every webhook delivery carries."""

    id: str
    type: str
    created: int
    data: EventData
    api_version: Optional[str] = None

    @property
    def category(self) -> str:
        return self.type.split(".")[0]

    def subscription(self) -> Subscription:
        return from_dict(Subscription, self.data.object, config=_DACITE_CONFIG)

    def checkout_session(self) -> CheckoutSession:
        return from_dict(CheckoutSession, self.data.object, config=_DACITE_CONFIG)

    def invoice(self) -> Invoice:
        return from_dict(Invoice, self.data.object, config=_DACITE_CONFIG)


def parse_event(payload: dict) -> BillingEvent:
    return from_dict(BillingEvent, payload, config=_DACITE_CONFIG)
