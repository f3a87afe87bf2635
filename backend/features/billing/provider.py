"""
Billing provider protocol.

Business logic in billing/service.py talks to the payment processor only
through this interface, so tests can substitute a fake.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class CheckoutLineItem:
    """Inline price for a plan; no processor-side price objects are needed."""
    name: str
    description: str
    unit_amount_cents: int
    currency: str = "usd"
    interval: str = "month"


@dataclass(frozen=True)
class BillingWebhookResult:
    """A verified processor event, reduced to the fields we act on."""
    event_id: str
    event_type: str
    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan_id: Optional[str] = None
    status: Optional[str] = None
    current_period_end: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    def ensure_customer(self, user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> str:
        """Create a processor customer for the user; returns its id."""
        ...

    def create_checkout_session(
        self,
        customer_id: str,
        item: CheckoutLineItem,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        ...

    def handle_webhook(self, headers: Mapping[str, str], body: bytes) -> BillingWebhookResult:
        """
        Verify the signature and parse the event.

        Raises:
            BillingWebhookError: Missing/invalid signature or unparsable body
        """
        ...


class BillingProviderError(Exception):
    """Payment processor call failed."""


class BillingWebhookError(BillingProviderError):
    """Webhook could not be verified or parsed."""
