"""
Typed Pydantic models for Subscription.metadata.

Like the ledger metadata, the stored JSON is always written through one of
these models. ``kind`` records how the subscription came about and selects
the model; ``version`` allows the shape to evolve.

Usage::

    SubscriptionService().create_subscription(
        account,
        "pro-plan",
        metadata=SignupMetadata(channel="mobile", referral_code="ACME7K2Q"),
    )
"""

from __future__ import annotations

from typing import Annotated
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import TypeAdapter

CURRENT_VERSION = 1


class BaseSubscriptionMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: int = CURRENT_VERSION


class SignupMetadata(BaseSubscriptionMetadata):
    """A subscription bought by the account holder."""

    kind: Literal["signup"] = "signup"
    channel: str = ""
    referral_code: str = ""
    payment_reference: str = ""


class AdminGrantMetadata(BaseSubscriptionMetadata):
    """A subscription granted by an operator."""

    kind: Literal["admin_grant"] = "admin_grant"
    actor: str = ""
    note: str = ""


SubscriptionMetadata = Annotated[
    SignupMetadata | AdminGrantMetadata,
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[Any] = TypeAdapter(SubscriptionMetadata)


def parse_subscription_metadata(
    data: dict[str, Any] | None,
) -> BaseSubscriptionMetadata:
    """Parse stored metadata; rows without a ``kind`` are signups."""
    payload = dict(data or {})
    payload.setdefault("kind", "signup")
    return _adapter.validate_python(payload)


def dump_subscription_metadata(
    metadata: BaseSubscriptionMetadata | dict[str, Any] | None,
) -> dict[str, Any]:
    if isinstance(metadata, BaseSubscriptionMetadata):
        return metadata.model_dump(mode="json")
    return parse_subscription_metadata(metadata).model_dump(mode="json")
