"""
Typed Pydantic models for LedgerTransaction.metadata.

Each transaction may carry a small structured bag describing where the money
came from. The bag is stored as JSON, but every writer goes through these
models so the stored shape is validated and versioned:

- ``kind`` selects the model (discriminated union).
- ``version`` lets readers handle older rows when a shape changes.
- ``extra="allow"`` keeps unknown keys from older writers readable.

Usage::

    from servicemarket.ledger.metadata import CommissionPayoutMetadata

    LedgerService().credit(
        account,
        amount,
        reference=f"COMM_{commission.pk}",
        metadata=CommissionPayoutMetadata(
            commission_id=str(commission.pk),
            referral_id=str(commission.referral_id),
            subscription_id=str(commission.subscription_id),
        ),
    )

    txn.typed_metadata.kind  # "commission_payout"
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


class BaseLedgerMetadata(BaseModel):
    """Base model for all ledger metadata kinds."""

    model_config = ConfigDict(extra="allow")

    version: int = CURRENT_VERSION


class GenericLedgerMetadata(BaseLedgerMetadata):
    """Metadata for transactions with no specific source."""

    kind: Literal["generic"] = "generic"


class CommissionPayoutMetadata(BaseLedgerMetadata):
    """A referral commission credited to the referrer's wallet."""

    kind: Literal["commission_payout"] = "commission_payout"
    commission_id: str
    referral_id: str = ""
    subscription_id: str = ""


class ManualAdjustmentMetadata(BaseLedgerMetadata):
    """An operator correction entered through the admin or shell."""

    kind: Literal["manual_adjustment"] = "manual_adjustment"
    actor: str = ""
    note: str = ""


class TransferMetadata(BaseLedgerMetadata):
    """One side of a wallet-to-wallet transfer."""

    kind: Literal["transfer"] = "transfer"
    direction: Literal["outgoing", "incoming"]
    counterparty_account_id: str


class WithdrawalMetadata(BaseLedgerMetadata):
    """Funds leaving the wallet to an external destination."""

    kind: Literal["withdrawal"] = "withdrawal"
    destination: str = ""
    external_reference: str = ""


LedgerMetadata = Annotated[
    GenericLedgerMetadata
    | CommissionPayoutMetadata
    | ManualAdjustmentMetadata
    | TransferMetadata
    | WithdrawalMetadata,
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[Any] = TypeAdapter(LedgerMetadata)


def parse_ledger_metadata(data: dict[str, Any] | None) -> BaseLedgerMetadata:
    """Parse a stored metadata dict into its typed model.

    Rows written without a ``kind`` are treated as generic.

    Raises:
        pydantic.ValidationError: If the data does not match its kind.
    """
    payload = dict(data or {})
    payload.setdefault("kind", "generic")
    return _adapter.validate_python(payload)


def dump_ledger_metadata(
    metadata: BaseLedgerMetadata | dict[str, Any] | None,
) -> dict[str, Any]:
    """Validate metadata and return the JSON-safe dict to store."""
    if isinstance(metadata, BaseLedgerMetadata):
        return metadata.model_dump(mode="json")
    return parse_ledger_metadata(metadata).model_dump(mode="json")
