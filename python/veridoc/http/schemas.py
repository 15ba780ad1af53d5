"""Request bodies for the HTTP endpoints (camelCase on the wire)."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

# Identifiers tolerate surrounding whitespace; amounts must arrive exact
Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ReleaseBody(_CamelModel):
    """POST /settlements/release"""

    consultation_id: Identifier
    amount_raw: str = Field(min_length=1)
    specialist_account: Identifier


class FundBody(_CamelModel):
    """POST /accounts/fund"""

    account_id: Identifier


class DepositBody(_CamelModel):
    """POST /escrow/deposit"""

    signed_delegate_base64: Identifier


class ConfirmPaymentBody(_CamelModel):
    """POST /consultations/confirm-payment"""

    consultation_id: Identifier
    tx_hash: Identifier
    amount_raw: str = Field(min_length=1)
