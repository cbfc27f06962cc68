"""Typed records for Rakuten Advertising payloads and local reference data."""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from errors import MalformedResponse

TAG_SEPARATOR = "|"
EVENT_FLAG = "Y"


class Credentials(BaseModel):
    """Partner login used for the password grant."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str
    api_key: str
    account_id: int


class Token(BaseModel):
    """OAuth token blob as returned by the token endpoint.

    Unknown fields are preserved so the whole blob can be handed to a
    token store unchanged.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class RawEvent(BaseModel):
    """A single entry of the events/1.0/transactions response."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    etransaction_id: str
    is_event: str
    u1: Optional[str] = None
    currency: str
    commissions: Decimal
    sale_amount: Decimal
    product_name: Optional[str] = None
    sku_number: Optional[str] = None
    quantity: Optional[int] = None
    order_id: str
    transaction_date: str

    @property
    def is_sale(self) -> bool:
        # 'Y' marks a tracked action that is not a sale
        return self.is_event != EVENT_FLAG


class CompositeTag(BaseModel):
    """The ``u1`` tag: ``<program id>|<dci>``."""

    model_config = ConfigDict(frozen=True)

    program_id: str
    dci: str

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CompositeTag"]:
        if not value:
            return None
        parts = value.split(TAG_SEPARATOR)
        if len(parts) != 2 or not all(parts):
            return None
        return cls(program_id=parts[0], dci=parts[1])


class Program(BaseModel):
    id: int
    advertiser_id: int
    name: Optional[str] = None


class Advertiser(BaseModel):
    id: int
    tracking_segment_id: int
    name: Optional[str] = None


class TrackingSegment(BaseModel):
    id: int
    domain: str


class DateWindow(BaseModel):
    """The trailing window of one run.

    ``local_*`` are timezone-aware datetimes used for local lookups,
    ``partner_*`` the same instants rendered for the partner API.
    """

    model_config = ConfigDict(frozen=True)

    local_start: datetime
    local_end: datetime
    partner_start: str
    partner_end: str


def decode_token(data: Any) -> Token:
    try:
        return Token.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid token payload: {e}") from e


def decode_event(data: Any) -> RawEvent:
    try:
        return RawEvent.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid transaction event: {e}") from e


def decode_event_page(data: Any) -> List[Any]:
    """Check that a transactions page is a JSON array.

    Items are decoded one by one later so a single bad event only drops itself.
    """
    if not isinstance(data, list):
        raise MalformedResponse(
            f"Expected a list of transactions, got {type(data).__name__}"
        )
    return data
