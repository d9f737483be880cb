"""
ONDC Request Models
Typed context and per-action messages, validated once at the gateway
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ACTIONS = ("search", "select", "init", "confirm", "status", "update", "cancel")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, as used on the network"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ProtocolModel(BaseModel):
    """Unknown protocol fields are kept so they can be echoed back"""
    model_config = ConfigDict(extra="allow")


class Context(ProtocolModel):
    """Per-request identity; transaction_id correlates the whole asynchronous flow"""
    model_config = ConfigDict(extra="allow", frozen=True)

    domain: str
    country: str = "IND"
    city: str = "default"
    action: str
    core_version: str = "1.2.0"
    bap_id: str
    bap_uri: str
    bpp_id: Optional[str] = None
    bpp_uri: Optional[str] = None
    transaction_id: str
    message_id: str
    timestamp: str
    ttl: Optional[str] = None

    @field_validator("transaction_id", "message_id", "bap_uri")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    def for_callback(self, action: str, bpp_id: Optional[str] = None, bpp_uri: Optional[str] = None) -> Dict:
        """Outbound context: same ids, action rewritten to on_<action>, fresh timestamp"""
        action = action[3:] if action.startswith("on_") else action
        context = self.model_dump(exclude_none=True)
        context.update(
            action=f"on_{action}",
            timestamp=utc_timestamp(),
            bpp_id=self.bpp_id or bpp_id,
            bpp_uri=self.bpp_uri or bpp_uri,
        )
        return {key: value for key, value in context.items() if value is not None}

    def acknowledged(self) -> Dict:
        """Context echoed in the synchronous ACK"""
        context = self.model_dump(exclude_none=True)
        context["timestamp"] = utc_timestamp()
        return context


class Quantity(ProtocolModel):
    count: int = Field(default=1, ge=0)


class Item(ProtocolModel):
    id: str
    quantity: Quantity = Field(default_factory=Quantity)
    fulfillment_id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value


class Address(ProtocolModel):
    name: Optional[str] = None
    building: Optional[str] = None
    street: Optional[str] = None
    locality: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    area_code: Optional[str] = None


class Billing(ProtocolModel):
    name: Optional[str] = None
    address: Address = Field(default_factory=Address)
    email: Optional[str] = None
    phone: Optional[str] = None


class Location(ProtocolModel):
    gps: Optional[str] = None
    address: Optional[Address] = None


class FulfillmentEnd(ProtocolModel):
    location: Optional[Location] = None


class Fulfillment(ProtocolModel):
    id: Optional[str] = None
    type: Optional[str] = None
    end: Optional[FulfillmentEnd] = None


class Order(ProtocolModel):
    id: Optional[str] = None
    items: List[Item] = Field(default_factory=list)
    billing: Optional[Billing] = None
    fulfillments: List[Fulfillment] = Field(default_factory=list)
    cancellation: Optional[Dict] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value


class SearchMessage(ProtocolModel):
    intent: Dict = Field(default_factory=dict)


class SelectMessage(ProtocolModel):
    order: Order

    @field_validator("order")
    @classmethod
    def has_items(cls, order: Order) -> Order:
        if not order.items:
            raise ValueError("order.items must not be empty")
        return order


class InitMessage(SelectMessage):
    pass


class ConfirmMessage(ProtocolModel):
    order: Order


class StatusMessage(ProtocolModel):
    order_id: str

    @field_validator("order_id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value


class UpdateMessage(ProtocolModel):
    update_target: Optional[str] = None
    order_id: Optional[str] = None
    order: Optional[Order] = None

    @property
    def target_order_id(self) -> Optional[str]:
        return self.order_id or (self.order.id if self.order else None)


class Descriptor(ProtocolModel):
    name: Optional[str] = None
    short_desc: Optional[str] = None


class CancelMessage(ProtocolModel):
    order_id: str
    cancellation_reason_id: str
    descriptor: Optional[Descriptor] = None

    @field_validator("order_id", "cancellation_reason_id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value

    @property
    def fulfillment_id(self) -> Optional[str]:
        """A fulfillment-level descriptor scopes the cancellation to that fulfillment"""
        if self.descriptor and self.descriptor.short_desc:
            return self.descriptor.short_desc
        return None


class ProtocolRequest(BaseModel):
    context: Context
    message: BaseModel


class SearchRequest(ProtocolRequest):
    message: SearchMessage


class SelectRequest(ProtocolRequest):
    message: SelectMessage


class InitRequest(ProtocolRequest):
    message: InitMessage


class ConfirmRequest(ProtocolRequest):
    message: ConfirmMessage


class StatusRequest(ProtocolRequest):
    message: StatusMessage


class UpdateRequest(ProtocolRequest):
    message: UpdateMessage


class CancelRequest(ProtocolRequest):
    message: CancelMessage


class CallbackEnvelope(BaseModel):
    """An already-built on_<action> payload handed in through the webhook"""
    context: Context
    message: Dict


REQUEST_MODELS = {
    "search": SearchRequest,
    "select": SelectRequest,
    "init": InitRequest,
    "confirm": ConfirmRequest,
    "status": StatusRequest,
    "update": UpdateRequest,
    "cancel": CancelRequest,
}
