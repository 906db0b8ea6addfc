"""Circle webhook payloads, validated into a tagged union on notificationType."""
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

TERMINAL_STATES = frozenset({"COMPLETE", "CONFIRMED"})

TRANSFERS = "transfers"
INBOUND_TRANSFER = "modularWallet.inboundTransfer"
OUTBOUND_TRANSFER = "modularWallet.outboundTransfer"
USER_OPERATION = "modularWallet.userOperation"

KNOWN_NOTIFICATION_TYPES = frozenset({TRANSFERS, INBOUND_TRANSFER, OUTBOUND_TRANSFER, USER_OPERATION})


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BaseNotification(_CamelModel):
    state: str
    wallet_id: Optional[str] = None
    wallet_address: Optional[str] = None
    amount: Optional[str] = None
    amounts: Optional[list[str]] = None
    token_address: Optional[str] = None
    blockchain: Optional[str] = None
    tx_hash: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.upper() in TERMINAL_STATES

    @property
    def value(self) -> str:
        if self.amount:
            return self.amount
        if self.amounts:
            return self.amounts[0]
        return "0"


class TransferParty(_CamelModel):
    address: Optional[str] = None


class TransfersNotification(BaseNotification):
    id: str
    transaction_type: Optional[str] = None
    source: Optional[TransferParty] = None
    destination: Optional[TransferParty] = None

    @property
    def source_address(self) -> Optional[str]:
        return self.source.address if self.source else None

    @property
    def destination_address(self) -> Optional[str]:
        return self.destination.address if self.destination else None


class ModularTransferNotification(BaseNotification):
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None


class UserOperationNotification(BaseNotification):
    id: Optional[str] = None
    sender: Optional[str] = None
    to: Optional[str] = None
    user_op_hash: Optional[str] = None


class TransfersEvent(_CamelModel):
    notification_type: Literal["transfers"]
    notification: TransfersNotification


class InboundTransferEvent(_CamelModel):
    notification_type: Literal["modularWallet.inboundTransfer"]
    notification: ModularTransferNotification


class OutboundTransferEvent(_CamelModel):
    notification_type: Literal["modularWallet.outboundTransfer"]
    notification: ModularTransferNotification


class UserOperationEvent(_CamelModel):
    notification_type: Literal["modularWallet.userOperation"]
    notification: UserOperationNotification


WebhookEvent = Annotated[
    Union[TransfersEvent, InboundTransferEvent, OutboundTransferEvent, UserOperationEvent],
    Field(discriminator="notification_type"),
]

webhook_event_adapter = TypeAdapter(WebhookEvent)
