"""
Pydantic Data Models and Validation Schemas

This module defines the data model of the launchpad: the per-sale configuration and
mutable state, participant records, whitelist commitments, the factory input models and
the notification records emitted by sales and the factory.

Key Components:
- SaleMetadata: descriptive strings shown to participants (all non-empty)
- WhitelistConfig: committed Merkle root, update marker and carried minimum balance
- TokenInfo: asset reference, hard cap and per-purchase bounds supplied at creation
- SaleConfiguration: settings fixed at initialization (admin calls may adjust a few)
- SaleState: cumulative sold units, fees, termination and vesting clock
- UserRecord: per-participant purchased, invested and claimed totals
- Event models: purchase, claim, creation, price, whitelist, vesting and template notifications

Serialization:
- Public keys serialize to their base58 string form
- Byte strings (roots, proofs) serialize to hex
"""
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator
from solders.pubkey import Pubkey

PubkeyField = Annotated[Pubkey, PlainSerializer(str, return_type=str)]
HexBytes = Annotated[bytes, PlainSerializer(lambda value: value.hex(), return_type=str)]


class LaunchpadModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)


class SaleMetadata(LaunchpadModel):
    name: str = Field(min_length=1)
    website: str = Field(min_length=1)
    cover: str = Field(min_length=1)
    description: str = Field(min_length=1)


class WhitelistConfig(LaunchpadModel):
    root: HexBytes = b"\x00" * 32
    marker: int = 0
    # Minimum balance carried alongside the root
    min_balance: int = Field(default=0, ge=0)

    @field_validator("root")
    @classmethod
    def _check_root(cls, value: bytes) -> bytes:
        if len(value) != 32:
            raise ValueError("Whitelist root must be 32 bytes")
        return value


class TokenInfo(LaunchpadModel):
    asset: Any  # FungibleAsset collaborator
    hard_cap: int = Field(gt=0)
    min_buy: int = Field(default=0, ge=0)
    max_buy: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "TokenInfo":
        if self.min_buy > self.max_buy:
            raise ValueError("min_buy must not exceed max_buy")
        return self


class SaleConfiguration(LaunchpadModel):
    token: PubkeyField
    decimals: int = Field(ge=0, le=18)
    min_buy: int = Field(ge=0)
    max_buy: int = Field(gt=0)
    hard_cap: int = Field(gt=0)
    start_price: int = Field(gt=0)
    decay_rate: int = Field(ge=0)
    floor_price: int = Field(gt=0)
    owner: PubkeyField
    factory: PubkeyField
    start_time: int = Field(ge=0)
    end_time: int = Field(ge=0)
    fee_rate: int = Field(ge=0)
    fee_recipient: PubkeyField
    metadata: SaleMetadata

    @model_validator(mode="after")
    def _check_window(self) -> "SaleConfiguration":
        if self.end_time < self.start_time:
            raise ValueError("end_time must not precede start_time")
        if self.min_buy > self.max_buy:
            raise ValueError("min_buy must not exceed max_buy")
        return self


class SaleState(LaunchpadModel):
    total_sold: int = 0
    accumulated_fees: int = 0
    terminated: bool = False
    vesting_start_time: int = 0
    vesting_duration: int = 0


class UserRecord(LaunchpadModel):
    purchased: int = 0
    invested: int = 0
    claimed: int = 0


# --- Notifications ---

class SaleEvent(LaunchpadModel):
    timestamp: int


class Purchase(SaleEvent):
    token: PubkeyField
    buyer: PubkeyField
    amount: int


class Claim(SaleEvent):
    token: PubkeyField
    account: PubkeyField
    amount: int


class SaleCreated(SaleEvent):
    sale: PubkeyField
    owner: PubkeyField
    token: PubkeyField
    hard_cap: int


class PriceUpdated(SaleEvent):
    old_price: int
    new_price: int


class WhitelistUpdated(SaleEvent):
    root: HexBytes
    marker: int


class VestingStarted(SaleEvent):
    pool: PubkeyField
    start_time: int
    duration: int


class TemplateChanged(SaleEvent):
    old_template: str
    new_template: str


class CreateSaleRequest(LaunchpadModel):
    """Sale creation request accepted by the MCP server as JSON."""
    token: str
    hard_cap: int = Field(gt=0)
    min_buy: int = Field(default=0, ge=0)
    max_buy: int = Field(gt=0)
    metadata: SaleMetadata
    whitelist_root: str = Field(default="00" * 32, description="Hex encoded Merkle root")
    min_balance: int = Field(default=0, ge=0)
    fee_rate: int = Field(default=0, ge=0)
    fee_recipient: Optional[str] = None
    start_price: int = Field(gt=0)
    start_time: int = Field(ge=0)
    duration: int = Field(gt=0)
