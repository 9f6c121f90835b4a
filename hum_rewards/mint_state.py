"""Mint account decoding and resolution of the UI-amount extension in effect"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from .errors import InvalidMintOwner, MalformedExtensionState

TOKEN_PROGRAM_IDS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

MINT_SIZE = 82
ACCOUNT_SIZE = 165
MULTISIG_SIZE = 355
ACCOUNT_TYPE_SIZE = 1
ACCOUNT_TYPE_MINT = 1
TLV_HEADER_SIZE = 4

EXTENSION_INTEREST_BEARING_CONFIG = 10
EXTENSION_SCALED_UI_AMOUNT_CONFIG = 25

# COption<Pubkey> mint_authority, u64 supply, u8 decimals, bool is_initialized, COption<Pubkey> freeze_authority
_MINT_LAYOUT = struct.Struct("<I32sQBBI32s")
_TLV_HEADER = struct.Struct("<HH")
# rate_authority, initialization_timestamp, pre_update_average_rate, last_update_timestamp, current_rate
_INTEREST_BEARING_LAYOUT = struct.Struct("<32sqhqh")
# authority, multiplier, new_multiplier_effective_timestamp, new_multiplier
_SCALED_UI_AMOUNT_LAYOUT = struct.Struct("<32sdqd")


def _optional_pubkey(raw: bytes) -> Optional[Pubkey]:
    # all-zero key means "unset" in extension state
    return Pubkey(raw) if any(raw) else None


@dataclass(frozen=True)
class InterestBearingConfig:
    rate_authority: Optional[Pubkey]
    initialization_timestamp: int
    pre_update_average_rate: int
    last_update_timestamp: int
    current_rate: int


@dataclass(frozen=True)
class ScaledUiAmountConfig:
    authority: Optional[Pubkey]
    multiplier: float
    new_multiplier_effective_timestamp: int
    new_multiplier: float

    def multiplier_at(self, timestamp: int) -> float:
        """`new_multiplier` from the effective timestamp on (inclusive), `multiplier` before it"""
        if timestamp >= self.new_multiplier_effective_timestamp:
            return self.new_multiplier
        return self.multiplier


@dataclass
class Mint:
    address: Pubkey
    owner: Pubkey
    decimals: int
    supply: int
    is_initialized: bool
    mint_authority: Optional[Pubkey] = None
    freeze_authority: Optional[Pubkey] = None
    extensions: Dict[int, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class PlainMint:
    mint: Mint


@dataclass(frozen=True)
class InterestBearingMint:
    mint: Mint
    config: InterestBearingConfig


@dataclass(frozen=True)
class ScaledMint:
    mint: Mint
    config: ScaledUiAmountConfig


MintState = Union[PlainMint, InterestBearingMint, ScaledMint]


def parse_extensions(tlv_data: bytes) -> Dict[int, bytes]:
    """Split Token-2022 TLV data into {extension type: value bytes}"""
    entries: Dict[int, bytes] = {}
    offset = 0
    while offset + TLV_HEADER_SIZE <= len(tlv_data):
        entry_type, entry_length = _TLV_HEADER.unpack_from(tlv_data, offset)
        start = offset + TLV_HEADER_SIZE
        end = start + entry_length
        if end > len(tlv_data):
            raise MalformedExtensionState(
                f"extension {entry_type} declares {entry_length} bytes but only {len(tlv_data) - start} remain"
            )
        # type 0 is uninitialized padding
        if entry_type:
            entries.setdefault(entry_type, tlv_data[start:end])
        offset = end
    return entries


def unpack_mint(address: Pubkey, owner: Pubkey, data: bytes) -> Mint:
    if owner not in TOKEN_PROGRAM_IDS:
        raise InvalidMintOwner(f"account {address} is owned by {owner}, not a token program")
    data = bytes(data)
    if len(data) < MINT_SIZE:
        raise MalformedExtensionState(f"mint {address} is {len(data)} bytes, expected at least {MINT_SIZE}")

    tlv_data = b""
    if len(data) > MINT_SIZE:
        if len(data) <= ACCOUNT_SIZE or len(data) == MULTISIG_SIZE:
            raise MalformedExtensionState(f"mint {address} has invalid extended size {len(data)}")
        if data[ACCOUNT_SIZE] != ACCOUNT_TYPE_MINT:
            raise MalformedExtensionState(f"account {address} is not a mint (account type {data[ACCOUNT_SIZE]})")
        tlv_data = data[ACCOUNT_SIZE + ACCOUNT_TYPE_SIZE:]

    (
        mint_authority_option,
        mint_authority,
        supply,
        decimals,
        is_initialized,
        freeze_authority_option,
        freeze_authority,
    ) = _MINT_LAYOUT.unpack_from(data)
    return Mint(
        address=address,
        owner=owner,
        decimals=decimals,
        supply=supply,
        is_initialized=bool(is_initialized),
        mint_authority=Pubkey(mint_authority) if mint_authority_option else None,
        freeze_authority=Pubkey(freeze_authority) if freeze_authority_option else None,
        extensions=parse_extensions(tlv_data),
    )


def _extension(mint: Mint, extension_type: int, layout: struct.Struct) -> Optional[tuple]:
    raw = mint.extensions.get(extension_type)
    if raw is None:
        return None
    if len(raw) != layout.size:
        raise MalformedExtensionState(
            f"extension {extension_type} on mint {mint.address} is {len(raw)} bytes, expected {layout.size}"
        )
    return layout.unpack(raw)


def get_interest_bearing_config(mint: Mint) -> Optional[InterestBearingConfig]:
    values = _extension(mint, EXTENSION_INTEREST_BEARING_CONFIG, _INTEREST_BEARING_LAYOUT)
    if values is None:
        return None
    rate_authority, initialization_timestamp, pre_update_average_rate, last_update_timestamp, current_rate = values
    return InterestBearingConfig(
        rate_authority=_optional_pubkey(rate_authority),
        initialization_timestamp=initialization_timestamp,
        pre_update_average_rate=pre_update_average_rate,
        last_update_timestamp=last_update_timestamp,
        current_rate=current_rate,
    )


def get_scaled_ui_amount_config(mint: Mint) -> Optional[ScaledUiAmountConfig]:
    values = _extension(mint, EXTENSION_SCALED_UI_AMOUNT_CONFIG, _SCALED_UI_AMOUNT_LAYOUT)
    if values is None:
        return None
    authority, multiplier, new_multiplier_effective_timestamp, new_multiplier = values
    return ScaledUiAmountConfig(
        authority=_optional_pubkey(authority),
        multiplier=multiplier,
        new_multiplier_effective_timestamp=new_multiplier_effective_timestamp,
        new_multiplier=new_multiplier,
    )


def resolve_mint_state(mint: Mint) -> MintState:
    """Pick the one UI-amount regime in effect; interest-bearing wins if both extensions are present"""
    interest_bearing = get_interest_bearing_config(mint)
    if interest_bearing is not None:
        return InterestBearingMint(mint, interest_bearing)
    scaled = get_scaled_ui_amount_config(mint)
    if scaled is not None:
        return ScaledMint(mint, scaled)
    return PlainMint(mint)
