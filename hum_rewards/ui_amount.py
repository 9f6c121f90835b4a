"""Mint-aware UI amount conversion.

`amount_to_ui_amount_for_mint` and `ui_amount_to_amount_for_mint` replicate
the token program's conversion locally: read the mint, resolve its extension,
fetch the clock only when an extension needs it. `amount_to_ui_amount` asks
the program itself by simulating an `AmountToUiAmount` instruction.
"""
from __future__ import annotations

import struct
from typing import Any, Union

from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from .amounts import (
    UiAmountInput,
    amount_to_ui_amount_for_interest_bearing_mint,
    amount_to_ui_amount_for_plain_mint,
    amount_to_ui_amount_for_scaled_ui_amount_mint,
    ui_amount_to_amount_for_interest_bearing_mint,
    ui_amount_to_amount_for_plain_mint,
    ui_amount_to_amount_for_scaled_ui_amount_mint,
)
from .errors import InvalidMintOwner
from .ledger import Ledger, get_sysvar_clock_timestamp
from .mint_state import InterestBearingMint, MintState, PlainMint, resolve_mint_state, unpack_mint

AMOUNT_TO_UI_AMOUNT_INSTRUCTION = 23

_AMOUNT_TO_UI_AMOUNT_DATA = struct.Struct("<BQ")


def load_mint_state(ledger: Ledger, mint: Pubkey) -> MintState:
    info = ledger.get_account_info(mint)
    if info is None:
        raise InvalidMintOwner(f"mint {mint} not found")
    return resolve_mint_state(unpack_mint(mint, info.owner, info.data))


def amount_to_ui_amount_for_mint(ledger: Ledger, mint: Pubkey, amount: int) -> str:
    state = load_mint_state(ledger, mint)
    decimals = state.mint.decimals
    if isinstance(state, PlainMint):
        return amount_to_ui_amount_for_plain_mint(amount, decimals)

    timestamp = get_sysvar_clock_timestamp(ledger)
    if isinstance(state, InterestBearingMint):
        config = state.config
        return amount_to_ui_amount_for_interest_bearing_mint(
            amount,
            decimals,
            timestamp,
            config.last_update_timestamp,
            config.initialization_timestamp,
            config.pre_update_average_rate,
            config.current_rate,
        )
    return amount_to_ui_amount_for_scaled_ui_amount_mint(amount, decimals, state.config.multiplier_at(timestamp))


def ui_amount_to_amount_for_mint(ledger: Ledger, mint: Pubkey, ui_amount: UiAmountInput) -> int:
    state = load_mint_state(ledger, mint)
    decimals = state.mint.decimals
    if isinstance(state, PlainMint):
        return ui_amount_to_amount_for_plain_mint(ui_amount, decimals)

    timestamp = get_sysvar_clock_timestamp(ledger)
    if isinstance(state, InterestBearingMint):
        config = state.config
        return ui_amount_to_amount_for_interest_bearing_mint(
            ui_amount,
            decimals,
            timestamp,
            config.last_update_timestamp,
            config.initialization_timestamp,
            config.pre_update_average_rate,
            config.current_rate,
        )
    return ui_amount_to_amount_for_scaled_ui_amount_mint(ui_amount, decimals, state.config.multiplier_at(timestamp))


def create_amount_to_ui_amount_instruction(mint: Pubkey, amount: int, program_id: Pubkey = TOKEN_PROGRAM_ID) -> Instruction:
    try:
        data = _AMOUNT_TO_UI_AMOUNT_DATA.pack(AMOUNT_TO_UI_AMOUNT_INSTRUCTION, amount)
    except struct.error as exc:
        raise ValueError(f"amount {amount!r} does not fit in a u64") from exc
    return Instruction(program_id, data, [AccountMeta(mint, is_signer=False, is_writable=False)])


def amount_to_ui_amount(
    ledger: Ledger,
    payer: Keypair,
    mint: Pubkey,
    amount: int,
    program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Union[str, Any]:
    """UI amount as computed by the token program in a simulated transaction.

    `payer` only signs the simulation; nothing is submitted. Returns the
    program's return data as a string, or the simulation's `err` (possibly
    None) when there is no return data.
    """
    instruction = create_amount_to_ui_amount_instruction(mint, amount, program_id)
    result = ledger.simulate_transaction(instruction, payer)
    if result.return_data is not None:
        return result.return_data.decode("utf-8")
    return result.err
