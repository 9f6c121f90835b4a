from __future__ import annotations

import struct

import pytest
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from hum_rewards.amounts import SECONDS_PER_YEAR
from hum_rewards.errors import ArithmeticOverflow, ClockUnavailable, InvalidMintOwner
from hum_rewards.ledger import SYSVAR_CLOCK_PUBKEY, SimulationResult, get_sysvar_clock_timestamp
from hum_rewards.ui_amount import (
    AMOUNT_TO_UI_AMOUNT_INSTRUCTION,
    amount_to_ui_amount,
    amount_to_ui_amount_for_mint,
    create_amount_to_ui_amount_instruction,
    ui_amount_to_amount_for_mint,
)

from ledger_fakes import (
    SYSTEM_PROGRAM_ID,
    FakeLedger,
    clock_record,
    interest_bearing_extension,
    mint_data,
    scaled_ui_amount_extension,
)

ONE_YEAR = round(SECONDS_PER_YEAR)


def test_plain_mint_skips_the_clock():
    ledger = FakeLedger()
    mint = ledger.add_mint(mint_data(decimals=6), owner=TOKEN_PROGRAM_ID)

    assert amount_to_ui_amount_for_mint(ledger, mint, 1_500_000) == "1.5"
    assert ui_amount_to_amount_for_mint(ledger, mint, "1.5") == 1_500_000
    assert "get_parsed_account_info" not in ledger.calls


def test_token_2022_mint_without_extensions_is_plain():
    ledger = FakeLedger()
    mint = ledger.add_mint(mint_data(decimals=2, extensions=[(3, bytes(8))]))
    assert amount_to_ui_amount_for_mint(ledger, mint, 250) == "2.5"


def test_interest_bearing_mint_uses_the_clock():
    ledger = FakeLedger(clock=ONE_YEAR)
    mint = ledger.add_mint(mint_data(decimals=6, extensions=[interest_bearing_extension(current_rate=500)]))

    assert amount_to_ui_amount_for_mint(ledger, mint, 1_000_000) == "1.051271"
    assert abs(ui_amount_to_amount_for_mint(ledger, mint, "1.051271") - 1_000_000) <= 1
    assert ledger.calls.count("get_parsed_account_info") == 2


def test_interest_bearing_overflow_is_not_clamped():
    ledger = FakeLedger(clock=10**15)
    mint = ledger.add_mint(mint_data(decimals=0, extensions=[interest_bearing_extension(current_rate=32767)]))
    with pytest.raises(ArithmeticOverflow):
        amount_to_ui_amount_for_mint(ledger, mint, 1)


@pytest.mark.parametrize("clock, expected", [(999, "2"), (1000, "3")])
def test_scaled_mint_switches_multiplier(clock, expected):
    ledger = FakeLedger(clock=clock)
    mint = ledger.add_mint(mint_data(decimals=6, extensions=[scaled_ui_amount_extension(2.0, 1000, 3.0)]))
    assert amount_to_ui_amount_for_mint(ledger, mint, 1_000_000) == expected


def test_scaled_mint_inverse():
    ledger = FakeLedger(clock=1000)
    mint = ledger.add_mint(mint_data(decimals=6, extensions=[scaled_ui_amount_extension(2.0, 1000, 3.0)]))
    assert ui_amount_to_amount_for_mint(ledger, mint, "3") == 1_000_000


def test_foreign_owner_is_rejected():
    ledger = FakeLedger(clock=0)
    mint = ledger.add_mint(mint_data(), owner=SYSTEM_PROGRAM_ID)
    with pytest.raises(InvalidMintOwner):
        amount_to_ui_amount_for_mint(ledger, mint, 1)
    with pytest.raises(InvalidMintOwner):
        ui_amount_to_amount_for_mint(ledger, mint, "1")


def test_missing_mint_account():
    ledger = FakeLedger(clock=0)
    with pytest.raises(InvalidMintOwner):
        amount_to_ui_amount_for_mint(ledger, Keypair().pubkey(), 1)


def test_missing_clock_is_fatal():
    ledger = FakeLedger(clock=None)
    mint = ledger.add_mint(mint_data(extensions=[scaled_ui_amount_extension(2.0)]))
    with pytest.raises(ClockUnavailable, match="Failed to fetch sysvar clock"):
        amount_to_ui_amount_for_mint(ledger, mint, 1)


@pytest.mark.parametrize(
    "record",
    [
        {"owner": "x", "data": b"\x00" * 40},
        {"owner": "x", "data": {"program": "sysvar", "parsed": {"type": "clock"}}},
        clock_record("1700000000"),
        clock_record(None),
    ],
)
def test_unparsable_clock_is_fatal(record):
    ledger = FakeLedger()
    ledger.clock_record = record
    with pytest.raises(ClockUnavailable, match="Failed to parse sysvar clock"):
        get_sysvar_clock_timestamp(ledger)


def test_clock_timestamp():
    assert get_sysvar_clock_timestamp(FakeLedger(clock=1_700_000_000)) == 1_700_000_000
    assert str(SYSVAR_CLOCK_PUBKEY) == "SysvarC1ock11111111111111111111111111111111"


def test_amount_to_ui_amount_instruction_layout():
    mint = Keypair().pubkey()
    ix = create_amount_to_ui_amount_instruction(mint, 1_000_000, TOKEN_2022_PROGRAM_ID)

    assert ix.program_id == TOKEN_2022_PROGRAM_ID
    assert bytes(ix.data) == struct.pack("<BQ", AMOUNT_TO_UI_AMOUNT_INSTRUCTION, 1_000_000)
    assert bytes(ix.data)[0] == 23
    assert len(ix.accounts) == 1
    meta = ix.accounts[0]
    assert meta.pubkey == mint
    assert not meta.is_signer
    assert not meta.is_writable


def test_instruction_defaults_to_classic_token_program():
    ix = create_amount_to_ui_amount_instruction(Keypair().pubkey(), 0)
    assert ix.program_id == TOKEN_PROGRAM_ID


@pytest.mark.parametrize("amount", [-1, 2**64])
def test_instruction_amount_must_fit_u64(amount):
    with pytest.raises(ValueError):
        create_amount_to_ui_amount_instruction(Keypair().pubkey(), amount)


def test_simulated_return_data_is_decoded():
    ledger = FakeLedger()
    ledger.simulation = SimulationResult(return_data=b"1.051271")
    payer = Keypair()
    mint = Keypair().pubkey()

    assert amount_to_ui_amount(ledger, payer, mint, 1_000_000, TOKEN_2022_PROGRAM_ID) == "1.051271"
    instruction, simulated_payer = ledger.simulated[0]
    assert simulated_payer is payer
    assert instruction.program_id == TOKEN_2022_PROGRAM_ID


def test_simulation_error_is_returned():
    ledger = FakeLedger()
    err = {"InstructionError": [0, "InvalidAccountData"]}
    ledger.simulation = SimulationResult(return_data=None, err=err)
    assert amount_to_ui_amount(ledger, Keypair(), Keypair().pubkey(), 1) == err


def test_simulation_without_return_data_or_error():
    ledger = FakeLedger()
    assert amount_to_ui_amount(ledger, Keypair(), Keypair().pubkey(), 1) is None


def test_clock_rpc_failure_is_clock_unavailable():
    ledger = FakeLedger()
    ledger.clock_error = RPCException({"code": -32005, "message": "node is behind"})
    with pytest.raises(ClockUnavailable, match="Failed to fetch sysvar clock") as exc_info:
        get_sysvar_clock_timestamp(ledger)
    assert isinstance(exc_info.value.__cause__, RPCException)


def test_clock_rpc_failure_during_conversion():
    ledger = FakeLedger()
    ledger.clock_error = RPCException({"code": -32005, "message": "node is behind"})
    mint = ledger.add_mint(mint_data(extensions=[interest_bearing_extension(current_rate=5)]))
    with pytest.raises(ClockUnavailable):
        ui_amount_to_amount_for_mint(ledger, mint, "1")
