from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from .errors import ClockUnavailable, SimulationFailure

SYSVAR_CLOCK_PUBKEY = Pubkey.from_string("SysvarC1ock11111111111111111111111111111111")

RPC_ERRORS = (RPCException, SolanaRpcException)


@dataclass
class AccountInfo:
    owner: Pubkey
    data: bytes
    lamports: int = 0


@dataclass
class SimulationResult:
    return_data: Optional[bytes]
    err: Any = None
    logs: List[str] = field(default_factory=list)


class Ledger(Protocol):
    """What the conversion engine reads from the chain"""

    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        ...

    def get_parsed_account_info(self, address: Pubkey) -> Optional[Dict[str, Any]]:
        ...

    def simulate_transaction(self, instruction: Instruction, payer: Keypair) -> SimulationResult:
        ...


@dataclass
class SolanaLedger:
    client: Client
    commitment: Commitment

    @staticmethod
    def connect(rpc_url: str, commitment: str = "confirmed", timeout: float = 30) -> "SolanaLedger":
        level = Commitment(commitment)
        return SolanaLedger(client=Client(rpc_url, commitment=level, timeout=timeout), commitment=level)

    def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        value = self.client.get_account_info(address).value
        if value is None:
            return None
        return AccountInfo(owner=value.owner, data=bytes(value.data), lamports=value.lamports)

    def get_parsed_account_info(self, address: Pubkey) -> Optional[Dict[str, Any]]:
        value = self.client.get_account_info_json_parsed(address).value
        if value is None:
            return None
        data = value.data
        parsed = getattr(data, "parsed", None)
        if parsed is None:
            # program has no JSON parser; hand back the raw bytes
            return {"owner": str(value.owner), "data": bytes(data)}
        if isinstance(parsed, str):
            parsed = json.loads(parsed)
        return {"owner": str(value.owner), "data": {"program": data.program, "parsed": parsed}}

    def latest_blockhash(self) -> Hash:
        return self.client.get_latest_blockhash(self.commitment).value.blockhash

    def simulate_transaction(self, instruction: Instruction, payer: Keypair) -> SimulationResult:
        try:
            blockhash = self.latest_blockhash()
            message = Message.new_with_blockhash([instruction], payer.pubkey(), blockhash)
            txn = Transaction([payer], message, blockhash)
            value = self.client.simulate_transaction(txn).value
        except RPC_ERRORS as exc:
            raise SimulationFailure(exc) from exc
        return_data = value.return_data
        return SimulationResult(
            return_data=bytes(return_data.data) if return_data is not None else None,
            err=value.err,
            logs=list(value.logs or []),
        )

    def send_and_confirm(self, txn: Transaction) -> str:
        opts = TxOpts(preflight_commitment=self.commitment)
        signature = self.client.send_raw_transaction(bytes(txn), opts=opts).value
        self.client.confirm_transaction(signature, self.commitment)
        return str(signature)


def get_sysvar_clock_timestamp(ledger: Ledger) -> int:
    """Current unix timestamp from the clock sysvar; fatal to the caller when missing or unparsable"""
    try:
        info = ledger.get_parsed_account_info(SYSVAR_CLOCK_PUBKEY)
    except RPC_ERRORS as exc:
        raise ClockUnavailable("Failed to fetch sysvar clock") from exc
    if not info:
        raise ClockUnavailable("Failed to fetch sysvar clock")
    try:
        timestamp = info["data"]["parsed"]["info"]["unixTimestamp"]
    except (KeyError, TypeError) as exc:
        raise ClockUnavailable("Failed to parse sysvar clock") from exc
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise ClockUnavailable("Failed to parse sysvar clock")
    return timestamp
