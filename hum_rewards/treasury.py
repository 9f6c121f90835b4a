from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List

from loguru import logger
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import TreasuryError
from .ledger import RPC_ERRORS, SolanaLedger
from .ui_amount import load_mint_state


def load_keypair(path: str) -> Keypair:
    """Keypair from a JSON array of the 64 secret-key bytes (solana-keygen format)"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            secret = json.load(f)
    except (OSError, ValueError) as exc:
        raise TreasuryError(f"cannot read treasury keypair {path}: {exc}") from exc
    try:
        return Keypair.from_bytes(bytes(secret))
    except (TypeError, ValueError) as exc:
        raise TreasuryError(f"invalid treasury keypair in {path}: {exc}") from exc


@dataclass
class Treasury:
    keypair: Keypair
    ledger: SolanaLedger

    @staticmethod
    def load(path: str, ledger: SolanaLedger) -> "Treasury":
        return Treasury(keypair=load_keypair(path), ledger=ledger)

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    # read-only lookups may be retried; submission never is
    @retry(reraise=True, stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8),
           retry=retry_if_exception_type(RPC_ERRORS))
    def _account_exists(self, address: Pubkey) -> bool:
        return self.ledger.get_account_info(address) is not None

    @retry(reraise=True, stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8),
           retry=retry_if_exception_type(RPC_ERRORS))
    def _latest_blockhash(self) -> Hash:
        return self.ledger.latest_blockhash()

    def transfer_instructions(self, wallet: Pubkey, mint: Pubkey, amount: int) -> List[Instruction]:
        state = load_mint_state(self.ledger, mint)
        program_id = state.mint.owner
        source = get_associated_token_address(self.pubkey, mint, token_program_id=program_id)
        dest = get_associated_token_address(wallet, mint, token_program_id=program_id)

        instructions: List[Instruction] = []
        if not self._account_exists(dest):
            instructions.append(create_associated_token_account(self.pubkey, wallet, mint, token_program_id=program_id))
        instructions.append(transfer_checked(TransferCheckedParams(
            program_id=program_id,
            source=source,
            mint=mint,
            dest=dest,
            owner=self.pubkey,
            amount=amount,
            decimals=state.mint.decimals,
        )))
        return instructions

    def transfer(self, wallet: Pubkey, mint: Pubkey, amount: int) -> str:
        """Send `amount` raw units of `mint` to the wallet's associated token account; returns the signature"""
        if amount <= 0:
            raise TreasuryError(f"transfer amount must be positive, got {amount}")
        instructions = self.transfer_instructions(wallet, mint, amount)
        blockhash = self._latest_blockhash()
        message = Message.new_with_blockhash(instructions, self.pubkey, blockhash)
        txn = Transaction([self.keypair], message, blockhash)
        try:
            signature = self.ledger.send_and_confirm(txn)
        except RPC_ERRORS as exc:
            raise TreasuryError(f"transfer of {amount} to {wallet} failed: {exc}") from exc
        logger.info("sent {} raw units of {} to {} | tx {}", amount, mint, wallet, signature)
        return signature
