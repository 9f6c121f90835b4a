from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

from solders.pubkey import Pubkey

from hum_rewards.config import load_config
from hum_rewards.errors import ConversionError, TreasuryError
from hum_rewards.ledger import SolanaLedger
from hum_rewards.treasury import Treasury
from hum_rewards.ui_amount import ui_amount_to_amount_for_mint


def main() -> int:
    recipient = os.getenv("RECIPIENT")
    amount = os.getenv("AMOUNT_HUM", "0")
    if not recipient:
        print("❌ Set RECIPIENT and AMOUNT_HUM")
        return 2
    try:
        wallet = Pubkey.from_string(recipient)
    except ValueError:
        print(f"❌ RECIPIENT is not a valid public key: {recipient}")
        return 2

    cfg = load_config()
    ledger = SolanaLedger.connect(cfg.rpc_url, cfg.commitment, cfg.rpc_timeout)
    try:
        units = ui_amount_to_amount_for_mint(ledger, cfg.mint, amount)
    except ConversionError as exc:
        print(f"❌ Cannot convert AMOUNT_HUM={amount}: {exc}")
        return 2
    if units <= 0:
        print("❌ AMOUNT_HUM must be positive")
        return 2

    try:
        treasury = Treasury.load(cfg.treasury_keypair_path, ledger)
        tx = treasury.transfer(wallet, cfg.mint, units)
    except TreasuryError as exc:
        print("❌ reward transfer failed:", exc)
        return 1
    print("units:", units)
    print("tx:", tx)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
