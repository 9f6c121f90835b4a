from __future__ import annotations

import argparse

from dotenv import load_dotenv

load_dotenv()

from solders.pubkey import Pubkey

from hum_rewards.config import load_config
from hum_rewards.errors import ConversionError, TreasuryError
from hum_rewards.ledger import SolanaLedger
from hum_rewards.treasury import load_keypair
from hum_rewards.ui_amount import (
    amount_to_ui_amount,
    amount_to_ui_amount_for_mint,
    load_mint_state,
    ui_amount_to_amount_for_mint,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Convert between raw and UI token amounts for a mint")
    parser.add_argument("amount", help="raw amount, or a UI amount with --ui")
    parser.add_argument("--mint", help="mint address (default: HUM_MINT)")
    parser.add_argument("--ui", action="store_true", help="treat AMOUNT as a UI amount and print the raw amount")
    parser.add_argument("--simulate", action="store_true",
                        help="ask the token program through a simulated transaction (SIMULATION_PAYER_KEYPAIR_PATH signs, nothing is sent)")
    args = parser.parse_args()

    cfg = load_config()
    try:
        mint = Pubkey.from_string(args.mint) if args.mint else cfg.mint
    except ValueError:
        print(f"❌ Invalid mint: {args.mint}")
        return 2
    ledger = SolanaLedger.connect(cfg.rpc_url, cfg.commitment, cfg.rpc_timeout)

    try:
        if args.ui:
            print(ui_amount_to_amount_for_mint(ledger, mint, args.amount))
            return 0
        amount = int(args.amount)
        if args.simulate:
            if not cfg.simulation_payer_keypair_path:
                print("❌ Set SIMULATION_PAYER_KEYPAIR_PATH to a funded keypair other than the treasury")
                return 2
            payer = load_keypair(cfg.simulation_payer_keypair_path)
            program_id = load_mint_state(ledger, mint).mint.owner
            result = amount_to_ui_amount(ledger, payer, mint, amount, program_id)
            if not isinstance(result, str):
                print("❌ simulation failed:", result)
                return 1
            print(result)
            return 0
        print(amount_to_ui_amount_for_mint(ledger, mint, amount))
        return 0
    except (ConversionError, TreasuryError, ValueError) as exc:
        print("❌", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
