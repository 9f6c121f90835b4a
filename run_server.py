from __future__ import annotations

import os
import sys

from dotenv import load_dotenv

load_dotenv()

from loguru import logger
from pydantic import ValidationError

from hum_rewards.config import load_config
from hum_rewards.errors import TreasuryError
from hum_rewards.ledger import SolanaLedger
from hum_rewards.server import create_app
from hum_rewards.treasury import Treasury, load_keypair


def main() -> int:
    logger.remove()
    logger.add(sys.stderr, level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        cfg = load_config()
    except ValidationError as exc:
        logger.error("invalid configuration: {}", exc)
        return 2

    ledger = SolanaLedger.connect(cfg.rpc_url, cfg.commitment, cfg.rpc_timeout)
    try:
        treasury = Treasury.load(cfg.treasury_keypair_path, ledger)
        simulation_payer = None
        if cfg.simulation_payer_keypair_path:
            simulation_payer = load_keypair(cfg.simulation_payer_keypair_path)
    except TreasuryError as exc:
        logger.error("{}", exc)
        return 2
    if simulation_payer is None:
        logger.warning("SIMULATION_PAYER_KEYPAIR_PATH not set; /ui-amount?simulate=1 is disabled")
    elif simulation_payer.pubkey() == treasury.pubkey:
        logger.error("simulation payer {} is the treasury keypair", simulation_payer.pubkey())
        return 2

    app = create_app(cfg, ledger, treasury, simulation_payer)
    logger.info("HUM backend running on http://localhost:{} | treasury {}", cfg.port, treasury.pubkey)
    app.run(host="0.0.0.0", port=cfg.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
