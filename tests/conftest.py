from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from hum_rewards.config import ENV_KEYS, Config  # noqa: E402
from hum_rewards.server import create_app  # noqa: E402
from solders.keypair import Keypair  # noqa: E402
from spl.token.constants import TOKEN_PROGRAM_ID  # noqa: E402

from ledger_fakes import FakeLedger, FakeTreasury, mint_data  # noqa: E402

ADGEM_SECRET = "le9nnnl93cah313bbnec987a"
FORWARD_URL = "http://rewards.test/reward"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger(clock=1_700_000_000)


@pytest.fixture
def hum_mint(ledger: FakeLedger):
    return ledger.add_mint(mint_data(decimals=6, supply=10**15), owner=TOKEN_PROGRAM_ID)


@pytest.fixture
def treasury() -> FakeTreasury:
    return FakeTreasury()


@pytest.fixture
def simulation_payer() -> Keypair:
    return Keypair()


@pytest.fixture
def config(hum_mint) -> Config:
    return Config.model_validate({
        "HUM_MINT": str(hum_mint),
        "ADGEM_SECRET": ADGEM_SECRET,
        "REWARD_FORWARD_URL": FORWARD_URL,
    })


@pytest.fixture
def client(config: Config, ledger: FakeLedger, treasury: FakeTreasury, simulation_payer: Keypair):
    app = create_app(config, ledger, treasury, simulation_payer)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
