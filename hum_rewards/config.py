from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from solders.pubkey import Pubkey

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_HUM_MINT = "94au8hfP6cSEdnqxqdGgFuh7k3iHyhmNfzSkccopRDCW"
COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")

ENV_KEYS = (
    "SOLANA_RPC_URL",
    "SOLANA_COMMITMENT",
    "SOLANA_RPC_TIMEOUT",
    "TREASURY_KEYPAIR_PATH",
    "SIMULATION_PAYER_KEYPAIR_PATH",
    "HUM_MINT",
    "ADGEM_SECRET",
    "REWARD_FORWARD_URL",
    "PORT",
    "CORS_ORIGIN",
)


class Config(BaseModel):
    rpc_url: str = Field(DEFAULT_RPC_URL, alias="SOLANA_RPC_URL")
    commitment: str = Field("confirmed", alias="SOLANA_COMMITMENT")
    rpc_timeout: float = Field(30, alias="SOLANA_RPC_TIMEOUT")
    treasury_keypair_path: str = Field("./treasury.json", alias="TREASURY_KEYPAIR_PATH")
    simulation_payer_keypair_path: Optional[str] = Field(None, alias="SIMULATION_PAYER_KEYPAIR_PATH")
    hum_mint: str = Field(DEFAULT_HUM_MINT, alias="HUM_MINT")
    adgem_secret: Optional[str] = Field(None, alias="ADGEM_SECRET")
    reward_forward_url: Optional[str] = Field(None, alias="REWARD_FORWARD_URL")
    port: int = Field(5000, alias="PORT")
    cors_origin: str = Field("*", alias="CORS_ORIGIN")

    @field_validator("hum_mint")
    @classmethod
    def _mint_base58(cls, v: str) -> str:
        try:
            Pubkey.from_string(v)
        except ValueError:
            raise ValueError("HUM_MINT must be a base58 public key")
        return v

    @field_validator("commitment")
    @classmethod
    def _known_commitment(cls, v: str) -> str:
        v = v.lower()
        if v not in COMMITMENT_LEVELS:
            raise ValueError(f"SOLANA_COMMITMENT must be one of {', '.join(COMMITMENT_LEVELS)}")
        return v

    @model_validator(mode="after")
    def _separate_simulation_payer(self) -> "Config":
        payer = self.simulation_payer_keypair_path
        if payer and os.path.abspath(payer) == os.path.abspath(self.treasury_keypair_path):
            raise ValueError("SIMULATION_PAYER_KEYPAIR_PATH must not be the treasury keypair")
        return self

    @property
    def mint(self) -> Pubkey:
        return Pubkey.from_string(self.hum_mint)

    @property
    def forward_url(self) -> str:
        return self.reward_forward_url or f"http://localhost:{self.port}/reward"


def load_config() -> Config:
    # .env is loaded by the entry script before this runs
    env = {k: os.getenv(k) for k in ENV_KEYS}
    return Config.model_validate({k: v for k, v in env.items() if v not in (None, "")})
