"""HUM reward backend: manual claims, AdGem postbacks and UI amount lookups"""
from __future__ import annotations

import hmac
import math
import time
from typing import Any, Dict, Optional

import requests
from flask import Blueprint, Flask, current_app, jsonify, request
from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import ConversionError, InvalidUiAmount, TreasuryError
from .ui_amount import amount_to_ui_amount, amount_to_ui_amount_for_mint, load_mint_state, ui_amount_to_amount_for_mint

FORWARD_TIMEOUT_SECONDS = 30

api = Blueprint("hum_rewards", __name__)


def _deps() -> Dict[str, Any]:
    return current_app.extensions["hum_rewards"]


def _json_err(message: str, status_code: int = 400, **extra):
    payload = {"error": message}
    if extra:
        payload.update(extra)
    return jsonify(payload), status_code


def _parse_pubkey(value: Any) -> Optional[Pubkey]:
    try:
        return Pubkey.from_string(str(value).strip())
    except ValueError:
        return None


def _secret_matches(expected: str, provided: Optional[str]) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _reward_amount(value: Any) -> float:
    # non-numeric postback amounts count as zero
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0
    return amount if math.isfinite(amount) else 0


@api.route("/reward", methods=["POST"])
def reward():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        data = {}
    wallet = data.get("wallet")
    amount = data.get("amount")
    source_id = data.get("source_id") or data.get("sourceId")
    if not wallet or not amount:
        return _json_err("Missing wallet or amount", 400)

    recipient = _parse_pubkey(wallet)
    if recipient is None:
        return _json_err("Invalid wallet", 400)

    deps = _deps()
    cfg: Config = deps["config"]
    try:
        raw_amount = ui_amount_to_amount_for_mint(deps["ledger"], cfg.mint, str(amount))
    except InvalidUiAmount as exc:
        return _json_err(str(exc), 400)
    except ConversionError as exc:
        logger.error("cannot convert {} HUM for {}: {}", amount, wallet, exc)
        return _json_err(str(exc), 422)
    if raw_amount <= 0:
        return _json_err("Amount too small", 400)

    try:
        signature = deps["treasury"].transfer(recipient, cfg.mint, raw_amount)
    except TreasuryError as exc:
        logger.exception("Transfer error")
        return _json_err(str(exc), 500)

    logger.info("Sent {} HUM to {} | Tx: {} | source: {}", amount, wallet, signature, source_id)
    return jsonify({"success": True, "signature": signature})


@api.route("/adgem-webhook", methods=["POST"])
def adgem_webhook():
    data = request.get_json(silent=True) or request.values.to_dict()
    if not isinstance(data, dict):
        data = {}
    cfg: Config = _deps()["config"]
    secret = request.args.get("secret") or request.headers.get("X-AdGem-Secret")
    logger.info("AdGem webhook received: {}", {k: v for k, v in data.items() if k != "secret"})

    player_wallet = data.get("player_id")
    if not player_wallet:
        logger.warning("No player_id provided in webhook")
        return _json_err("Missing player_id", 400)

    if cfg.adgem_secret and not _secret_matches(cfg.adgem_secret, secret):
        logger.warning("Invalid AdGem secret")
        return _json_err("Unauthorized", 401)

    reward_amount = _reward_amount(data.get("amount"))
    try:
        resp = requests.post(
            cfg.forward_url,
            json={"wallet": player_wallet, "amount": reward_amount},
            timeout=FORWARD_TIMEOUT_SECONDS,
        )
        result = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.exception("Error in AdGem webhook")
        return _json_err(str(exc), 500)

    logger.info("AdGem reward processed for {}: {} HUM", player_wallet, reward_amount)
    return jsonify({"success": True, "result": result})


@api.route("/ui-amount", methods=["GET"])
def ui_amount():
    deps = _deps()
    cfg: Config = deps["config"]
    try:
        amount = int(request.args.get("amount", ""))
    except ValueError:
        return _json_err("amount must be an integer", 400)
    mint = _parse_pubkey(request.args.get("mint") or cfg.hum_mint)
    if mint is None:
        return _json_err("Invalid mint", 400)
    simulate = (request.args.get("simulate") or "").lower() in ("1", "true", "yes", "y")

    ledger = deps["ledger"]
    try:
        if simulate:
            payer = deps["simulation_payer"]
            if payer is None:
                return _json_err("simulation payer not configured", 503)
            program_id = load_mint_state(ledger, mint).mint.owner
            result = amount_to_ui_amount(ledger, payer, mint, amount, program_id)
            if not isinstance(result, str):
                return _json_err("simulation failed", 422, detail=str(result))
        else:
            result = amount_to_ui_amount_for_mint(ledger, mint, amount)
    except ConversionError as exc:
        return _json_err(str(exc), 422)
    except ValueError as exc:
        return _json_err(str(exc), 400)

    return jsonify({"mint": str(mint), "amount": amount, "ui_amount": result})


@api.route("/health", methods=["GET"])
def health():
    deps = _deps()
    return jsonify({
        "status": "ok",
        "time": int(time.time()),
        "mint": deps["config"].hum_mint,
        "treasury": str(deps["treasury"].pubkey),
    })


@api.app_errorhandler(Exception)
def _api_error(exc):
    if isinstance(exc, HTTPException):
        return exc
    logger.exception("Unhandled error")
    return _json_err(str(exc) or "internal_error", 500)


def create_app(cfg: Config, ledger, treasury, simulation_payer: Optional[Keypair] = None) -> Flask:
    if simulation_payer is not None and simulation_payer.pubkey() == treasury.pubkey:
        raise ValueError("the simulation payer must not be the treasury keypair")
    app = Flask(__name__)
    app.extensions["hum_rewards"] = {
        "config": cfg,
        "ledger": ledger,
        "treasury": treasury,
        "simulation_payer": simulation_payer,
    }
    app.register_blueprint(api)

    @app.after_request
    def add_cors_headers(resp):
        resp.headers["Access-Control-Allow-Origin"] = cfg.cors_origin
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type, X-AdGem-Secret"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return resp

    return app
