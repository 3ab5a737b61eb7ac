# src/storefront/runtime/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple

from storefront.crypto.sig import Keypair
from storefront.ledger.pubkey import Pubkey

# Label the default program id is derived from; fixed so every local tool agrees.
DEFAULT_PROGRAM_LABEL = "storefront-program"


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _as_pubkeys(v: Any) -> Tuple[str, ...]:
    if v is None:
        return tuple()
    if isinstance(v, str):
        items = v.split(",")
    elif isinstance(v, (list, tuple)):
        items = [str(x) for x in v]
    else:
        raise ValueError("wipe_authorities must be a list or comma-separated string")
    return tuple(s.strip() for s in items if s.strip())


def default_program_id() -> Pubkey:
    return Keypair.from_label(DEFAULT_PROGRAM_LABEL).pubkey


@dataclass(frozen=True)
class MarketConfig:
    mode: str  # "dev" | "testnet" | "prod"
    db_path: str
    program_id: str
    wipe_authorities: Tuple[str, ...]
    airdrop_enabled: bool
    api_host: str
    api_port: int
    log_level: str

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)

    @property
    def wipe_authority_pubkeys(self) -> Tuple[Pubkey, ...]:
        return tuple(Pubkey.from_string(s) for s in self.wipe_authorities)


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_market_config(cfg: MarketConfig) -> None:
    """Fail-fast validation for operator config."""
    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if str(cfg.log_level).upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")

    # Raises ValueError on malformed keys.
    cfg.program_pubkey
    cfg.wipe_authority_pubkeys

    if mode == "prod" and cfg.airdrop_enabled:
        raise ValueError("airdrop_enabled is not allowed in prod mode")


def default_market_config() -> MarketConfig:
    return MarketConfig(
        mode="dev",
        db_path="./data/storefront.db",
        program_id=str(default_program_id()),
        wipe_authorities=tuple(),
        airdrop_enabled=True,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def read_market_config_file(path: str) -> MarketConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("market config must be a JSON object")
    return _merge(raw)


def _merge(raw: dict) -> MarketConfig:
    d = default_market_config()
    mode = _as_str(raw.get("mode"), d.mode).strip().lower()
    cfg = MarketConfig(
        mode=mode,
        db_path=_as_str(raw.get("db_path"), d.db_path),
        program_id=_as_str(raw.get("program_id"), d.program_id),
        wipe_authorities=_as_pubkeys(raw.get("wipe_authorities")),
        # Faucet defaults off in prod.
        airdrop_enabled=_as_bool(raw.get("airdrop_enabled"), mode != "prod"),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).upper(),
    )
    validate_market_config(cfg)
    return cfg


def load_market_config(*, config_path: Optional[str] = None) -> MarketConfig:
    """File at config_path / STOREFRONT_CONFIG_PATH, else STOREFRONT_* env vars."""
    p = config_path or os.environ.get("STOREFRONT_CONFIG_PATH")
    if p:
        return read_market_config_file(p)

    return _merge(
        {
            "mode": os.environ.get("STOREFRONT_MODE"),
            "db_path": os.environ.get("STOREFRONT_DB_PATH"),
            "program_id": os.environ.get("STOREFRONT_PROGRAM_ID"),
            "wipe_authorities": os.environ.get("STOREFRONT_WIPE_AUTHORITIES"),
            "airdrop_enabled": os.environ.get("STOREFRONT_AIRDROP_ENABLED"),
            "api_host": os.environ.get("STOREFRONT_API_HOST"),
            "api_port": os.environ.get("STOREFRONT_API_PORT"),
            "log_level": os.environ.get("STOREFRONT_LOG_LEVEL"),
        }
    )
