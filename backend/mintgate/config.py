# backend/mintgate/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/mintgate.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///mintgate.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # External ledger (JSON-RPC endpoint + drop contract)
    CHAIN_RPC_URL = os.environ.get("CHAIN_RPC_URL", "http://127.0.0.1:8545")
    CHAIN_ID = int(os.environ.get("CHAIN_ID", "137"))
    CONTRACT_ADDRESS = os.environ.get("CONTRACT_ADDRESS", "")
    CHAIN_READ_TIMEOUT_SECONDS = float(os.environ.get("CHAIN_READ_TIMEOUT_SECONDS", "5"))
    RECEIPT_TIMEOUT_SECONDS = float(os.environ.get("RECEIPT_TIMEOUT_SECONDS", "120"))
    RECEIPT_POLL_SECONDS = float(os.environ.get("RECEIPT_POLL_SECONDS", "2"))

    NATIVE_CURRENCY_SYMBOL = os.environ.get("NATIVE_CURRENCY_SYMBOL", "POL")
    # Wallet cap used in public-sale mode when neither the ledger nor the operator sets one
    DEFAULT_PUBLIC_WALLET_CAP = int(os.environ.get("DEFAULT_PUBLIC_WALLET_CAP", "10"))

    ADMIN_ADDRESSES = _csv_env("ADMIN_ADDRESSES")
    CORS_ORIGINS = set(
        _csv_env("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )
