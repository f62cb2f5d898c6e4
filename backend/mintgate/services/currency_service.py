# Overview: Service-layer operations for payment currencies; resolves symbols, addresses and precision.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Currency
from . import chain_service
from .abi_codec import AbiError, ZERO_ADDRESS, normalize_address
from .chain_service import ChainReadError


logger = logging.getLogger(__name__)


NATIVE_PLACEHOLDER = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
NATIVE_ADDRESSES = {ZERO_ADDRESS, NATIVE_PLACEHOLDER}
NATIVE_DECIMALS = 18
MAX_DECIMALS = 36


class CurrencyError(ValueError):
    """Raised for invalid currency definitions or unknown currencies."""


class CurrencyNotFoundError(CurrencyError):
    pass


@dataclass(frozen=True)
class CurrencyInfo:
    symbol: str
    address: str
    decimals: int
    is_native: bool

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "address": self.address,
            "decimals": self.decimals,
            "is_native": self.is_native,
        }


def _native_info() -> CurrencyInfo:
    return CurrencyInfo(
        symbol=current_app.config.get("NATIVE_CURRENCY_SYMBOL", "POL"),
        address=NATIVE_PLACEHOLDER,
        decimals=NATIVE_DECIMALS,
        is_native=True,
    )


def is_native_address(address: str | None) -> bool:
    if not address:
        return True
    return address.lower() in NATIVE_ADDRESSES


def _from_row(row: Currency) -> CurrencyInfo:
    if row.is_native:
        return CurrencyInfo(symbol=row.symbol, address=NATIVE_PLACEHOLDER, decimals=row.decimals, is_native=True)
    return CurrencyInfo(symbol=row.symbol, address=row.address, decimals=row.decimals, is_native=False)


def resolve(currency: str | None) -> CurrencyInfo | None:
    """
    Resolve a symbol or address into a CurrencyInfo.

    - None / native placeholders -> native unit
    - known symbol (case-insensitive) or address -> registered currency
    - unknown but well-formed address -> precision read from the token's
      decimals() and registered; None when the read fails
    - unknown symbol -> None
    """
    if currency is None or is_native_address(currency):
        return _native_info()

    value = currency.strip()
    if value.lower() == _native_info().symbol.lower():
        return _native_info()

    try:
        address = normalize_address(value) if value.lower().startswith("0x") else None
    except AbiError:
        address = None

    if address:
        row = db.session.query(Currency).filter_by(address=address).first()
        if row:
            return _from_row(row)
        return _register_from_ledger(address)

    row = (
        db.session.query(Currency)
        .filter(db.func.lower(Currency.symbol) == value.lower())
        .first()
    )
    return _from_row(row) if row else None


def _ledger_symbol(address: str) -> str:
    return f"{address[:8]}..{address[-6:]}"


def _register_from_ledger(address: str) -> CurrencyInfo | None:
    """Read an unregistered token's precision from the ledger and remember it as a Currency row."""
    try:
        decimals = chain_service.get_reader().decimals(address)
    except ChainReadError as exc:
        logger.warning("Could not read decimals() of token %s: %s", address, exc)
        return None
    if not 0 <= decimals <= MAX_DECIMALS:
        logger.warning("Token %s reports unusable decimals %s", address, decimals)
        return None

    row = Currency(
        symbol=_ledger_symbol(address),
        address=address,
        decimals=decimals,
        is_native=False,
        description="Registered from the token's decimals()",
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        # Registered concurrently, or the short symbol is taken
        db.session.rollback()
        row = db.session.query(Currency).filter_by(address=address).first()
        if row is None:
            return CurrencyInfo(symbol=address, address=address, decimals=decimals, is_native=False)
    logger.info("Registered token %s with %s decimals", address, row.decimals)
    return _from_row(row)


def same_currency(a: CurrencyInfo | None, b: CurrencyInfo | None) -> bool:
    if a is None or b is None:
        return False
    if a.is_native and b.is_native:
        return True
    return a.address.lower() == b.address.lower()


def to_base_units(amount: str | Decimal | int, decimals: int) -> int:
    """Whole-token amount -> integer base units (truncating extra precision)."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise CurrencyError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise CurrencyError("Amount must be non-negative")
    scaled = (value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(amount: int, decimals: int) -> str:
    """Integer base units -> plain decimal string without trailing zeros."""
    value = Decimal(int(amount)) / (Decimal(10) ** decimals)
    text = format(value.normalize(), "f")
    return text


def list_currencies() -> list[dict]:
    rows = db.session.query(Currency).order_by(Currency.symbol.asc()).all()
    native = _native_info()
    result = [r.to_dict() for r in rows]
    if not any(r.is_native for r in rows):
        result.insert(0, {
            "symbol": native.symbol,
            "name": native.symbol,
            "address": ZERO_ADDRESS,
            "decimals": native.decimals,
            "is_native": True,
            "chain_id": current_app.config.get("CHAIN_ID"),
            "description": "Native currency",
        })
    return result


def upsert_currency(payload: dict) -> tuple[Currency, bool]:
    """Add or update a currency matched by symbol or address. Returns (row, created)."""
    symbol = (payload.get("symbol") or "").strip()
    raw_address = payload.get("address")
    decimals = payload.get("decimals")
    if not symbol or not raw_address or decimals is None:
        raise CurrencyError("symbol, address and decimals are required")
    try:
        address = normalize_address(raw_address)
    except AbiError as exc:
        raise CurrencyError(str(exc))
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= MAX_DECIMALS:
        raise CurrencyError(f"decimals must be an integer between 0 and {MAX_DECIMALS}")

    row = (
        db.session.query(Currency)
        .filter(db.or_(Currency.symbol == symbol, Currency.address == address))
        .first()
    )
    created = row is None
    if created:
        row = Currency(symbol=symbol, address=address)
        db.session.add(row)

    row.symbol = symbol
    row.address = address
    row.decimals = decimals
    row.is_native = bool(payload.get("is_native", address in NATIVE_ADDRESSES))
    row.name = payload.get("name", row.name)
    row.chain_id = payload.get("chain_id", row.chain_id)
    row.description = payload.get("description", row.description)
    db.session.commit()
    return row, created


def delete_currency(symbol: str) -> None:
    row = db.session.query(Currency).filter_by(symbol=symbol).first()
    if not row:
        raise CurrencyNotFoundError("Currency not found")
    if row.is_native:
        raise CurrencyError("Cannot delete native currency")
    db.session.delete(row)
    db.session.commit()
