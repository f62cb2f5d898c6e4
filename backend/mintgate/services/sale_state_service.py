"""
Sale state reconciliation.

Merges the ledger's claim condition with the operator's override record into
one EffectiveSaleState per item. `reconcile` is a pure function of its
inputs (record, override, item id, now); `get_effective_state` wires it to
the ledger reader and the override store.

Per-field precedence is declared once in PRECEDENCE. Every resolved field
records which source won in `provenance`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from mintgate.time_utils import to_utc_z, utcnow
from . import chain_service, currency_service, override_service
from .chain_service import ChainRead, OnchainSaleRecord
from .currency_service import CurrencyError, CurrencyInfo
from .override_service import OverrideSnapshot


logger = logging.getLogger(__name__)


STATUS_BEFORE = "before"
STATUS_ACTIVE = "active"
STATUS_AFTER = "after"
STATUS_UNLIMITED = "unlimited"
STATUS_UNCONFIGURED = "unconfigured"

OPEN_STATUSES = {STATUS_ACTIVE, STATUS_UNLIMITED}

DEFAULT_SOLD_OUT_MESSAGE = "Sold out"


class FieldSource:
    ONCHAIN = "onchain"
    OVERRIDE = "override"
    DERIVED = "derived"


# Highest precedence first; fields not listed here are derived
PRECEDENCE: dict[str, tuple[str, ...]] = {
    "name": (FieldSource.OVERRIDE, FieldSource.ONCHAIN),
    "price": (FieldSource.OVERRIDE, FieldSource.ONCHAIN),
    "currency": (FieldSource.OVERRIDE, FieldSource.ONCHAIN),
    "per_wallet_cap": (FieldSource.OVERRIDE, FieldSource.ONCHAIN),
    "supply_cap": (FieldSource.OVERRIDE,),
    "membership_root": (FieldSource.ONCHAIN,),
}


def _pick(field_name: str, candidates: dict[str, object]) -> tuple[object, str | None]:
    for source in PRECEDENCE[field_name]:
        value = candidates.get(source)
        if value is not None:
            return value, source
    return None, None


@dataclass(frozen=True)
class EffectiveSaleState:
    item_id: int
    name: str | None
    effective_price: int | None
    effective_price_display: str | None
    effective_currency: str | None
    effective_currency_address: str | None
    currency_decimals: int | None
    currency_is_native: bool
    sale_status: str
    sale_start: datetime | None
    sale_end: datetime | None
    effective_supply_cap: int | None
    total_minted: int
    remaining_supply: int | None
    sold_out: bool
    sold_out_message: str
    effective_per_wallet_cap: int | None
    membership_root: str | None
    onchain_price: int | None
    price_mismatch: bool = False
    price_source_ambiguous: bool = False
    stale: bool = False
    provenance: dict = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.sale_status in OPEN_STATUSES

    @property
    def price_available(self) -> bool:
        return self.effective_price is not None and self.effective_currency_address is not None

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            # Base units are serialized as strings; uint256 does not fit a JS number
            "effective_price": str(self.effective_price) if self.effective_price is not None else None,
            "effective_price_display": self.effective_price_display,
            "effective_currency": self.effective_currency,
            "effective_currency_address": self.effective_currency_address,
            "currency_decimals": self.currency_decimals,
            "currency_is_native": self.currency_is_native,
            "sale_status": self.sale_status,
            "sale_start": to_utc_z(self.sale_start),
            "sale_end": to_utc_z(self.sale_end),
            "effective_supply_cap": self.effective_supply_cap,
            "total_minted": self.total_minted,
            "remaining_supply": self.remaining_supply,
            "sold_out": self.sold_out,
            "sold_out_message": self.sold_out_message,
            "effective_per_wallet_cap": self.effective_per_wallet_cap,
            "membership_root": self.membership_root,
            "onchain_price": str(self.onchain_price) if self.onchain_price is not None else None,
            "price_mismatch": self.price_mismatch,
            "price_source_ambiguous": self.price_source_ambiguous,
            "stale": self.stale,
            "provenance": dict(self.provenance),
        }


def sale_status(override: OverrideSnapshot, now: datetime) -> str:
    """Window status from the override alone. An enabled period with no dates fails closed."""
    if not override.sales_period_enabled:
        return STATUS_UNCONFIGURED
    if override.is_unlimited:
        return STATUS_UNLIMITED
    start, end = override.sales_start_date, override.sales_end_date
    if start is None and end is None:
        return STATUS_UNCONFIGURED
    if start is not None and now < start:
        return STATUS_BEFORE
    if end is not None and now > end:
        return STATUS_AFTER
    return STATUS_ACTIVE


def _custom_price_units(override: OverrideSnapshot, currency: CurrencyInfo | None) -> int | None:
    if override.custom_price is None or currency is None:
        return None
    try:
        return currency_service.to_base_units(override.custom_price, currency.decimals)
    except CurrencyError:
        logger.warning("Item %s has an unreadable custom price %r", override.item_id, override.custom_price)
        return None


def reconcile(
    onchain: OnchainSaleRecord | None,
    override: OverrideSnapshot | None,
    item_id: int,
    now: datetime,
    *,
    stale: bool = False,
    resolve_currency: Callable[[str | None], CurrencyInfo | None] = currency_service.resolve,
) -> EffectiveSaleState:
    override = override or OverrideSnapshot(item_id=item_id)
    provenance: dict[str, str] = {}

    # Currency
    onchain_currency = resolve_currency(onchain.currency_address) if onchain else None
    custom_currency = resolve_currency(override.custom_currency) if override.custom_currency else None
    if onchain is not None and onchain_currency is None:
        # Ledger token of unknown precision; its price cannot be compared or quoted
        currency, currency_source = None, None
    elif override.custom_currency and custom_currency is None:
        # Operator named a currency that is no longer registered
        currency, currency_source = None, None
    else:
        currency, currency_source = _pick(
            "currency",
            {FieldSource.OVERRIDE: custom_currency, FieldSource.ONCHAIN: onchain_currency},
        )
        if currency is None:
            # No source names a currency; a custom price is in the native unit
            currency, currency_source = resolve_currency(None), FieldSource.DERIVED
    ambiguous = (
        custom_currency is not None
        and onchain_currency is not None
        and not currency_service.same_currency(custom_currency, onchain_currency)
    )

    # Price
    onchain_price = onchain.price if onchain else None
    comparable_onchain = (
        onchain_price
        if onchain_currency is not None and currency_service.same_currency(currency, onchain_currency)
        else None
    )
    price, price_source = _pick(
        "price",
        {
            FieldSource.OVERRIDE: _custom_price_units(override, currency),
            FieldSource.ONCHAIN: comparable_onchain,
        },
    )
    mismatch = False
    if price_source == FieldSource.OVERRIDE and comparable_onchain is not None:
        if comparable_onchain < price:
            price, price_source = comparable_onchain, FieldSource.ONCHAIN
        elif comparable_onchain > price:
            mismatch = True

    # Supply
    supply_cap, supply_source = _pick("supply_cap", {FieldSource.OVERRIDE: override.max_supply})
    if supply_cap is not None:
        supply_cap = max(supply_cap - (override.reserved_supply or 0), 0)
    total_minted = override.total_minted or 0
    remaining = max(supply_cap - total_minted, 0) if supply_cap is not None else None
    sold_out = supply_cap is not None and total_minted >= supply_cap

    per_wallet_cap, per_wallet_source = _pick(
        "per_wallet_cap",
        {
            FieldSource.OVERRIDE: override.max_per_wallet,
            FieldSource.ONCHAIN: onchain.per_wallet_cap if onchain else None,
        },
    )
    root, root_source = _pick(
        "membership_root",
        {FieldSource.ONCHAIN: onchain.membership_root if onchain else None},
    )
    name, name_source = _pick(
        "name",
        {FieldSource.OVERRIDE: override.name, FieldSource.ONCHAIN: onchain.name if onchain else None},
    )

    for key, source in (
        ("name", name_source),
        ("effective_price", price_source),
        ("effective_currency", currency_source),
        ("effective_supply_cap", supply_source),
        ("effective_per_wallet_cap", per_wallet_source),
        ("membership_root", root_source),
    ):
        if source is not None:
            provenance[key] = source
    for key in ("sale_status", "remaining_supply", "sold_out"):
        provenance[key] = FieldSource.DERIVED

    return EffectiveSaleState(
        item_id=item_id,
        name=name,
        effective_price=price,
        effective_price_display=(
            currency_service.from_base_units(price, currency.decimals)
            if price is not None and currency is not None
            else None
        ),
        effective_currency=currency.symbol if currency else None,
        effective_currency_address=currency.address if currency else None,
        currency_decimals=currency.decimals if currency else None,
        currency_is_native=bool(currency and currency.is_native),
        sale_status=sale_status(override, now),
        sale_start=override.sales_start_date,
        sale_end=override.sales_end_date,
        effective_supply_cap=supply_cap,
        total_minted=total_minted,
        remaining_supply=remaining,
        sold_out=sold_out,
        sold_out_message=override.sold_out_message or DEFAULT_SOLD_OUT_MESSAGE,
        effective_per_wallet_cap=per_wallet_cap,
        membership_root=root,
        onchain_price=onchain_price,
        price_mismatch=mismatch,
        price_source_ambiguous=ambiguous,
        stale=stale,
        provenance=provenance,
    )


def evaluate(item_id: int, now: datetime | None = None) -> tuple[EffectiveSaleState, ChainRead]:
    """Reconcile against a fresh ledger read (or the last snapshot when the read fails)."""
    read = chain_service.fetch_sale_record(item_id)
    state = reconcile(
        read.record,
        override_service.get_snapshot(item_id),
        item_id,
        now or utcnow(),
        stale=read.stale,
    )
    return state, read


def get_effective_state(item_id: int, now: datetime | None = None) -> EffectiveSaleState:
    state, _read = evaluate(item_id, now)
    return state


# Upper bound on ledger-enumerated item ids in the catalog
MAX_CATALOG_ITEMS = 500


def catalog_item_ids() -> list[int]:
    """Item ids known to the ledger (0..nextTokenIdToMint) plus any with an override."""
    ids = {row.item_id for row in override_service.list_overrides()}
    try:
        next_id = chain_service.get_reader().next_token_id()
    except chain_service.ChainReadError as exc:
        logger.warning("Could not enumerate ledger items: %s", exc)
    else:
        ids.update(range(min(next_id, MAX_CATALOG_ITEMS)))
    return sorted(ids)
