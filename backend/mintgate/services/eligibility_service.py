"""
Eligibility resolution.

Answers "may this wallet mint this item, how many, and at what price" from
the Effective Sale State, the item's allowlist and the wallet's mint history.
Configuration problems surface as a structured denial reason, never as an
exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from .abi_codec import ZERO_ROOT, normalize_address
from . import allowlist_service, chain_service, sale_state_service, supply_service
from .sale_state_service import EffectiveSaleState


MODE_ALLOWLIST = "allowlist"
MODE_PUBLIC = "public"

# Highest priority first
DENY_NOT_ALLOWLISTED = "not-allowlisted"
DENY_WALLET_CAP_REACHED = "wallet-cap-reached"
DENY_SALE_NOT_OPEN = "sale-not-open"
DENY_SOLD_OUT = "sold-out"
DENY_PRICE_UNAVAILABLE = "price-unavailable"
DENY_PRICE_SOURCE_AMBIGUOUS = "price-source-ambiguous"


@dataclass(frozen=True)
class MintDecision:
    address: str
    item_id: int
    is_allowlisted: bool
    allowlist_mode: str
    max_mint_amount: int
    user_minted: int
    price: int | None
    price_display: str | None
    currency: str | None
    currency_address: str | None
    can_mint: bool
    denial_reason: str | None
    price_mismatch: bool
    stale: bool

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "item_id": self.item_id,
            "is_allowlisted": self.is_allowlisted,
            "allowlist_mode": self.allowlist_mode,
            "max_mint_amount": self.max_mint_amount,
            "user_minted": self.user_minted,
            "price": str(self.price) if self.price is not None else None,
            "price_display": self.price_display,
            "currency": self.currency,
            "currency_address": self.currency_address,
            "can_mint": self.can_mint,
            "denial_reason": self.denial_reason,
            "price_mismatch": self.price_mismatch,
            "stale": self.stale,
        }


def allowlist_mode(state: EffectiveSaleState) -> str:
    # Only an explicit zero root opens the sale; a missing root fails closed
    if state.membership_root is not None and state.membership_root.lower() == ZERO_ROOT:
        return MODE_PUBLIC
    return MODE_ALLOWLIST


def denial_reason(state: EffectiveSaleState, *, is_allowlisted: bool, remaining: int) -> str | None:
    if not is_allowlisted:
        return DENY_NOT_ALLOWLISTED
    if remaining <= 0:
        return DENY_WALLET_CAP_REACHED
    if not state.is_open:
        return DENY_SALE_NOT_OPEN
    if state.sold_out:
        return DENY_SOLD_OUT
    if not state.price_available:
        return DENY_PRICE_UNAVAILABLE
    if state.price_source_ambiguous:
        return DENY_PRICE_SOURCE_AMBIGUOUS
    return None


def decide(
    address: str,
    state: EffectiveSaleState,
    *,
    entry_amount: int | None,
    user_minted: int,
    public_wallet_cap: int,
) -> MintDecision:
    """Pure decision from already-gathered inputs."""
    mode = allowlist_mode(state)
    if mode == MODE_PUBLIC:
        is_allowlisted = True
        cap = state.effective_per_wallet_cap
        if cap is None:
            cap = public_wallet_cap
    else:
        is_allowlisted = entry_amount is not None
        cap = entry_amount or 0

    remaining = max(cap - user_minted, 0)
    reason = denial_reason(state, is_allowlisted=is_allowlisted, remaining=remaining)
    return MintDecision(
        address=address,
        item_id=state.item_id,
        is_allowlisted=is_allowlisted,
        allowlist_mode=mode,
        max_mint_amount=remaining,
        user_minted=user_minted,
        price=state.effective_price,
        price_display=state.effective_price_display,
        currency=state.effective_currency,
        currency_address=state.effective_currency_address,
        can_mint=reason is None,
        denial_reason=reason,
        price_mismatch=state.price_mismatch,
        stale=state.stale,
    )


def user_minted(item_id: int, address: str, read: chain_service.ChainRead) -> int:
    """Ledger claimed-by-wallet count, or the local purchase records when the ledger is unavailable."""
    if not read.stale:
        claimed = chain_service.wallet_claimed(item_id, address, read.record)
        if claimed is not None:
            return claimed
    return supply_service.minted_by_wallet(item_id, address)


def evaluate(address: str, item_id: int, now: datetime | None = None) -> tuple[MintDecision, EffectiveSaleState]:
    """Raises AbiError (a ValueError) for a malformed address."""
    normalized = normalize_address(address)
    state, read = sale_state_service.evaluate(item_id, now)
    entry = allowlist_service.get_entry(item_id, normalized)
    decision = decide(
        normalized,
        state,
        entry_amount=entry.max_mint_amount if entry else None,
        user_minted=user_minted(item_id, normalized, read),
        public_wallet_cap=current_app.config.get("DEFAULT_PUBLIC_WALLET_CAP", 10),
    )
    return decision, state


def resolve(address: str, item_id: int, now: datetime | None = None) -> MintDecision:
    decision, _state = evaluate(address, item_id, now)
    return decision
