"""Tests for per-wallet eligibility decisions."""

from datetime import datetime, timedelta

import pytest

from conftest import make_record
from mintgate.services import allowlist_service, currency_service, eligibility_service, override_service, supply_service
from mintgate.services.abi_codec import AbiError
from mintgate.services.override_service import OverrideSnapshot
from mintgate.services.sale_state_service import reconcile


NOW = datetime(2026, 6, 1, 12, 0, 0)
WALLET = "0x" + "ab" * 20
ROOT = "0x" + "11" * 32


def open_window(item_id=1, **extra):
    payload = {
        "sales_period_enabled": True,
        "is_unlimited": False,
        "sales_start_date": "2026-05-31T12:00:00Z",
        "sales_end_date": "2026-06-02T12:00:00Z",
    }
    payload.update(extra)
    override_service.patch_override(item_id, payload)


def snapshot(**changes):
    return OverrideSnapshot(item_id=1, sales_period_enabled=True, is_unlimited=True).with_changes(**changes)


def test_allowlisted_wallet_at_its_cap_is_denied(db_session, chain):
    chain.records[1] = make_record(membership_root=ROOT)
    chain.claimed[(1, WALLET)] = 3
    allowlist_service.ingest_rows(item_id=1, rows=[{"address": WALLET, "maxMintAmount": 3}])
    open_window()

    decision = eligibility_service.resolve(WALLET, 1, NOW)

    assert decision.is_allowlisted
    assert decision.allowlist_mode == "allowlist"
    assert decision.max_mint_amount == 0
    assert decision.user_minted == 3
    assert not decision.can_mint
    assert decision.denial_reason == "wallet-cap-reached"


def test_allowlisted_wallet_with_room_can_mint(db_session, chain):
    chain.records[1] = make_record(membership_root=ROOT, per_wallet_cap=1)
    chain.claimed[(1, WALLET)] = 1
    allowlist_service.ingest_rows(item_id=1, rows=[{"address": WALLET, "maxMintAmount": 3}])
    open_window()

    decision = eligibility_service.resolve(WALLET.upper().replace("0X", "0x"), 1, NOW)

    # Allowlist amount wins over the phase-wide per-wallet cap
    assert decision.can_mint
    assert decision.max_mint_amount == 2
    assert decision.address == WALLET
    assert decision.price == 10**18


def test_wallet_missing_from_allowlist(db_session, chain):
    chain.records[1] = make_record(membership_root=ROOT)
    open_window()

    decision = eligibility_service.resolve(WALLET, 1, NOW)

    assert not decision.is_allowlisted
    assert decision.max_mint_amount == 0
    assert decision.denial_reason == "not-allowlisted"


def test_public_mode_uses_wallet_cap(db_session, chain):
    chain.records[1] = make_record()
    open_window()

    decision = eligibility_service.resolve(WALLET, 1, NOW)
    assert decision.allowlist_mode == "public"
    assert decision.is_allowlisted
    assert decision.max_mint_amount == 10

    override_service.patch_override(1, {"max_per_wallet": 2})
    chain.claimed[(1, WALLET)] = 1
    decision = eligibility_service.resolve(WALLET, 1, NOW)
    assert decision.max_mint_amount == 1
    assert decision.can_mint


def test_absent_ledger_record_fails_closed(db_session, chain):
    open_window(custom_price="1")

    decision = eligibility_service.resolve(WALLET, 1, NOW)

    assert decision.allowlist_mode == "allowlist"
    assert not decision.can_mint
    assert decision.denial_reason == "not-allowlisted"


def test_stale_read_counts_local_purchases(db_session, chain):
    chain.records[1] = make_record()
    open_window()
    eligibility_service.resolve(WALLET, 1, NOW)

    supply_service.record_purchase(
        item_id=1, wallet=WALLET, quantity=4, tx_hash="0x01",
        strategy="claim", price_paid=4 * 10**18, currency_address=chain.records[1].currency_address,
    )
    chain.fail = True

    decision = eligibility_service.resolve(WALLET, 1, NOW)

    assert decision.stale
    assert decision.user_minted == 4
    assert decision.max_mint_amount == 6
    assert decision.allowlist_mode == "public"


def test_window_closed_and_sold_out(db_session, chain):
    chain.records[1] = make_record()
    open_window(max_supply=5)

    later = NOW + timedelta(days=3)
    assert eligibility_service.resolve(WALLET, 1, later).denial_reason == "sale-not-open"

    supply_service.record_mint(1, 5)
    assert eligibility_service.resolve(WALLET, 1, NOW).denial_reason == "sold-out"
    # Closed window outranks sold out
    assert eligibility_service.resolve(WALLET, 1, later).denial_reason == "sale-not-open"


def test_malformed_address_raises(db_session, chain):
    with pytest.raises(AbiError):
        eligibility_service.resolve("0xabc", 1, NOW)


def test_denial_priority(db_session):
    sold_out_no_price = reconcile(None, snapshot(max_supply=1, total_minted=1), 1, NOW)
    assert eligibility_service.denial_reason(sold_out_no_price, is_allowlisted=False, remaining=0) == "not-allowlisted"
    assert eligibility_service.denial_reason(sold_out_no_price, is_allowlisted=True, remaining=0) == "wallet-cap-reached"
    assert eligibility_service.denial_reason(sold_out_no_price, is_allowlisted=True, remaining=1) == "sold-out"

    no_price = reconcile(None, snapshot(), 1, NOW)
    assert eligibility_service.denial_reason(no_price, is_allowlisted=True, remaining=1) == "price-unavailable"

    closed = reconcile(None, snapshot(sales_period_enabled=False, max_supply=1, total_minted=1), 1, NOW)
    assert eligibility_service.denial_reason(closed, is_allowlisted=True, remaining=1) == "sale-not-open"


def test_ambiguous_price_source_is_denied(db_session):
    currency_service.upsert_currency({"symbol": "USDC", "address": "0x" + "0d" * 20, "decimals": 6})
    state = reconcile(make_record(), snapshot(custom_price="1", custom_currency="USDC"), 1, NOW)

    decision = eligibility_service.decide(WALLET, state, entry_amount=None, user_minted=0, public_wallet_cap=10)

    assert decision.denial_reason == "price-source-ambiguous"


def test_ledger_token_of_unknown_precision_is_not_sold(db_session, chain):
    chain.records[1] = make_record(price=6_000_000, currency_address="0x" + "6d" * 20)
    open_window(custom_price="5")

    decision = eligibility_service.resolve(WALLET, 1, NOW)

    assert not decision.can_mint
    assert decision.denial_reason == "price-unavailable"


def test_more_minted_never_allows_more(db_session):
    state = reconcile(make_record(membership_root=ROOT), snapshot(), 1, NOW)
    previous = None
    for minted in range(6):
        decision = eligibility_service.decide(WALLET, state, entry_amount=3, user_minted=minted, public_wallet_cap=10)
        if previous is not None:
            assert decision.max_mint_amount <= previous.max_mint_amount
            assert decision.can_mint <= previous.can_mint
        previous = decision
    assert previous.max_mint_amount == 0
