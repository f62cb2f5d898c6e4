"""Tests for the minted-count ledger."""

import pytest

from mintgate.models import ItemOverride, MintRecord
from mintgate.services import override_service, supply_service
from mintgate.services.supply_service import SupplyError


WALLET = "0x" + "ab" * 20
NATIVE = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"


def test_record_mint_creates_override_and_accumulates(db_session):
    assert supply_service.record_mint(4, 2) == 2
    assert supply_service.record_mint(4, 3) == 5
    assert db_session.query(ItemOverride).filter_by(item_id=4).one().is_unlimited


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
def test_record_mint_rejects_bad_quantity(db_session, quantity):
    with pytest.raises(SupplyError):
        supply_service.record_mint(1, quantity)
    assert supply_service.current_total(1) == 0


def test_record_purchase_writes_record_and_counter_together(db_session):
    record = supply_service.record_purchase(
        item_id=1, wallet=WALLET.upper().replace("0X", "0x"), quantity=2, tx_hash="0xfeed",
        strategy="claim", price_paid=2 * 10**18, currency_address=NATIVE,
    )

    assert record.wallet == WALLET
    assert record.price_paid == str(2 * 10**18)
    assert supply_service.current_total(1) == 2
    assert supply_service.minted_by_wallet(1, WALLET) == 2
    assert supply_service.minted_by_wallet(1, "0x" + "cd" * 20) == 0
    assert [r.tx_hash for r in supply_service.list_mints(1)] == ["0xfeed"]
    assert db_session.query(MintRecord).count() == 1


def test_counter_survives_override_replace(db_session):
    supply_service.record_mint(1, 7)
    override_service.replace_override(1, {"max_supply": 10})
    assert supply_service.supply_status(1)["total_minted"] == 7


def test_adjust_minted_only_moves_up(db_session):
    supply_service.record_mint(1, 5)

    row = supply_service.adjust_minted(1, 8)
    assert row.total_minted == 8
    assert supply_service.adjust_minted(1, 8).total_minted == 8

    with pytest.raises(SupplyError):
        supply_service.adjust_minted(1, 3)
    with pytest.raises(SupplyError):
        supply_service.adjust_minted(1, -1)
    assert supply_service.current_total(1) == 8


def test_supply_status(db_session):
    status = supply_service.supply_status(9)
    assert status["is_unlimited"]
    assert status["remaining_supply"] is None
    assert not status["sold_out"]

    override_service.set_max_supply(9, 10, 2)
    supply_service.record_mint(9, 8)
    status = supply_service.supply_status(9)
    assert status == {
        "item_id": 9,
        "max_supply": 8,
        "total_minted": 8,
        "remaining_supply": 0,
        "sold_out": True,
        "sold_out_message": "Sold out",
        "is_unlimited": False,
    }
