# Overview: Service-layer operations for the supply ledger; minted counters and purchase records.

from __future__ import annotations

import logging

from sqlalchemy import update

from ..extensions import db
from ..models import ItemOverride, MintRecord
from mintgate.time_utils import utcnow
from . import override_service, sale_state_service
from .concurrency import commit_with_retry, lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


class SupplyError(ValueError):
    """Raised for invalid counter operations."""


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise SupplyError("quantity must be a positive integer")
    return quantity


def _increment(item_id: int, quantity: int) -> None:
    """Row-level atomic increment; never read-modify-write in Python."""
    override_service.get_or_create(item_id)
    db.session.execute(
        update(ItemOverride)
        .where(ItemOverride.item_id == item_id)
        .values(total_minted=ItemOverride.total_minted + quantity)
    )


def current_total(item_id: int) -> int:
    total = (
        db.session.query(ItemOverride.total_minted)
        .filter(ItemOverride.item_id == item_id)
        .scalar()
    )
    return int(total or 0)


def record_mint(item_id: int, quantity: int) -> int:
    """Add a confirmed quantity to the item's minted counter. Returns the new total."""
    quantity = _check_quantity(quantity)

    def _op():
        _increment(item_id, quantity)
        db.session.commit()

    run_with_retry(_op)
    total = current_total(item_id)
    logger.info("Item %s minted +%s (total %s)", item_id, quantity, total)
    return total


def record_purchase(
    *,
    item_id: int,
    wallet: str,
    quantity: int,
    tx_hash: str,
    strategy: str,
    price_paid: int,
    currency_address: str,
) -> MintRecord:
    """Counter increment and purchase record, committed together."""
    quantity = _check_quantity(quantity)

    def _op():
        _increment(item_id, quantity)
        record = MintRecord(
            item_id=item_id,
            wallet=wallet.lower(),
            quantity=quantity,
            tx_hash=tx_hash,
            strategy=strategy,
            price_paid=str(price_paid),
            currency_address=currency_address.lower(),
        )
        db.session.add(record)
        db.session.commit()
        return record

    record = run_with_retry(_op)
    logger.info(
        "Recorded purchase %s: item %s x%s for %s via %s",
        tx_hash, item_id, quantity, record.wallet, strategy,
    )
    return record


def adjust_minted(item_id: int, value: int) -> ItemOverride:
    """Operator correction of the minted counter. The counter can only move up."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SupplyError("minted count must be a non-negative integer")

    override_service.get_or_create(item_id)
    row = lock_for_update(db.session.query(ItemOverride).filter_by(item_id=item_id)).one()
    current = row.total_minted or 0
    if value < current:
        db.session.rollback()
        raise SupplyError(f"minted count cannot be lowered (currently {current})")
    row.total_minted = value
    row.updated_at = utcnow()
    commit_with_retry()
    logger.info("Item %s minted counter corrected %s -> %s", item_id, current, value)
    return row


def minted_by_wallet(item_id: int, wallet: str) -> int:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(MintRecord.quantity), 0))
        .filter(MintRecord.item_id == item_id, MintRecord.wallet == wallet.lower())
        .scalar()
    )
    return int(total or 0)


def list_mints(item_id: int, *, limit: int = 100) -> list[MintRecord]:
    return (
        db.session.query(MintRecord)
        .filter_by(item_id=item_id)
        .order_by(MintRecord.id.desc())
        .limit(limit)
        .all()
    )


def supply_status(item_id: int) -> dict:
    # Supply fields depend only on the override record
    state = sale_state_service.reconcile(None, override_service.get_snapshot(item_id), item_id, utcnow())
    return {
        "item_id": item_id,
        "max_supply": state.effective_supply_cap,
        "total_minted": state.total_minted,
        "remaining_supply": state.remaining_supply,
        "sold_out": state.sold_out,
        "sold_out_message": state.sold_out_message,
        "is_unlimited": state.effective_supply_cap is None,
    }
