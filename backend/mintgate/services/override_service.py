# Overview: Service-layer operations for per-item operator overrides (display, price, window, supply).

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from ..extensions import db
from ..models import ItemOverride
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_item_override,
    validate_payload,
)
from . import currency_service


OVERRIDE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "display_enabled",
        "display_order",
        "is_default_display",
        "custom_price",
        "custom_currency",
        "sales_period_enabled",
        "is_unlimited",
        "sales_start_date",
        "sales_end_date",
        "max_supply",
        "reserved_supply",
        "sold_out_message",
        "max_per_wallet",
    },
)

# Values a replace resets to when a field is omitted; total_minted is never reset
DEFAULTS = {
    "name": None,
    "display_enabled": True,
    "display_order": None,
    "is_default_display": False,
    "custom_price": None,
    "custom_currency": None,
    "sales_period_enabled": False,
    "is_unlimited": True,
    "sales_start_date": None,
    "sales_end_date": None,
    "max_supply": None,
    "reserved_supply": 0,
    "sold_out_message": None,
    "max_per_wallet": None,
}


@dataclass(frozen=True)
class OverrideSnapshot:
    """Immutable view of an override record (or the permissive defaults)."""
    item_id: int
    name: str | None = None
    display_enabled: bool = True
    display_order: int | None = None
    is_default_display: bool = False
    custom_price: str | None = None
    custom_currency: str | None = None
    sales_period_enabled: bool = False
    is_unlimited: bool = True
    sales_start_date: datetime | None = None
    sales_end_date: datetime | None = None
    max_supply: int | None = None
    reserved_supply: int = 0
    total_minted: int = 0
    sold_out_message: str | None = None
    max_per_wallet: int | None = None
    persisted: bool = False

    @classmethod
    def from_row(cls, row: ItemOverride) -> "OverrideSnapshot":
        return cls(
            item_id=row.item_id,
            name=row.name,
            display_enabled=bool(row.display_enabled),
            display_order=row.display_order,
            is_default_display=bool(row.is_default_display),
            custom_price=row.custom_price,
            custom_currency=row.custom_currency,
            sales_period_enabled=bool(row.sales_period_enabled),
            is_unlimited=bool(row.is_unlimited),
            sales_start_date=row.sales_start_date,
            sales_end_date=row.sales_end_date,
            max_supply=row.max_supply,
            reserved_supply=row.reserved_supply or 0,
            total_minted=row.total_minted or 0,
            sold_out_message=row.sold_out_message,
            max_per_wallet=row.max_per_wallet,
            persisted=True,
        )

    def with_changes(self, **changes) -> "OverrideSnapshot":
        return replace(self, **changes)


def get_override(item_id: int) -> ItemOverride | None:
    return db.session.query(ItemOverride).filter_by(item_id=item_id).first()


def get_snapshot(item_id: int) -> OverrideSnapshot:
    row = get_override(item_id)
    return OverrideSnapshot.from_row(row) if row else OverrideSnapshot(item_id=item_id)


def get_or_create(item_id: int) -> ItemOverride:
    row = get_override(item_id)
    if row:
        return row
    row = ItemOverride(item_id=item_id, **DEFAULTS)
    row.total_minted = 0
    db.session.add(row)
    db.session.flush()
    return row


def _current_values(row: ItemOverride | None) -> dict:
    if row is None:
        return dict(DEFAULTS)
    return {key: getattr(row, key) for key in DEFAULTS}


def _check_currency(merged: dict) -> None:
    currency = merged.get("custom_currency")
    if currency and currency_service.resolve(currency) is None:
        raise ValidationError(f"Unknown currency: {currency}")


def _apply(item_id: int, payload: dict, *, partial: bool) -> ItemOverride:
    patch = validate_payload(model=ItemOverride, payload=payload, policy=OVERRIDE_POLICY, partial=partial)

    row = get_override(item_id)
    merged = _current_values(row) if partial else dict(DEFAULTS)
    merged.update(patch)
    enforce_rules_item_override(merged)
    _check_currency(merged)

    if row is None:
        row = get_or_create(item_id)
    for key, value in merged.items():
        setattr(row, key, value)

    if merged.get("is_default_display"):
        _clear_other_defaults(item_id)

    db.session.commit()
    return row


def replace_override(item_id: int, payload: dict) -> ItemOverride:
    """Replace semantics: omitted fields return to defaults. total_minted is kept."""
    return _apply(item_id, payload, partial=False)


def patch_override(item_id: int, payload: dict) -> ItemOverride:
    return _apply(item_id, payload, partial=True)


def _clear_other_defaults(item_id: int) -> None:
    (
        db.session.query(ItemOverride)
        .filter(ItemOverride.item_id != item_id, ItemOverride.is_default_display.is_(True))
        .update({ItemOverride.is_default_display: False}, synchronize_session=False)
    )


def set_max_supply(item_id: int, max_supply: int | None, reserved_supply: int = 0) -> ItemOverride:
    """None clears the cap (unlimited supply)."""
    payload = {"max_supply": max_supply, "reserved_supply": 0 if max_supply is None else reserved_supply}
    return patch_override(item_id, payload)


def list_overrides() -> list[ItemOverride]:
    return db.session.query(ItemOverride).order_by(ItemOverride.item_id.asc()).all()


def display_order_key(snapshot: OverrideSnapshot) -> tuple[int, int]:
    order = snapshot.display_order if snapshot.display_order is not None else snapshot.item_id
    return order, snapshot.item_id


def default_item_id(candidate_ids: list[int]) -> int | None:
    """
    Default item for the landing view: the flagged default if it is
    displayable, else the first displayable item by display order.
    """
    snapshots = [get_snapshot(i) for i in candidate_ids]
    visible = sorted((s for s in snapshots if s.display_enabled), key=display_order_key)
    flagged = next((s for s in visible if s.is_default_display), None)
    if flagged:
        return flagged.item_id
    if visible:
        return visible[0].item_id
    return None
