from __future__ import annotations

from ..extensions import db
from mintgate.time_utils import to_utc_z


class ItemOverride(db.Model):
    """
    Operator-controlled local configuration for one mintable item.

    The ledger remains authoritative for what it exposes; these fields
    supplement or override it. total_minted is the only column written
    outside operator action (by the supply ledger after a confirmed mint).
    """
    __tablename__ = "item_overrides"
    __table_args__ = (
        db.Index("ix_item_overrides_display", "display_enabled", "display_order"),
        db.CheckConstraint("total_minted >= 0", name="ck_item_overrides_total_minted"),
        db.CheckConstraint("reserved_supply >= 0", name="ck_item_overrides_reserved"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)

    # Display
    display_enabled = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=True)
    is_default_display = db.Column(db.Boolean, nullable=False, default=False)

    # Pricing (custom_price is a decimal string in whole token units)
    custom_price = db.Column(db.String(80), nullable=True)
    custom_currency = db.Column(db.String(64), nullable=True)

    # Sales window
    sales_period_enabled = db.Column(db.Boolean, nullable=False, default=False)
    is_unlimited = db.Column(db.Boolean, nullable=False, default=True)
    sales_start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sales_end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Supply
    max_supply = db.Column(db.Integer, nullable=True)
    reserved_supply = db.Column(db.Integer, nullable=False, default=0)
    total_minted = db.Column(db.Integer, nullable=False, default=0)
    sold_out_message = db.Column(db.String(255), nullable=True)
    max_per_wallet = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "display_enabled": bool(self.display_enabled),
            "display_order": self.display_order if self.display_order is not None else self.item_id,
            "is_default_display": bool(self.is_default_display),
            "custom_price": self.custom_price,
            "custom_currency": self.custom_currency,
            "sales_period_enabled": bool(self.sales_period_enabled),
            "is_unlimited": bool(self.is_unlimited),
            "sales_start_date": to_utc_z(self.sales_start_date),
            "sales_end_date": to_utc_z(self.sales_end_date),
            "max_supply": self.max_supply,
            "reserved_supply": self.reserved_supply or 0,
            "total_minted": self.total_minted or 0,
            "sold_out_message": self.sold_out_message,
            "max_per_wallet": self.max_per_wallet,
            "updated_at": to_utc_z(self.updated_at),
        }
