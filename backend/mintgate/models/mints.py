from __future__ import annotations

from ..extensions import db
from mintgate.time_utils import to_utc_z


class MintRecord(db.Model):
    """
    Confirmed purchase, written only after the ledger accepted the call.

    Also the local fallback for a wallet's already-minted count when the
    ledger cannot be queried.
    """
    __tablename__ = "mint_records"
    __table_args__ = (
        db.Index("ix_mint_records_item_wallet", "item_id", "wallet"),
        db.UniqueConstraint("tx_hash", name="uq_mint_records_tx_hash"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    wallet = db.Column(db.String(42), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    tx_hash = db.Column(db.String(66), nullable=False)
    strategy = db.Column(db.String(64), nullable=False)

    # Base units of currency_address
    price_paid = db.Column(db.String(80), nullable=False, default="0")
    currency_address = db.Column(db.String(42), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "wallet": self.wallet,
            "quantity": self.quantity,
            "tx_hash": self.tx_hash,
            "strategy": self.strategy,
            "price_paid": self.price_paid,
            "currency_address": self.currency_address,
            "created_at": to_utc_z(self.created_at),
        }
