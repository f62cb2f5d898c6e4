from __future__ import annotations

from ..extensions import db
from mintgate.time_utils import to_utc_z


class ChainSnapshot(db.Model):
    """Last successfully read ledger-side sale record for an item."""
    __tablename__ = "chain_snapshots"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    # None when the ledger reported no claim condition for the item
    record_json = db.Column(db.JSON, nullable=True)
    fetched_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "record": self.record_json,
            "fetched_at": to_utc_z(self.fetched_at),
        }
