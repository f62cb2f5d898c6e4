from __future__ import annotations

from ..extensions import db


class Currency(db.Model):
    """Payment currency known to the operator (symbol, address, precision)."""
    __tablename__ = "currencies"
    __table_args__ = (
        db.UniqueConstraint("symbol", name="uq_currencies_symbol"),
        db.UniqueConstraint("address", name="uq_currencies_address"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    symbol = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=True)
    # Stored lower-case
    address = db.Column(db.String(42), nullable=False)
    decimals = db.Column(db.Integer, nullable=False, default=18)
    is_native = db.Column(db.Boolean, nullable=False, default=False)
    chain_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "address": self.address,
            "decimals": self.decimals,
            "is_native": bool(self.is_native),
            "chain_id": self.chain_id,
            "description": self.description,
        }
