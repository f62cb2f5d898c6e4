from __future__ import annotations

from ..extensions import db
from mintgate.time_utils import to_utc_z


class AllowlistUpload(db.Model):
    """
    One ingested allowlist table for an item.

    Every upload replaces the item's entries; the newest upload id is the
    allowlist version that proof trees are cached against.
    """
    __tablename__ = "allowlist_uploads"
    __table_args__ = (
        db.Index("ix_allowlist_uploads_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)

    source_file_name = db.Column(db.String(255), nullable=True)
    source_file_format = db.Column(db.String(16), nullable=True)  # CSV, JSON, EXCEL

    total_rows = db.Column(db.Integer, nullable=False, default=0)
    accepted_rows = db.Column(db.Integer, nullable=False, default=0)
    rejected_rows = db.Column(db.Integer, nullable=False, default=0)
    duplicate_rows = db.Column(db.Integer, nullable=False, default=0)

    # Root of the proof tree at upload time, hex with 0x prefix
    merkle_root = db.Column(db.String(66), nullable=True)

    uploaded_by = db.Column(db.String(42), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "source_file_name": self.source_file_name,
            "source_file_format": self.source_file_format,
            "total_rows": self.total_rows,
            "accepted_rows": self.accepted_rows,
            "rejected_rows": self.rejected_rows,
            "duplicate_rows": self.duplicate_rows,
            "merkle_root": self.merkle_root,
            "uploaded_by": self.uploaded_by,
            "created_at": to_utc_z(self.created_at),
        }


class AllowlistEntry(db.Model):
    """Wallet -> max quantity for one item. Addresses are stored lower-case."""
    __tablename__ = "allowlist_entries"
    __table_args__ = (
        db.UniqueConstraint("item_id", "address", name="uq_allowlist_item_address"),
        db.CheckConstraint("max_mint_amount >= 0", name="ck_allowlist_max_mint_amount"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    address = db.Column(db.String(42), nullable=False, index=True)
    max_mint_amount = db.Column(db.Integer, nullable=False, default=1)
    upload_id = db.Column(db.Integer, db.ForeignKey("allowlist_uploads.id"), nullable=True, index=True)

    upload = db.relationship("AllowlistUpload", backref=db.backref("entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "address": self.address,
            "max_mint_amount": self.max_mint_amount,
        }
