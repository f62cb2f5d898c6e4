"""Initial mint service schema

1. item_overrides: operator overrides and the minted counter per item
2. allowlist_uploads / allowlist_entries: per-item allowlists
3. mint_records: confirmed purchases
4. chain_snapshots: last good ledger read per item
5. currencies: payment currency registry

Revision ID: 20261019_initial_mint
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_mint"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("item_overrides"):
        op.create_table(
            "item_overrides",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=True),
            sa.Column("display_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("display_order", sa.Integer(), nullable=True),
            sa.Column("is_default_display", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("custom_price", sa.String(length=80), nullable=True),
            sa.Column("custom_currency", sa.String(length=64), nullable=True),
            sa.Column("sales_period_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_unlimited", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sales_start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("sales_end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("max_supply", sa.Integer(), nullable=True),
            sa.Column("reserved_supply", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_minted", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sold_out_message", sa.String(length=255), nullable=True),
            sa.Column("max_per_wallet", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint("total_minted >= 0", name="ck_item_overrides_total_minted"),
            sa.CheckConstraint("reserved_supply >= 0", name="ck_item_overrides_reserved"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_item_overrides_item_id", "item_overrides", ["item_id"], unique=True)
        op.create_index("ix_item_overrides_display", "item_overrides", ["display_enabled", "display_order"])

    if not inspector.has_table("allowlist_uploads"):
        op.create_table(
            "allowlist_uploads",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("source_file_name", sa.String(length=255), nullable=True),
            sa.Column("source_file_format", sa.String(length=16), nullable=True),
            sa.Column("total_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("accepted_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("rejected_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("duplicate_rows", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("merkle_root", sa.String(length=66), nullable=True),
            sa.Column("uploaded_by", sa.String(length=42), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_allowlist_uploads_item_id", "allowlist_uploads", ["item_id"])
        op.create_index("ix_allowlist_uploads_item_created", "allowlist_uploads", ["item_id", "created_at"])

    if not inspector.has_table("allowlist_entries"):
        op.create_table(
            "allowlist_entries",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("address", sa.String(length=42), nullable=False),
            sa.Column("max_mint_amount", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("upload_id", sa.Integer(), sa.ForeignKey("allowlist_uploads.id"), nullable=True),
            sa.CheckConstraint("max_mint_amount >= 0", name="ck_allowlist_max_mint_amount"),
            sa.UniqueConstraint("item_id", "address", name="uq_allowlist_item_address"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_allowlist_entries_item_id", "allowlist_entries", ["item_id"])
        op.create_index("ix_allowlist_entries_address", "allowlist_entries", ["address"])
        op.create_index("ix_allowlist_entries_upload_id", "allowlist_entries", ["upload_id"])

    if not inspector.has_table("mint_records"):
        op.create_table(
            "mint_records",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("wallet", sa.String(length=42), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("tx_hash", sa.String(length=66), nullable=False),
            sa.Column("strategy", sa.String(length=64), nullable=False),
            sa.Column("price_paid", sa.String(length=80), nullable=False, server_default="0"),
            sa.Column("currency_address", sa.String(length=42), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("tx_hash", name="uq_mint_records_tx_hash"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_mint_records_item_id", "mint_records", ["item_id"])
        op.create_index("ix_mint_records_item_wallet", "mint_records", ["item_id", "wallet"])

    if not inspector.has_table("chain_snapshots"):
        op.create_table(
            "chain_snapshots",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("record_json", sa.JSON(), nullable=True),
            sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_chain_snapshots_item_id", "chain_snapshots", ["item_id"], unique=True)

    if not inspector.has_table("currencies"):
        op.create_table(
            "currencies",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("symbol", sa.String(length=32), nullable=False),
            sa.Column("name", sa.String(length=128), nullable=True),
            sa.Column("address", sa.String(length=42), nullable=False),
            sa.Column("decimals", sa.Integer(), nullable=False, server_default="18"),
            sa.Column("is_native", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("chain_id", sa.Integer(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.UniqueConstraint("symbol", name="uq_currencies_symbol"),
            sa.UniqueConstraint("address", name="uq_currencies_address"),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade():
    op.drop_table("currencies")
    op.drop_table("chain_snapshots")
    op.drop_index("ix_mint_records_item_wallet", table_name="mint_records")
    op.drop_index("ix_mint_records_item_id", table_name="mint_records")
    op.drop_table("mint_records")
    op.drop_table("allowlist_entries")
    op.drop_table("allowlist_uploads")
    op.drop_table("item_overrides")
