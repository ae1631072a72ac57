"""initial inventory sync schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _create_indexes(bind, table_name: str, indexes: list[tuple[str, list[str]]]) -> None:
    inspector = sa.inspect(bind)
    if not _table_exists(inspector, table_name):
        return
    for index_name, columns in indexes:
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "inventory_items"):
        op.create_table(
            "inventory_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=40), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("category", sa.String(length=120), nullable=True),
            sa.Column("seller_code", sa.String(length=10), nullable=True),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("is_small_batch", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("lifecycle_state", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("removal_incomplete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("removal_attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("out_of_stock_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("realized_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("last_applied_transaction_id", sa.String(length=120), nullable=True),
            sa.Column("last_sale_channel", sa.String(length=30), nullable=True),
            sa.Column("pos_item_ref", sa.String(length=80), nullable=True),
            sa.Column("pos_variation_ref", sa.String(length=80), nullable=True),
            sa.Column("pos_catalog_ref", sa.String(length=80), nullable=True),
            sa.Column("market_listing_ref", sa.String(length=80), nullable=True),
            sa.Column("market_offer_ref", sa.String(length=80), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        bind,
        "inventory_items",
        [
            ("ix_inventory_items_code", ["code"]),
            ("ix_inventory_items_seller_code", ["seller_code"]),
            ("ix_inventory_items_pos_item_ref", ["pos_item_ref"]),
            ("ix_inventory_items_pos_variation_ref", ["pos_variation_ref"]),
            ("ix_inventory_items_pos_catalog_ref", ["pos_catalog_ref"]),
            ("ix_inventory_items_market_listing_ref", ["market_listing_ref"]),
            ("ix_inventory_items_market_offer_ref", ["market_offer_ref"]),
            ("ix_inventory_items_state_removal", ["lifecycle_state", "removal_incomplete"]),
            ("ix_inventory_items_code_created_at", ["code", "created_at"]),
        ],
    )

    inspector = sa.inspect(bind)
    if not _table_exists(inspector, "sale_records"):
        op.create_table(
            "sale_records",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("transaction_id", sa.String(length=120), nullable=False),
            sa.Column("unit_index", sa.Integer(), nullable=False),
            sa.Column("channel_name", sa.String(length=30), nullable=False),
            sa.Column("realized_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("sold_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "item_id",
                "transaction_id",
                "unit_index",
                name="uq_sale_records_item_transaction_unit",
            ),
        )
    _create_indexes(
        bind,
        "sale_records",
        [
            ("ix_sale_records_item_id", ["item_id"]),
            ("ix_sale_records_channel_sold_at", ["channel_name", "sold_at"]),
        ],
    )

    inspector = sa.inspect(bind)
    if not _table_exists(inspector, "channel_listings"):
        op.create_table(
            "channel_listings",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("channel", sa.String(length=30), nullable=False),
            sa.Column("state", sa.String(length=20), nullable=False, server_default="not_listed"),
            sa.Column("listing_ref", sa.String(length=80), nullable=True),
            sa.Column("offer_ref", sa.String(length=80), nullable=True),
            sa.Column("last_error", sa.String(length=500), nullable=True),
            sa.Column("last_error_kind", sa.String(length=30), nullable=True),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("listed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("item_id", "channel", name="uq_channel_listings_item_channel"),
        )
    _create_indexes(bind, "channel_listings", [("ix_channel_listings_item_id", ["item_id"])])

    inspector = sa.inspect(bind)
    if not _table_exists(inspector, "webhook_events"):
        op.create_table(
            "webhook_events",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("provider", sa.String(length=30), nullable=False),
            sa.Column("event_id", sa.String(length=120), nullable=True),
            sa.Column("event_type", sa.String(length=80), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("reason", sa.String(length=255), nullable=True),
            sa.Column("applied_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("payload_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        bind,
        "webhook_events",
        [
            ("ix_webhook_events_provider", ["provider"]),
            ("ix_webhook_events_event_id", ["event_id"]),
            ("ix_webhook_events_provider_created_at", ["provider", "created_at"]),
        ],
    )

    inspector = sa.inspect(bind)
    if not _table_exists(inspector, "reconciliation_runs"):
        op.create_table(
            "reconciliation_runs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
            sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
            sa.Column("seller_code", sa.String(length=10), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="running"),
            sa.Column("transactions", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("line_items", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("matched", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("applied", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("unmatched", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("category_mismatched", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("already_applied", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("other_seller", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("removal_incomplete", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
    _create_indexes(
        bind,
        "reconciliation_runs",
        [("ix_reconciliation_runs_status_started_at", ["status", "started_at"])],
    )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name in (
        "reconciliation_runs",
        "webhook_events",
        "channel_listings",
        "sale_records",
        "inventory_items",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
