"""custody engine foundation

Revision ID: 3c1d9e7a2b40
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "3c1d9e7a2b40"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("seller_id", sa.String(length=64), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="product"),
            sa.Column("title", sa.String(length=160), nullable=False),
            sa.Column("price", sa.Integer(), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="CLP"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_listings_seller_id", "listings", ["seller_id"])
        op.create_index("ix_listings_is_active", "listings", ["is_active"])

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("listing_id", sa.String(length=36), nullable=False),
            sa.Column("buyer_id", sa.String(length=64), nullable=False),
            sa.Column("seller_id", sa.String(length=64), nullable=False),
            sa.Column("price", sa.Integer(), nullable=False),
            sa.Column("platform_fee", sa.Integer(), nullable=False),
            sa.Column("total", sa.Integer(), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("provider_session_id", sa.String(length=128), nullable=True),
            sa.Column("provider_payment_id", sa.String(length=128), nullable=True),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_orders_listing_id", "orders", ["listing_id"])
        op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
        op.create_index("ix_orders_seller_id", "orders", ["seller_id"])
        op.create_index("ix_orders_status", "orders", ["status"])
        op.create_index("ix_orders_provider_payment_id", "orders", ["provider_payment_id"])

    if not _table_exists(bind, "webhook_events"):
        op.create_table(
            "webhook_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("provider", sa.String(length=32), nullable=False),
            sa.Column("provider_event_id", sa.String(length=128), nullable=False),
            sa.Column("payload", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("provider", "provider_event_id", name="uq_webhook_event_provider_event"),
        )

    if not _table_exists(bind, "payment_records"):
        op.create_table(
            "payment_records",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("provider", sa.String(length=32), nullable=False),
            sa.Column("provider_payment_id", sa.String(length=128), nullable=False),
            sa.Column("provider_event_id", sa.String(length=128), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=True),
            sa.Column("raw_event", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("order_id", "provider_payment_id", name="uq_payment_record_order_payment"),
        )
        op.create_index("ix_payment_records_order_id", "payment_records", ["order_id"])

    if not _table_exists(bind, "audit_entries"):
        op.create_table(
            "audit_entries",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("action", sa.String(length=80), nullable=False),
            sa.Column("actor_user_id", sa.String(length=64), nullable=True),
            sa.Column("entity_type", sa.String(length=40), nullable=False),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("request_id", sa.String(length=80), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("ix_audit_entries_created_at", "audit_entries", ["created_at"])
        op.create_index("ix_audit_entries_action", "audit_entries", ["action"])
        op.create_index("ix_audit_entries_actor_user_id", "audit_entries", ["actor_user_id"])
        op.create_index("ix_audit_entries_entity_type", "audit_entries", ["entity_type"])
        op.create_index("ix_audit_entries_entity_id", "audit_entries", ["entity_id"])


def downgrade():
    op.drop_table("audit_entries")
    op.drop_table("payment_records")
    op.drop_table("webhook_events")
    op.drop_table("orders")
    op.drop_table("listings")
