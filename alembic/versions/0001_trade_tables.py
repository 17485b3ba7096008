"""create trade tables

Revision ID: 0001_trade_tables
Revises:
Create Date: 2026-10-19 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_trade_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "trade_bids",
        sa.Column("bid_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=False),
        sa.Column("commodity", sa.String(length=32), nullable=False),
        sa.Column("requested_qty", sa.Numeric(14, 2), nullable=False),
        sa.Column("unit", sa.String(length=8), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opens_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closes_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("visibility_mode", sa.String(length=32), nullable=False),
        sa.Column("transparency_mode", sa.String(length=32), nullable=False),
        sa.Column("winning_offer_id", sa.String(length=64), nullable=True),
        sa.Column("winning_buyer_id", sa.String(length=128), nullable=True),
        sa.Column("winning_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("bidder_count_snapshot", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("top_price_snapshot", sa.Numeric(14, 2), nullable=True),
        sa.Column("top_price_list_snapshot", sa.JSON(), nullable=False),
        sa.Column("created_by_uid", sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("requested_qty > 0", name="ck_trade_bids_qty_positive"),
        sa.CheckConstraint("closes_at > opens_at", name="ck_trade_bids_window"),
        sa.CheckConstraint("status IN ('open', 'closed', 'cancelled')", name="ck_trade_bids_status"),
    )
    op.create_index("ix_trade_bids_org_created", "trade_bids", ["org_id", "created_at"])
    op.create_index("ix_trade_bids_open_by_commodity", "trade_bids", ["status", "commodity", "closes_at"])

    op.create_table(
        "trade_offers",
        sa.Column("offer_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "bid_id",
            sa.String(length=64),
            sa.ForeignKey("trade_bids.bid_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("buyer_uid", sa.String(length=128), nullable=False),
        sa.Column("buyer_org_id", sa.String(length=128), nullable=True),
        sa.Column("price_per_kg", sa.Numeric(14, 2), nullable=False),
        sa.Column("qty", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("price_per_kg > 0", name="ck_trade_offers_price_positive"),
        sa.CheckConstraint("qty > 0", name="ck_trade_offers_qty_positive"),
    )
    op.create_index("ix_trade_offers_bid", "trade_offers", ["bid_id"])
    op.create_index("ix_trade_offers_buyer", "trade_offers", ["buyer_uid", "created_at"])
    op.create_index(
        "uq_trade_offers_active_buyer",
        "trade_offers",
        ["bid_id", "buyer_uid"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "trade_audit_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("request_id", sa.String(length=128), nullable=False),
        sa.Column("actor_uid", sa.String(length=128), nullable=False),
        sa.Column("actor_role", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=96), nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=True),
        sa.Column("bid_id", sa.String(length=64), nullable=True),
        sa.Column("offer_id", sa.String(length=64), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("details_json", sa.JSON(), nullable=True),
    )
    op.create_index("ix_trade_audit_records_request_id", "trade_audit_records", ["request_id"])
    op.create_index("ix_trade_audit_bid", "trade_audit_records", ["bid_id"])
    op.create_index("ix_trade_audit_action", "trade_audit_records", ["action"])
    op.create_index("ix_trade_audit_created", "trade_audit_records", ["created_at"])

    op.create_table(
        "offer_submission_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("limiter_key", sa.String(length=256), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_offer_attempt_key_time",
        "offer_submission_attempts",
        ["limiter_key", "attempted_at"],
    )

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("message", sa.String(length=1024), nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=True),
        sa.Column("bid_id", sa.String(length=64), nullable=True),
        sa.Column("commodity", sa.String(length=32), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_user_notifications_uid", "user_notifications", ["uid", "created_at"])

    # read models owned by the accounts / collections side
    op.create_table(
        "user_memberships",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_uid", sa.String(length=128), nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_uid", "org_id", name="uq_user_membership"),
    )
    op.create_index("ix_user_membership_user", "user_memberships", ["user_uid"])

    op.create_table(
        "org_members",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=False),
        sa.Column("member_uid", sa.String(length=128), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("org_id", "member_uid", name="uq_org_member"),
    )
    op.create_index("ix_org_member_uid", "org_members", ["member_uid"])

    op.create_table(
        "commodity_contributions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=False),
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("commodity", sa.String(length=32), nullable=False),
        sa.Column("qty_kg", sa.Numeric(14, 2), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_contribution_org_uid", "commodity_contributions", ["org_id", "uid"])

    op.create_table(
        "collection_items",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=128), nullable=False),
        sa.Column("collection_id", sa.String(length=64), nullable=False),
        sa.Column("commodity", sa.String(length=32), nullable=True),
        sa.Column("uid", sa.String(length=128), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_collection_item_org_uid", "collection_items", ["org_id", "uid"])

    op.create_table(
        "buyer_profiles",
        sa.Column("uid", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("approval_status", sa.String(length=32), nullable=True),
        sa.Column("verified_buyer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )


def downgrade():
    op.drop_table("buyer_profiles")
    op.drop_index("ix_collection_item_org_uid", table_name="collection_items")
    op.drop_table("collection_items")
    op.drop_index("ix_contribution_org_uid", table_name="commodity_contributions")
    op.drop_table("commodity_contributions")
    op.drop_index("ix_org_member_uid", table_name="org_members")
    op.drop_table("org_members")
    op.drop_index("ix_user_membership_user", table_name="user_memberships")
    op.drop_table("user_memberships")
    op.drop_index("ix_user_notifications_uid", table_name="user_notifications")
    op.drop_table("user_notifications")
    op.drop_index("ix_offer_attempt_key_time", table_name="offer_submission_attempts")
    op.drop_table("offer_submission_attempts")
    for name in (
        "ix_trade_audit_created",
        "ix_trade_audit_action",
        "ix_trade_audit_bid",
        "ix_trade_audit_records_request_id",
    ):
        op.drop_index(name, table_name="trade_audit_records")
    op.drop_table("trade_audit_records")
    op.drop_index("uq_trade_offers_active_buyer", table_name="trade_offers")
    op.drop_index("ix_trade_offers_buyer", table_name="trade_offers")
    op.drop_index("ix_trade_offers_bid", table_name="trade_offers")
    op.drop_table("trade_offers")
    op.drop_index("ix_trade_bids_open_by_commodity", table_name="trade_bids")
    op.drop_index("ix_trade_bids_org_created", table_name="trade_bids")
    op.drop_table("trade_bids")
