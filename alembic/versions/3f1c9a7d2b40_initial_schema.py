"""initial schema: creators, referrals, commissions, orders, email marketing

Revision ID: 3f1c9a7d2b40
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "3f1c9a7d2b40"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _fk(name: str, target: str, ondelete: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, server_default="0" if not nullable else None)


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def _flag(name: str, default: bool) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true() if default else sa.false())


def _json(name: str, default: str = "{}", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(),
        nullable=nullable,
        server_default=None if nullable else sa.text(f"'{default}'::jsonb"),
    )


def upgrade() -> None:
    # -----------------------------------------------------
    # 1) Users and products
    # -----------------------------------------------------
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("magic_code", sa.String(length=64), nullable=True),
        _ts("magic_code_expires_at", nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="CUSTOMER"),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("birthday", sa.Date(), nullable=True),
        _flag("is_active", True),
        _flag("email_verified", False),
        _flag("marketing_opt_in", True),
        _money("total_spent"),
        _counter("order_count"),
        _ts("last_purchase_at", nullable=True),
        _json("tags", "[]"),
        _flag("welcome_email_sent", False),
        _flag("winback_email_sent", False),
        sa.Column("birthday_email_sent", sa.String(length=10), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "creators",
        _id(),
        _fk("user_id", "users.id", "SET NULL"),
        sa.Column("creator_code", sa.String(length=8), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("bio", sa.String(length=500), nullable=True),
        _json("social_links"),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False, server_default="10.00"),
        sa.Column("minimum_payout", sa.Numeric(12, 2), nullable=False, server_default="50.00"),
        sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="paypal"),
        sa.Column("payment_details", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        _counter("total_clicks"),
        _counter("total_sales"),
        _money("total_commission"),
        sa.Column("conversion_rate", sa.Numeric(7, 2), nullable=False, server_default="0"),
        _ts("last_sale_date", nullable=True),
        _flag("email_notifications", True),
        _flag("public_profile", True),
        _flag("allow_direct_messages", True),
        _ts("approved_at", nullable=True),
        _ts("suspended_at", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", name="uq_creators_user_id"),
    )
    op.create_index("ix_creators_creator_code", "creators", ["creator_code"], unique=True)
    op.create_index("ix_creators_status", "creators", ["status"])
    op.create_index("ix_creators_total_sales", "creators", ["total_sales"])

    op.create_table(
        "products",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        _json("materials", "[]"),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        _flag("is_active", True),
        _fk("creator_id", "creators.id", "SET NULL"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_products_slug", "products", ["slug"], unique=True)
    op.create_index("ix_products_category_active", "products", ["category", "is_active"])

    # -----------------------------------------------------
    # 2) Orders and carts
    # -----------------------------------------------------
    op.create_table(
        "orders",
        _id(),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        _fk("user_id", "users.id", "SET NULL"),
        sa.Column("email", sa.String(length=320), nullable=False),
        _flag("is_guest", False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("shipping_status", sa.String(length=20), nullable=False, server_default="pending"),
        _money("subtotal"),
        _money("total"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        _json("items", "[]"),
        _json("shipping_address"),
        _json("billing_address"),
        _json("shipping"),
        _json("payment"),
        _json("timeline", "[]"),
        _json("admin_notes", "[]"),
        _flag("followup_email_sent", False),
        _flag("review_request_sent", False),
        _ts("delivered_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_email", "orders", ["email"])
    op.create_index("ix_orders_user_status_created", "orders", ["user_id", "status", "created_at"])
    op.create_index("ix_orders_status_created", "orders", ["status", "created_at"])
    op.create_index("ix_orders_payment_status", "orders", ["payment_status"])

    op.create_table(
        "carts",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        _json("items", "[]"),
        _money("total"),
        _flag("email_sent", False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_carts_user_id", "carts", ["user_id"])
    op.create_index("ix_carts_status_updated", "carts", ["status", "updated_at"])

    # -----------------------------------------------------
    # 3) Referral links and clicks
    # -----------------------------------------------------
    op.create_table(
        "referral_links",
        _id(),
        _fk("creator_id", "creators.id", "CASCADE", nullable=False),
        _fk("product_id", "products.id", "SET NULL"),
        sa.Column("link_code", sa.String(length=12), nullable=False),
        sa.Column("custom_alias", sa.String(length=50), nullable=True),
        sa.Column("original_url", sa.Text(), nullable=False),
        sa.Column("short_url", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("description", sa.String(length=200), nullable=True),
        _json("utm"),
        _flag("is_active", True),
        _counter("click_count"),
        _counter("unique_click_count"),
        _counter("conversion_count"),
        _ts("last_clicked_at", nullable=True),
        _ts("expires_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("custom_alias", name="uq_referral_links_custom_alias"),
        sa.UniqueConstraint("short_url", name="uq_referral_links_short_url"),
    )
    op.create_index("ix_referral_links_link_code", "referral_links", ["link_code"], unique=True)
    op.create_index("ix_referral_links_creator_id", "referral_links", ["creator_id"])
    op.create_index("ix_referral_links_is_active", "referral_links", ["is_active"])
    op.create_index("ix_referral_links_creator_created", "referral_links", ["creator_id", "created_at"])

    op.create_table(
        "referral_clicks",
        _id(),
        _fk("link_id", "referral_links.id", "CASCADE", nullable=False),
        _fk("creator_id", "creators.id", "CASCADE", nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("user_agent", sa.Text(), nullable=False, server_default=""),
        sa.Column("session_id", sa.String(length=128), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("device_type", sa.String(length=16), nullable=False, server_default="desktop"),
        sa.Column("utm_source", sa.String(length=120), nullable=True),
        sa.Column("utm_medium", sa.String(length=120), nullable=True),
        sa.Column("utm_campaign", sa.String(length=120), nullable=True),
        sa.Column("utm_term", sa.String(length=120), nullable=True),
        sa.Column("utm_content", sa.String(length=120), nullable=True),
        _flag("converted", False),
        _fk("order_id", "orders.id", "SET NULL"),
        _money("conversion_value", nullable=True),
        _ts("clicked_at"),
    )
    op.create_index("ix_referral_clicks_link_id", "referral_clicks", ["link_id"])
    op.create_index("ix_referral_clicks_converted", "referral_clicks", ["converted"])
    op.create_index("ix_referral_clicks_clicked_at", "referral_clicks", ["clicked_at"])
    op.create_index("ix_referral_clicks_link_session", "referral_clicks", ["link_id", "session_id"])
    op.create_index("ix_referral_clicks_creator_clicked", "referral_clicks", ["creator_id", "clicked_at"])

    # -----------------------------------------------------
    # 4) Payouts and the commission ledger
    # -----------------------------------------------------
    op.create_table(
        "creator_payouts",
        _id(),
        _fk("creator_id", "creators.id", "CASCADE", nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        _json("transaction_ids", "[]"),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("payment_details", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        _ts("payout_date"),
        _ts("completed_at", nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("payment_reference", sa.String(length=128), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_creator_payouts_creator_id", "creator_payouts", ["creator_id"])
    op.create_index("ix_creator_payouts_status", "creator_payouts", ["status"])
    op.create_index("ix_creator_payouts_creator_created", "creator_payouts", ["creator_id", "created_at"])

    op.create_table(
        "commission_transactions",
        _id(),
        _fk("creator_id", "creators.id", "CASCADE", nullable=False),
        _fk("order_id", "orders.id", "CASCADE", nullable=False),
        _fk("link_id", "referral_links.id", "SET NULL"),
        _fk("click_id", "referral_clicks.id", "SET NULL"),
        _fk("payout_id", "creator_payouts.id", "SET NULL"),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("order_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="sale"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("processed_at", nullable=True),
        _ts("paid_at", nullable=True),
    )
    op.create_index("ix_commission_transactions_creator_id", "commission_transactions", ["creator_id"])
    op.create_index("ix_commission_transactions_order_id", "commission_transactions", ["order_id"])
    op.create_index("ix_commission_tx_creator_status", "commission_transactions", ["creator_id", "status"])
    op.create_index("ix_commission_tx_status_created", "commission_transactions", ["status", "created_at"])

    # -----------------------------------------------------
    # 5) Email marketing
    # -----------------------------------------------------
    op.create_table(
        "email_templates",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="custom"),
        _json("design"),
        sa.Column("html", sa.Text(), nullable=False),
        sa.Column("css", sa.Text(), nullable=False, server_default=""),
        _json("variables", "[]"),
        sa.Column("thumbnail", sa.Text(), nullable=False, server_default=""),
        _json("preview_data"),
        _counter("usage_campaigns"),
        _counter("usage_triggers"),
        _ts("last_used_at", nullable=True),
        _flag("is_active", True),
        _flag("is_default", False),
        sa.Column("created_by", sa.String(length=64), nullable=False, server_default="system"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "customer_segments",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=20), nullable=False),
        _json("rules", "[]"),
        sa.Column("conditions", sa.Text(), nullable=False, server_default=""),
        _flag("is_active", True),
        _counter("customer_count"),
        _ts("last_calculated", nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=False, server_default="system"),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "email_campaigns",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("subject", sa.String(length=255), nullable=False),
        _fk("template_id", "email_templates.id", "SET NULL"),
        _json("segment_ids", "[]"),
        _json("content"),
        _ts("scheduled_at", nullable=True),
        _ts("sent_at", nullable=True),
        _counter("sent"),
        _counter("delivered"),
        _counter("opened"),
        _counter("clicked"),
        _money("revenue"),
        sa.Column("created_by", sa.String(length=64), nullable=False, server_default="system"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_email_campaigns_status_updated", "email_campaigns", ["status", "updated_at"])

    op.create_table(
        "email_triggers",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("event", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("delay_minutes", sa.Integer(), nullable=True),
        _fk("template_id", "email_templates.id", "SET NULL"),
        sa.Column("subject", sa.String(length=255), nullable=False, server_default=""),
        _json("segment_ids", "[]"),
        _json("max_frequency", nullable=True),
        _counter("triggered"),
        _counter("sent"),
        _counter("converted"),
        _money("revenue"),
        _ts("last_triggered", nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=False, server_default="system"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_email_triggers_status", "email_triggers", ["status"])

    op.create_table(
        "email_events",
        _id(),
        _fk("campaign_id", "email_campaigns.id", "SET NULL"),
        _fk("trigger_id", "email_triggers.id", "SET NULL"),
        _fk("recipient_id", "users.id", "SET NULL"),
        sa.Column("recipient_email", sa.String(length=320), nullable=False),
        sa.Column("event_type", sa.String(length=16), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="campaign"),
        sa.Column("subject", sa.String(length=255), nullable=True),
        _json("metadata"),
        _ts("occurred_at"),
    )
    op.create_index("ix_email_events_campaign_id", "email_events", ["campaign_id"])
    op.create_index("ix_email_events_type_occurred", "email_events", ["event_type", "occurred_at"])
    op.create_index(
        "ix_email_events_trigger_recipient",
        "email_events",
        ["trigger_id", "recipient_id", "occurred_at"],
    )


def downgrade() -> None:
    for table in (
        "email_events",
        "email_triggers",
        "email_campaigns",
        "customer_segments",
        "email_templates",
        "commission_transactions",
        "creator_payouts",
        "referral_clicks",
        "referral_links",
        "carts",
        "orders",
        "products",
        "creators",
        "users",
    ):
        op.drop_table(table)
